import math
import threading

import pytest

from promclient.counter import Counter, CounterFunc, CounterOpts
from promclient.collector import ValueType
from promclient.desc import LabelPair


def test_counter_add():
    counter = Counter(
        CounterOpts(name="test", help="test help", const_labels={"a": "1", "b": "2"})
    )
    counter.inc()
    assert counter.value == 1.0
    counter.add(42)
    assert counter.value == 43.0
    counter.add(24.42)
    assert counter.value == 24.42 + 43.0

    with pytest.raises(ValueError, match="counter cannot decrease in value"):
        counter.add(-1)

    data = counter.write()
    assert str(data) == (
        'label:<name:"a" value:"1" > label:<name:"b" value:"2" > counter:<value:67.42 > '
    )
    assert data.value_type is ValueType.COUNTER
    assert data.labels == (LabelPair("a", "1"), LabelPair("b", "2"))


def test_counter_add_inf():
    counter = Counter(CounterOpts(name="test", help="test help"))
    counter.inc()
    assert counter.value == 1.0
    counter.add(math.inf)
    assert counter.value == math.inf
    counter.inc()
    assert counter.value == math.inf
    assert str(counter.write()) == "counter:<value:inf > "


def test_counter_add_large():
    counter = Counter(CounterOpts(name="test", help="test help"))
    large = math.nextafter(float(2**64), 1e20)
    counter.add(large)
    assert counter.value == large
    assert str(counter.write()) == f"counter:<value:{large:.16e} > "


def test_counter_add_small():
    counter = Counter(CounterOpts(name="test", help="test help"))
    small = 0.000000000001
    counter.add(small)
    assert counter.value == small
    assert str(counter.write()) == f"counter:<value:{small:.0e} > "


def test_negative_add_leaves_value_unchanged():
    counter = Counter(CounterOpts(name="test"))
    counter.add(5)
    with pytest.raises(ValueError):
        counter.add(-0.5)
    assert counter.value == 5.0


def test_counter_collects_itself():
    counter = Counter(CounterOpts(name="requests_total", namespace="app", help="h"))
    assert counter.desc.fq_name == "app_requests_total"
    assert list(counter.describe()) == [counter.desc]
    assert list(counter.collect()) == [counter]


def test_concurrent_increments_are_all_counted():
    counter = Counter(CounterOpts(name="test"))

    def work():
        for _ in range(1000):
            counter.inc()
            counter.add(0.5)

    threads = [threading.Thread(target=work) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert counter.value == pytest.approx(8 * 1000 * 1.5)


def test_counter_func_reports_function_value():
    calls = iter([1.0, 2.5])
    counter_func = CounterFunc(
        CounterOpts(name="test_name", help="test help", const_labels={"a": "1"}),
        lambda: next(calls),
    )
    assert str(counter_func.write()) == 'label:<name:"a" value:"1" > counter:<value:1 > '
    assert counter_func.write().value == 2.5
    assert list(counter_func.collect()) == [counter_func]
    assert str(counter_func.desc) == (
        'Desc{fqName: "test_name", help: "test help", constLabels: {a="1"}, variableLabels: []}'
    )


def test_invalid_name_is_recorded_in_desc():
    counter = Counter(CounterOpts(name="bad name"))
    assert isinstance(counter.desc.error, ValueError)
    assert "is not a valid metric name" in str(counter.desc.error)