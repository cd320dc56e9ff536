"""Counters: metrics whose value only ever goes up."""

from __future__ import annotations

import math
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from .collector import Metric, MetricData, SelfCollector, ValueType
from .desc import Desc, build_fq_name

_UINT64_LIMIT = 1 << 64
_MASK64 = _UINT64_LIMIT - 1


@dataclass
class CounterOpts:
    """Options for building a counter's descriptor."""

    name: str
    help: str = ""
    namespace: str = ""
    subsystem: str = ""
    const_labels: Mapping[str, str] = field(default_factory=dict)

    def to_desc(self) -> Desc:
        """Build the descriptor these options describe, without variable labels."""
        return Desc(
            build_fq_name(self.namespace, self.subsystem, self.name),
            self.help,
            None,
            self.const_labels,
        )


class Counter(SelfCollector, Metric):
    """A metric holding a single value that can only increase.

    Whole-number increments are kept in an integer part that wraps at
    64 bits; any other increment goes into a float part. Both are summed
    when the counter is written.
    """

    def __init__(self, opts: CounterOpts) -> None:
        self._desc = opts.to_desc()
        self._labels = self._desc.const_label_pairs
        self._lock = threading.Lock()
        self._float_part = 0.0
        self._int_part = 0

    @property
    def desc(self) -> Desc:
        return self._desc

    def inc(self) -> None:
        """Increase the counter by one."""
        with self._lock:
            self._int_part = (self._int_part + 1) & _MASK64

    def add(self, value: float) -> None:
        """Increase the counter by a non-negative value.

        Raises ValueError if the value is negative.
        """
        if value < 0:
            raise ValueError("counter cannot decrease in value")
        as_float = float(value)
        if math.isfinite(as_float) and as_float.is_integer() and as_float < _UINT64_LIMIT:
            with self._lock:
                self._int_part = (self._int_part + int(as_float)) & _MASK64
            return
        with self._lock:
            self._float_part += as_float

    @property
    def value(self) -> float:
        """The current total of the counter."""
        with self._lock:
            return self._float_part + float(self._int_part)

    def write(self) -> MetricData:
        return MetricData(ValueType.COUNTER, self.value, self._labels)


class CounterFunc(SelfCollector, Metric):
    """A counter whose value is obtained by calling a function at write time."""

    def __init__(self, opts: CounterOpts, function: Callable[[], float]) -> None:
        self._desc = opts.to_desc()
        self._labels = self._desc.const_label_pairs
        self._function = function

    @property
    def desc(self) -> Desc:
        return self._desc

    def write(self) -> MetricData:
        return MetricData(ValueType.COUNTER, float(self._function()), self._labels)