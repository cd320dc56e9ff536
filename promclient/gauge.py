"""Gauges: metrics holding a single value that can go up and down."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from .collector import Metric, MetricData, SelfCollector, ValueType
from .desc import Desc, build_fq_name


@dataclass
class GaugeOpts:
    """Options for building a gauge's descriptor."""

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


class Gauge(SelfCollector, Metric):
    """A metric holding a single numerical value that can go up and down."""

    def __init__(self, opts: GaugeOpts) -> None:
        self._desc = opts.to_desc()
        self._labels = self._desc.const_label_pairs
        self._lock = threading.Lock()
        self._value = 0.0

    @property
    def desc(self) -> Desc:
        return self._desc

    def set(self, value: float) -> None:
        """Set the gauge to an arbitrary value."""
        with self._lock:
            self._value = float(value)

    def set_to_current_time(self) -> None:
        """Set the gauge to the current Unix time in seconds."""
        self.set(time.time_ns() / 1e9)

    def inc(self) -> None:
        """Increase the gauge by one."""
        self.add(1)

    def dec(self) -> None:
        """Decrease the gauge by one."""
        self.add(-1)

    def add(self, value: float) -> None:
        """Add a value, which may be negative, to the gauge."""
        with self._lock:
            self._value += float(value)

    def sub(self, value: float) -> None:
        """Subtract a value, which may be negative, from the gauge."""
        self.add(float(value) * -1)

    @property
    def value(self) -> float:
        """The current value of the gauge."""
        with self._lock:
            return self._value

    def write(self) -> MetricData:
        return MetricData(ValueType.GAUGE, self.value, self._labels)


class GaugeFunc(SelfCollector, Metric):
    """A gauge whose value is obtained by calling a function at write time.

    The function may be called concurrently and must be safe for that.
    """

    def __init__(self, opts: GaugeOpts, function: Callable[[], float]) -> None:
        self._desc = opts.to_desc()
        self._labels = self._desc.const_label_pairs
        self._function = function

    @property
    def desc(self) -> Desc:
        return self._desc

    def write(self) -> MetricData:
        return MetricData(ValueType.GAUGE, float(self._function()), self._labels)