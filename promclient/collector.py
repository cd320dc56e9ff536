"""Core metric and collector abstractions and written metric data."""

from __future__ import annotations

import enum
import math
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from decimal import Decimal

from .desc import Desc, LabelPair


class ValueType(enum.Enum):
    """Kind of value a simple metric carries."""

    COUNTER = 1
    GAUGE = 2
    UNTYPED = 3

    @property
    def field_name(self) -> str:
        return self.name.lower()


def _format_float(value: float) -> str:
    """Format a float in shortest form, switching to exponent notation
    for exponents below -4 or at 6 and above."""
    if math.isnan(value):
        return "nan"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    sign, digit_tuple, exponent = Decimal(repr(value)).as_tuple()
    raw = "".join(map(str, digit_tuple))
    digits = raw.rstrip("0")
    exponent += len(raw) - len(digits)
    point = len(digits) + exponent
    prefix = "-" if sign else ""
    exp = point - 1
    if exp < -4 or exp >= 6:
        mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        exp_sign = "-" if exp < 0 else "+"
        return f"{prefix}{mantissa}e{exp_sign}{abs(exp):02d}"
    if point <= 0:
        return f"{prefix}0.{'0' * -point}{digits}"
    if point >= len(digits):
        return prefix + digits + "0" * (point - len(digits))
    return f"{prefix}{digits[:point]}.{digits[point:]}"


def _text_quote(s: str) -> str:
    parts = ['"']
    for byte in s.encode("utf-8", "surrogateescape"):
        ch = chr(byte)
        if ch == "\n":
            parts.append("\\n")
        elif ch == "\r":
            parts.append("\\r")
        elif ch == "\t":
            parts.append("\\t")
        elif ch == '"':
            parts.append('\\"')
        elif ch == "\\":
            parts.append("\\\\")
        elif 0x20 <= byte < 0x7F:
            parts.append(ch)
        else:
            parts.append(f"\\{byte:03o}")
    parts.append('"')
    return "".join(parts)


@dataclass(frozen=True)
class MetricData:
    """The written state of a simple metric: its labels and its value."""

    value_type: ValueType
    value: float
    labels: tuple[LabelPair, ...] = ()

    def __str__(self) -> str:
        parts = [
            f"label:<name:{_text_quote(lp.name)} value:{_text_quote(lp.value)} > "
            for lp in self.labels
        ]
        parts.append(f"{self.value_type.field_name}:<value:{_format_float(self.value)} > ")
        return "".join(parts)


class Metric(ABC):
    """A single sample value with its descriptor."""

    @property
    @abstractmethod
    def desc(self) -> Desc:
        """The descriptor of this metric."""

    @abstractmethod
    def write(self) -> MetricData:
        """Return the current state of the metric."""


class Collector(ABC):
    """Anything that can supply descriptors and metrics for collection."""

    @abstractmethod
    def describe(self) -> Iterator[Desc]:
        """Yield every descriptor the collector may produce metrics for.

        Yielding nothing marks the collector as unchecked.
        """

    @abstractmethod
    def collect(self) -> Iterator[Metric]:
        """Yield the metrics collected now."""


class SelfCollector(Collector):
    """Mixin for a Metric that collects only itself."""

    def describe(self) -> Iterator[Desc]:
        yield self.desc  # type: ignore[attr-defined]

    def collect(self) -> Iterator[Metric]:
        yield self  # type: ignore[misc]


def describe_by_collect(collector: Collector) -> Iterator[Desc]:
    """Yield the descriptors of the metrics the collector currently collects."""
    for metric in collector.collect():
        yield metric.desc