"""Sample values returned by the query API and their JSON encoding."""

from __future__ import annotations

import enum
import json
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Union

_LABEL_NAME_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")
_INT_RE = re.compile(r"[+-]?[0-9]+")
_FRACTION_RE = re.compile(r"[0-9]{3}")
_DOT_PRECISION = 3
_PAIR_ERROR = "unmarshal model.SamplePair: "


class ValueKind(str, enum.Enum):
    """The result type of a query."""

    SCALAR = "scalar"
    VECTOR = "vector"
    MATRIX = "matrix"
    STRING = "string"


def _load(data: Any) -> Any:
    if isinstance(data, (bytes, bytearray)):
        data = data.decode("utf-8")
    if isinstance(data, str):
        return json.loads(data, parse_float=Decimal)
    return data


def _format_value(value: float) -> str:
    """Format a float in shortest form, using exponent notation for very
    small and very large magnitudes."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    sign, digit_tuple, exponent = Decimal(repr(value)).as_tuple()
    raw = "".join(map(str, digit_tuple))
    digits = raw.rstrip("0")
    exponent += len(raw) - len(digits)
    point = len(digits) + exponent
    prefix = "-" if sign else ""
    magnitude = abs(value)
    if magnitude < 1e-6 or magnitude >= 1e21:
        exp = point - 1
        mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        exp_sign = "-" if exp < 0 else "+"
        return f"{prefix}{mantissa}e{exp_sign}{abs(exp):02d}"
    if point <= 0:
        return f"{prefix}0.{'0' * -point}{digits}"
    if point >= len(digits):
        return prefix + digits + "0" * (point - len(digits))
    return f"{prefix}{digits[:point]}.{digits[point:]}"


def _format_timestamp(timestamp: int) -> str:
    sign = ""
    if timestamp < 0:
        sign = "-"
        timestamp = -timestamp
    seconds, fraction = divmod(timestamp, 1000)
    text = f"{sign}{seconds}"
    if fraction:
        text += f".{fraction:03d}"
    return text


def _parse_timestamp(raw: Any) -> int:
    """Parse seconds with an optional fraction into milliseconds."""
    if isinstance(raw, bool):
        raise ValueError(f"{_PAIR_ERROR}invalid timestamp {raw!r}")
    if isinstance(raw, int):
        text = str(raw)
    elif isinstance(raw, Decimal):
        text = str(raw)
    elif isinstance(raw, float):
        text = repr(raw)
    else:
        raise ValueError(f"{_PAIR_ERROR}invalid timestamp {raw!r}")
    whole, dot, fraction = text.partition(".")
    if not _INT_RE.fullmatch(whole):
        raise ValueError(f"{_PAIR_ERROR}invalid timestamp {text!r}")
    negative = whole.startswith("-")
    millis = abs(int(whole)) * 1000
    if dot:
        fraction = (fraction + "0" * _DOT_PRECISION)[:_DOT_PRECISION]
        if not _FRACTION_RE.fullmatch(fraction):
            raise ValueError(f"{_PAIR_ERROR}invalid timestamp {text!r}")
        millis += int(fraction)
    return -millis if negative else millis


def _parse_value(raw: Any) -> float:
    if not isinstance(raw, str):
        raise ValueError(f"{_PAIR_ERROR}sample value must be a string, got {raw!r}")
    if not raw or "_" in raw or raw != raw.strip():
        raise ValueError(f"{_PAIR_ERROR}cannot parse sample value {raw!r}")
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{_PAIR_ERROR}cannot parse sample value {raw!r}") from None


def _parse_metric(raw: Any) -> dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"metric must be an object, got {raw!r}")
    metric = {}
    for name, value in raw.items():
        if not _LABEL_NAME_RE.fullmatch(name):
            raise ValueError(f'"{name}" is not a valid label name')
        if not isinstance(value, str):
            raise ValueError(f"label value for {name!r} must be a string")
        metric[name] = value
    return metric


@dataclass(frozen=True)
class SamplePair:
    """A value at a timestamp given in milliseconds since the epoch."""

    timestamp: int
    value: float

    def to_json(self) -> str:
        """Encode as ``[seconds, "value"]``."""
        return f'[{_format_timestamp(self.timestamp)},"{_format_value(self.value)}"]'

    @classmethod
    def from_json(cls, data: Any) -> SamplePair:
        """Decode ``[seconds, "value"]`` from JSON text or a parsed list."""
        return _pair_from_item(_load(data))


def _pair_from_item(item: Any) -> SamplePair:
    if not isinstance(item, Sequence) or isinstance(item, (str, bytes)) or not item:
        raise ValueError(f"{_PAIR_ERROR}SamplePair must be [timestamp, value]")
    timestamp = _parse_timestamp(item[0])
    if len(item) < 2:
        raise ValueError(f"{_PAIR_ERROR}SamplePair missing value")
    value = _parse_value(item[1])
    if len(item) > 2:
        raise ValueError(
            f"{_PAIR_ERROR}SamplePair has too many values, must be [timestamp, value]"
        )
    return SamplePair(timestamp, value)


@dataclass
class Scalar:
    """A single value at a timestamp."""

    value: float
    timestamp: int


@dataclass
class Sample:
    """One series of an instant vector: labels, value and timestamp."""

    metric: dict[str, str] = field(default_factory=dict)
    value: float = 0.0
    timestamp: int = 0


@dataclass
class SampleStream:
    """One series of a range matrix: labels and its values over time."""

    metric: dict[str, str] = field(default_factory=dict)
    values: list[SamplePair] = field(default_factory=list)


QueryValue = Union[Scalar, list[Sample], list[SampleStream]]


def _as_list(raw: Any, what: str) -> list[Any]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError(f"{what} must be a JSON array")
    return raw


def _as_object(raw: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        raise ValueError(f"{what} must be a JSON object")
    return raw


def _sample(raw: Any) -> Sample:
    obj = _as_object(raw, "sample")
    metric = _parse_metric(obj.get("metric"))
    pair = _pair_from_item(obj["value"]) if obj.get("value") is not None else SamplePair(0, 0.0)
    return Sample(metric, pair.value, pair.timestamp)


def _sample_stream(raw: Any) -> SampleStream:
    obj = _as_object(raw, "sample stream")
    metric = _parse_metric(obj.get("metric"))
    values = [_pair_from_item(item) for item in _as_list(obj.get("values"), "values")]
    return SampleStream(metric, values)


def decode_query_result(data: Any) -> QueryValue:
    """Decode a ``{"resultType": ..., "result": ...}`` query result.

    Returns a Scalar, a list of Sample for vectors, or a list of
    SampleStream for matrices. Other result types raise ValueError.
    """
    doc = _as_object(_load(data), "query result")
    kind_raw = doc.get("resultType", "")
    result = doc.get("result")
    if kind_raw == ValueKind.SCALAR.value:
        pair = _pair_from_item(result)
        return Scalar(pair.value, pair.timestamp)
    if kind_raw == ValueKind.VECTOR.value:
        return [_sample(item) for item in _as_list(result, "vector")]
    if kind_raw == ValueKind.MATRIX.value:
        return [_sample_stream(item) for item in _as_list(result, "matrix")]
    raise ValueError(f'unexpected value type "{kind_raw}"')