"""Metric descriptors: the immutable metadata of every metric."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from .fnv import hash_add, hash_add_byte, hash_new

_METRIC_NAME_RE = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*")
_LABEL_NAME_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")
_RESERVED_LABEL_PREFIX = "__"
_SEPARATOR = 0xFF

_SPECIAL_ESCAPES = {
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\v": "\\v",
    '"': '\\"',
    "\\": "\\\\",
}


@dataclass(frozen=True, order=True)
class LabelPair:
    """A label name together with its value."""

    name: str
    value: str


def _quote(s: str) -> str:
    """Quote a string with escapes for anything not printable."""
    parts = ['"']
    for ch in s:
        code = ord(ch)
        if ch in _SPECIAL_ESCAPES:
            parts.append(_SPECIAL_ESCAPES[ch])
        elif 0xDC80 <= code <= 0xDCFF:
            parts.append(f"\\x{code - 0xDC00:02x}")
        elif ch.isprintable():
            parts.append(ch)
        elif code < 0x80:
            parts.append(f"\\x{code:02x}")
        elif code < 0x10000:
            parts.append(f"\\u{code:04x}")
        else:
            parts.append(f"\\U{code:08x}")
    parts.append('"')
    return "".join(parts)


def _is_valid_metric_name(name: str) -> bool:
    return bool(_METRIC_NAME_RE.fullmatch(name))


def _is_valid_label_name(name: str) -> bool:
    return bool(_LABEL_NAME_RE.fullmatch(name)) and not name.startswith(_RESERVED_LABEL_PREFIX)


def _is_valid_utf8(value: str) -> bool:
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def build_fq_name(namespace: str, subsystem: str, name: str) -> str:
    """Join the non-empty parts with underscores; an empty name yields ""."""
    if not name:
        return ""
    return "_".join(part for part in (namespace, subsystem, name) if part)


class Desc:
    """Descriptor of a metric: name, help, constant and variable labels.

    Problems found while building the descriptor are not raised; they are
    kept in ``error`` and reported when the descriptor is registered.
    """

    def __init__(
        self,
        fq_name: str,
        help: str,
        variable_labels: Iterable[str] | None = None,
        const_labels: Mapping[str, str] | None = None,
    ) -> None:
        self.fq_name = fq_name
        self.help = help
        self.variable_labels: tuple[str, ...] = tuple(variable_labels or ())
        self.const_label_pairs: tuple[LabelPair, ...] = ()
        self.id = 0
        self.dim_hash = 0
        self.error: Exception | None = self._build(dict(const_labels or {}))

    def _build(self, const_labels: dict[str, str]) -> Exception | None:
        fq_name = self.fq_name
        if not _is_valid_metric_name(fq_name):
            return ValueError(f"{_quote(fq_name)} is not a valid metric name")

        for label_name in const_labels:
            if not _is_valid_label_name(label_name):
                return ValueError(
                    f"{_quote(label_name)} is not a valid label name for metric {_quote(fq_name)}"
                )
        const_names = sorted(const_labels)
        # The fully-qualified name comes first, then the const label values
        # in the order of their sorted names.
        label_values = [fq_name, *(const_labels[name] for name in const_names)]
        for value in label_values:
            if not _is_valid_utf8(value):
                return ValueError(f"label value {_quote(value)} is not valid UTF-8")

        label_names = list(const_names)
        seen = set(const_names)
        for label_name in self.variable_labels:
            if not _is_valid_label_name(label_name):
                return ValueError(
                    f"{_quote(label_name)} is not a valid label name for metric {_quote(fq_name)}"
                )
            # The prefix keeps variable and const dimensions apart in the hash.
            label_names.append("$" + label_name)
            seen.add(label_name)
        if len(label_names) != len(seen):
            return ValueError("duplicate label names")

        h = hash_new()
        for value in label_values:
            h = hash_add_byte(hash_add(h, value), _SEPARATOR)
        self.id = h

        h = hash_add_byte(hash_add(hash_new(), self.help), _SEPARATOR)
        for label_name in sorted(label_names):
            h = hash_add_byte(hash_add(h, label_name), _SEPARATOR)
        self.dim_hash = h

        self.const_label_pairs = tuple(
            LabelPair(name, const_labels[name]) for name in const_names
        )
        return None

    def __str__(self) -> str:
        const = ",".join(f"{lp.name}={_quote(lp.value)}" for lp in self.const_label_pairs)
        variable = "[" + " ".join(self.variable_labels) + "]"
        return (
            f"Desc{{fqName: {_quote(self.fq_name)}, help: {_quote(self.help)}, "
            f"constLabels: {{{const}}}, variableLabels: {variable}}}"
        )

    def __repr__(self) -> str:
        return str(self)


def new_invalid_desc(error: Exception) -> Desc:
    """Return a descriptor that carries ``error``; registering it fails with it."""
    desc = Desc("", "")
    desc.error = error
    return desc