"""Bindings for the Prometheus HTTP API v1."""

from __future__ import annotations

import enum
import json
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Union
from urllib.parse import urlencode, urlsplit, urlunsplit

from .client import Client, Request, Response, do_get_fallback
from .model import QueryValue, decode_query_result

STATUS_API_ERROR = 422
_STATUS_BAD_REQUEST = 400
_STATUS_NO_CONTENT = 204

API_PREFIX = "/api/v1"
EP_ALERTS = API_PREFIX + "/alerts"
EP_ALERT_MANAGERS = API_PREFIX + "/alertmanagers"
EP_QUERY = API_PREFIX + "/query"
EP_QUERY_RANGE = API_PREFIX + "/query_range"
EP_LABELS = API_PREFIX + "/labels"
EP_LABEL_VALUES = API_PREFIX + "/label/:name/values"
EP_SERIES = API_PREFIX + "/series"
EP_TARGETS = API_PREFIX + "/targets"
EP_TARGETS_METADATA = API_PREFIX + "/targets/metadata"
EP_RULES = API_PREFIX + "/rules"
EP_SNAPSHOT = API_PREFIX + "/admin/tsdb/snapshot"
EP_DELETE_SERIES = API_PREFIX + "/admin/tsdb/delete_series"
EP_CLEAN_TOMBSTONES = API_PREFIX + "/admin/tsdb/clean_tombstones"
EP_CONFIG = API_PREFIX + "/status/config"
EP_FLAGS = API_PREFIX + "/status/flags"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_TIME_RE = re.compile(
    r"(\d{4}-\d{2}-\d{2})[Tt ](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})"
)


class AlertState(str, enum.Enum):
    """State of an alert."""

    FIRING = "firing"
    INACTIVE = "inactive"
    PENDING = "pending"


class ErrorType(str, enum.Enum):
    """Kinds of errors reported by the API."""

    BAD_DATA = "bad_data"
    TIMEOUT = "timeout"
    CANCELED = "canceled"
    EXEC = "execution"
    BAD_RESPONSE = "bad_response"
    SERVER = "server_error"
    CLIENT = "client_error"


class HealthStatus(str, enum.Enum):
    """Health of a scrape target."""

    GOOD = "up"
    UNKNOWN = "unknown"
    BAD = "down"


class RuleType(str, enum.Enum):
    """Type of a rule."""

    RECORDING = "recording"
    ALERTING = "alerting"


class RuleHealth(str, enum.Enum):
    """Health of a rule."""

    GOOD = "ok"
    UNKNOWN = "unknown"
    BAD = "err"


class MetricType(str, enum.Enum):
    """Type of a metric as given in target metadata."""

    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"
    GAUGE_HISTOGRAM = "gaugehistogram"
    SUMMARY = "summary"
    INFO = "info"
    STATESET = "stateset"
    UNKNOWN = "unknown"


def _coerce(enum_cls: type[enum.Enum], raw: Any) -> Any:
    """Return the enum member for ``raw``, or the raw string if it is unknown."""
    text = _str(raw, enum_cls.__name__)
    try:
        return enum_cls(text)
    except ValueError:
        return text


class APIError(Exception):
    """An error returned by the API or found in its response."""

    def __init__(
        self,
        error_type: Union[ErrorType, str],
        msg: str,
        detail: str = "",
        warnings: Sequence[str] = (),
    ) -> None:
        super().__init__(error_type, msg)
        self.error_type = error_type
        self.msg = msg
        self.detail = detail
        self.warnings: tuple[str, ...] = tuple(warnings)

    def __str__(self) -> str:
        kind = getattr(self.error_type, "value", self.error_type)
        return f"{kind}: {self.msg}"


@dataclass
class Range:
    """A time range sliced into steps."""

    start: datetime
    end: datetime
    step: timedelta


@dataclass
class AlertManager:
    """A configured Alertmanager."""

    url: str = ""


@dataclass
class AlertManagersResult:
    """Active and dropped Alertmanagers."""

    active: list[AlertManager] = field(default_factory=list)
    dropped: list[AlertManager] = field(default_factory=list)


@dataclass
class ConfigResult:
    """The loaded configuration as YAML text."""

    yaml: str = ""


@dataclass
class SnapshotResult:
    """The name of a created snapshot directory."""

    name: str = ""


@dataclass
class Alert:
    """An active alert."""

    active_at: datetime | None = None
    annotations: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    state: Union[AlertState, str] = ""
    value: str = ""


@dataclass
class AlertsResult:
    """All active alerts."""

    alerts: list[Alert] = field(default_factory=list)


@dataclass
class AlertingRule:
    """An alerting rule."""

    name: str = ""
    query: str = ""
    duration: float = 0.0
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    alerts: list[Alert] = field(default_factory=list)
    health: Union[RuleHealth, str] = ""
    last_error: str = ""


@dataclass
class RecordingRule:
    """A recording rule."""

    name: str = ""
    query: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    health: Union[RuleHealth, str] = ""
    last_error: str = ""


@dataclass
class RuleGroup:
    """A group of rules in the order the API returned them."""

    name: str = ""
    file: str = ""
    interval: float = 0.0
    rules: list[Union[AlertingRule, RecordingRule]] = field(default_factory=list)


@dataclass
class RulesResult:
    """All loaded rule groups."""

    groups: list[RuleGroup] = field(default_factory=list)


@dataclass
class ActiveTarget:
    """An active scrape target."""

    discovered_labels: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    scrape_url: str = ""
    last_error: str = ""
    last_scrape: datetime | None = None
    health: Union[HealthStatus, str] = ""


@dataclass
class DroppedTarget:
    """A scrape target dropped by relabelling."""

    discovered_labels: dict[str, str] = field(default_factory=dict)


@dataclass
class TargetsResult:
    """Active and dropped scrape targets."""

    active: list[ActiveTarget] = field(default_factory=list)
    dropped: list[DroppedTarget] = field(default_factory=list)


@dataclass
class MetricMetadata:
    """Metadata of a metric scraped from a target."""

    target: dict[str, str] = field(default_factory=dict)
    metric: str = ""
    type: Union[MetricType, str] = ""
    help: str = ""
    unit: str = ""


def _load(data: Any) -> Any:
    if isinstance(data, (bytes, bytearray, str)):
        return json.loads(data)
    return data


def _obj(raw: Any, what: str) -> Mapping[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"{what} must be a JSON object")
    return raw


def _list(raw: Any, what: str) -> list[Any]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError(f"{what} must be a JSON array")
    return raw


def _str(raw: Any, what: str) -> str:
    if raw is None:
        return ""
    if not isinstance(raw, str):
        raise ValueError(f"{what} must be a string")
    return raw


def _float(raw: Any, what: str) -> float:
    if raw is None:
        return 0.0
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValueError(f"{what} must be a number")
    return float(raw)


def _labels(raw: Any, what: str) -> dict[str, str]:
    return {
        _str(name, what): _str(value, what) for name, value in _obj(raw, what).items()
    }


def _parse_time(raw: Any) -> datetime | None:
    text = _str(raw, "time")
    if not text:
        return None
    match = _TIME_RE.fullmatch(text)
    if match is None:
        raise ValueError(f"cannot parse time {text!r}")
    day, clock, fraction, zone = match.groups()
    micros = (fraction or "")[:6].ljust(6, "0")
    if zone in ("Z", "z"):
        zone = "+00:00"
    return datetime.fromisoformat(f"{day}T{clock}.{micros}{zone}")


def _alert(raw: Any) -> Alert:
    obj = _obj(raw, "alert")
    return Alert(
        active_at=_parse_time(obj.get("activeAt")),
        annotations=_labels(obj.get("annotations"), "annotations"),
        labels=_labels(obj.get("labels"), "labels"),
        state=_coerce(AlertState, obj.get("state")),
        value=_str(obj.get("value"), "value"),
    )


def _alerting_rule(obj: Mapping[str, Any]) -> AlertingRule:
    return AlertingRule(
        name=_str(obj.get("name"), "name"),
        query=_str(obj.get("query"), "query"),
        duration=_float(obj.get("duration"), "duration"),
        labels=_labels(obj.get("labels"), "labels"),
        annotations=_labels(obj.get("annotations"), "annotations"),
        alerts=[_alert(item) for item in _list(obj.get("alerts"), "alerts")],
        health=_coerce(RuleHealth, obj.get("health")),
        last_error=_str(obj.get("lastError"), "lastError"),
    )


def _recording_rule(obj: Mapping[str, Any]) -> RecordingRule:
    return RecordingRule(
        name=_str(obj.get("name"), "name"),
        query=_str(obj.get("query"), "query"),
        labels=_labels(obj.get("labels"), "labels"),
        health=_coerce(RuleHealth, obj.get("health")),
        last_error=_str(obj.get("lastError"), "lastError"),
    )


def _rule(raw: Any) -> Union[AlertingRule, RecordingRule]:
    try:
        obj = _obj(raw, "rule")
        kind = obj.get("type")
        if kind == RuleType.ALERTING.value:
            return _alerting_rule(obj)
        if kind == RuleType.RECORDING.value:
            return _recording_rule(obj)
    except (ValueError, TypeError):
        pass
    raise ValueError("failed to decode JSON into an alerting or recording rule")


def parse_rule_group(data: Any) -> RuleGroup:
    """Decode a rule group from JSON text or parsed JSON.

    Each rule becomes an AlertingRule or a RecordingRule according to its
    ``type`` field; any other rule raises ValueError.
    """
    obj = _obj(_load(data), "rule group")
    return RuleGroup(
        name=_str(obj.get("name"), "name"),
        file=_str(obj.get("file"), "file"),
        interval=_float(obj.get("interval"), "interval"),
        rules=[_rule(item) for item in _list(obj.get("rules"), "rules")],
    )


def _active_target(raw: Any) -> ActiveTarget:
    obj = _obj(raw, "active target")
    return ActiveTarget(
        discovered_labels=_labels(obj.get("discoveredLabels"), "discoveredLabels"),
        labels=_labels(obj.get("labels"), "labels"),
        scrape_url=_str(obj.get("scrapeUrl"), "scrapeUrl"),
        last_error=_str(obj.get("lastError"), "lastError"),
        last_scrape=_parse_time(obj.get("lastScrape")),
        health=_coerce(HealthStatus, obj.get("health")),
    )


def _dropped_target(raw: Any) -> DroppedTarget:
    obj = _obj(raw, "dropped target")
    return DroppedTarget(_labels(obj.get("discoveredLabels"), "discoveredLabels"))


def _metric_metadata(raw: Any) -> MetricMetadata:
    obj = _obj(raw, "metric metadata")
    return MetricMetadata(
        target=_labels(obj.get("target"), "target"),
        metric=_str(obj.get("metric"), "metric"),
        type=_coerce(MetricType, obj.get("type")),
        help=_str(obj.get("help"), "help"),
        unit=_str(obj.get("unit"), "unit"),
    )


def _alert_manager(raw: Any) -> AlertManager:
    return AlertManager(_str(_obj(raw, "alert manager").get("url"), "url"))


def _format_plain(value: float) -> str:
    """Format a float in its shortest form without an exponent."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_time(t: datetime | float | int) -> str:
    """Format a time as Unix seconds with a fraction; naive datetimes count as UTC."""
    if isinstance(t, datetime):
        if t.tzinfo is None:
            t = t.replace(tzinfo=timezone.utc)
        delta = t - _EPOCH
        seconds = float(delta.days * 86400 + delta.seconds) + delta.microseconds / 1e6
    else:
        seconds = float(t)
    return _format_plain(seconds)


def _is_api_error(code: int) -> bool:
    return code in (STATUS_API_ERROR, _STATUS_BAD_REQUEST)


def _error_type_and_msg(code: int) -> tuple[ErrorType, str]:
    if code // 100 == 4:
        return ErrorType.CLIENT, f"client error: {code}"
    if code // 100 == 5:
        return ErrorType.SERVER, f"server error: {code}"
    return ErrorType.BAD_RESPONSE, f"bad response code {code}"


def _process_response(response: Response) -> Response:
    """Unwrap an API envelope, raising APIError for errors it reports."""
    code = response.status_code
    warnings = response.warnings
    if code // 100 != 2 and not _is_api_error(code):
        error_type, msg = _error_type_and_msg(code)
        raise APIError(
            error_type, msg, response.body.decode("utf-8", "replace"), warnings
        )

    result: Mapping[str, Any] = {}
    if code != _STATUS_NO_CONTENT:
        try:
            parsed = json.loads(response.body)
        except ValueError as err:
            raise APIError(ErrorType.BAD_RESPONSE, str(err), warnings=warnings) from None
        if parsed is not None and not isinstance(parsed, Mapping):
            raise APIError(
                ErrorType.BAD_RESPONSE,
                "response body must be a JSON object",
                warnings=warnings,
            )
        result = parsed or {}

    failed = result.get("status") == "error"
    if _is_api_error(code) and failed:
        raise APIError(
            _coerce(ErrorType, result.get("errorType")),
            _str(result.get("error"), "error"),
            warnings=warnings,
        )
    if _is_api_error(code) != failed:
        raise APIError(
            ErrorType.BAD_RESPONSE,
            "inconsistent body for response code",
            warnings=warnings,
        )

    body = b""
    if "data" in result:
        body = json.dumps(result["data"], separators=(",", ":")).encode("utf-8")
    return Response(code, body, dict(response.headers), warnings)


def _with_query(url: str, params: Sequence[tuple[str, str]]) -> str:
    ordered = sorted(params, key=lambda item: item[0])
    return urlunsplit(urlsplit(url)._replace(query=urlencode(ordered)))


class ApiClient(Client):
    """Wraps a Client and unwraps the API's response envelope."""

    def __init__(self, client: Client) -> None:
        self.client = client

    def url(self, endpoint: str, args: Mapping[str, str] | None = None) -> str:
        return self.client.url(endpoint, args)

    def do(self, request: Request, timeout: float | None = None) -> Response:
        """Send the request; the returned body holds only the ``data`` part."""
        return _process_response(self.client.do(request, timeout))


class API:
    """Methods for the endpoints of the v1 API."""

    def __init__(self, client: Client) -> None:
        self._client = client if isinstance(client, ApiClient) else ApiClient(client)

    def _send(
        self,
        method: str,
        endpoint: str,
        params: Sequence[tuple[str, str]] | None = None,
        args: Mapping[str, str] | None = None,
    ) -> Response:
        url = self._client.url(endpoint, args)
        if params is not None:
            url = _with_query(url, params)
        return self._client.do(Request(method, url))

    def _get_json(self, method: str, endpoint: str, params=None, args=None) -> Any:
        return json.loads(self._send(method, endpoint, params, args).body)

    def alerts(self) -> AlertsResult:
        """Return all active alerts."""
        obj = _obj(self._get_json("GET", EP_ALERTS), "alerts result")
        return AlertsResult([_alert(item) for item in _list(obj.get("alerts"), "alerts")])

    def alert_managers(self) -> AlertManagersResult:
        """Return the state of Alertmanager discovery."""
        obj = _obj(self._get_json("GET", EP_ALERT_MANAGERS), "alertmanagers result")
        return AlertManagersResult(
            [_alert_manager(i) for i in _list(obj.get("activeAlertManagers"), "active")],
            [_alert_manager(i) for i in _list(obj.get("droppedAlertManagers"), "dropped")],
        )

    def clean_tombstones(self) -> None:
        """Remove deleted data from disk and clean up tombstones."""
        self._send("POST", EP_CLEAN_TOMBSTONES)

    def config(self) -> ConfigResult:
        """Return the loaded configuration."""
        obj = _obj(self._get_json("GET", EP_CONFIG), "config result")
        return ConfigResult(_str(obj.get("yaml"), "yaml"))

    def delete_series(
        self, matches: Sequence[str], start_time: datetime, end_time: datetime
    ) -> None:
        """Delete the data of the matching series in a time range."""
        params = [("match[]", m) for m in matches]
        params += [("start", format_time(start_time)), ("end", format_time(end_time))]
        self._send("POST", EP_DELETE_SERIES, params)

    def flags(self) -> dict[str, str]:
        """Return the flag values the server was started with."""
        return _labels(self._get_json("GET", EP_FLAGS), "flags")

    def label_names(self) -> tuple[list[str], tuple[str, ...]]:
        """Return all label names and the warnings of the response."""
        response = self._send("GET", EP_LABELS)
        names = [_str(v, "label name") for v in _list(json.loads(response.body), "labels")]
        return names, response.warnings

    def label_values(self, label: str) -> tuple[list[str], tuple[str, ...]]:
        """Return the values of a label and the warnings of the response."""
        response = self._send("GET", EP_LABEL_VALUES, args={"name": label})
        values = [
            _str(v, "label value") for v in _list(json.loads(response.body), "label values")
        ]
        return values, response.warnings

    def _query(self, endpoint: str, args: Mapping[str, str]) -> tuple[QueryValue, tuple[str, ...]]:
        url = self._client.url(endpoint)
        response = _process_response(do_get_fallback(self._client.client, url, args))
        return decode_query_result(response.body), response.warnings

    def query(
        self, query: str, ts: datetime | None = None
    ) -> tuple[QueryValue, tuple[str, ...]]:
        """Evaluate an instant query, at ``ts`` if given."""
        args = {"query": query}
        if ts is not None:
            args["time"] = format_time(ts)
        return self._query(EP_QUERY, args)

    def query_range(self, query: str, range_: Range) -> tuple[QueryValue, tuple[str, ...]]:
        """Evaluate a query over a range of time."""
        args = {
            "query": query,
            "start": format_time(range_.start),
            "end": format_time(range_.end),
            "step": _format_plain(range_.step.total_seconds()),
        }
        return self._query(EP_QUERY_RANGE, args)

    def series(
        self, matches: Sequence[str], start_time: datetime, end_time: datetime
    ) -> tuple[list[dict[str, str]], tuple[str, ...]]:
        """Find the label sets of series matching the selectors."""
        params = [("match[]", m) for m in matches]
        params += [("start", format_time(start_time)), ("end", format_time(end_time))]
        response = self._send("GET", EP_SERIES, params)
        sets = [_labels(item, "series") for item in _list(json.loads(response.body), "series")]
        return sets, response.warnings

    def snapshot(self, skip_head: bool) -> SnapshotResult:
        """Create a snapshot of the current data and return its name."""
        params = [("skip_head", "true" if skip_head else "false")]
        obj = _obj(self._get_json("POST", EP_SNAPSHOT, params), "snapshot result")
        return SnapshotResult(_str(obj.get("name"), "name"))

    def rules(self) -> RulesResult:
        """Return the loaded alerting and recording rules."""
        obj = _obj(self._get_json("GET", EP_RULES), "rules result")
        return RulesResult([parse_rule_group(g) for g in _list(obj.get("groups"), "groups")])

    def targets(self) -> TargetsResult:
        """Return the state of target discovery."""
        obj = _obj(self._get_json("GET", EP_TARGETS), "targets result")
        return TargetsResult(
            [_active_target(i) for i in _list(obj.get("activeTargets"), "activeTargets")],
            [_dropped_target(i) for i in _list(obj.get("droppedTargets"), "droppedTargets")],
        )

    def targets_metadata(
        self, match_target: str, metric: str, limit: str
    ) -> list[MetricMetadata]:
        """Return metadata of metrics scraped from the matching targets."""
        params = [("match_target", match_target), ("metric", metric), ("limit", limit)]
        data = self._get_json("GET", EP_TARGETS_METADATA, params)
        return [_metric_metadata(item) for item in _list(data, "metadata")]