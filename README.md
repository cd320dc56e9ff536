# promclient

Prometheus instrumentation primitives and a small client for the
Prometheus HTTP API v1. The package uses only the Python standard library.

## Instrumenting code

```python
from promclient.counter import Counter, CounterOpts
from promclient.gauge import Gauge, GaugeOpts

requests_total = Counter(CounterOpts(name="requests_total", help="Requests served."))
requests_total.inc()
requests_total.add(2.5)
print(requests_total.value)    # 3.5

temperature = Gauge(GaugeOpts(name="cpu_temperature_celsius", help="CPU temperature."))
temperature.set(65.3)
temperature.dec()

print(requests_total.write())  # counter:<value:3.5 >
```

- `Counter` (in `promclient.counter`) only goes up: `inc()` adds one and
  `add(value)` adds a non-negative amount. A negative amount raises
  `ValueError("counter cannot decrease in value")`.
- `Gauge` (in `promclient.gauge`) has `set`, `inc`, `dec`, `add`, `sub` and
  `set_to_current_time`.
- `CounterFunc` and `GaugeFunc` take options and a callable. The callable
  is called each time the metric is written.
- `CounterOpts` and `GaugeOpts` take `name`, `help`, `namespace`,
  `subsystem` and `const_labels`.

`write()` returns a `MetricData` (in `promclient.collector`). It holds the
`value_type` (a `ValueType`), the `value` and the constant `labels` as
`LabelPair`s. `str()` of a `MetricData` gives a compact text form.

Every metric has a `desc`, a `Desc` from `promclient.desc`. A `Desc` holds
the fully-qualified name, the help text, the constant label pairs and the
variable label names. `build_fq_name(namespace, subsystem, name)` joins the
non-empty parts of a name with underscores. An invalid metric name, an
invalid or duplicate label name, or a label value that is not valid UTF-8 is
not raised. It is stored in `Desc.error` instead. `new_invalid_desc(error)`
makes a descriptor that carries a given error. `promclient.fnv` has the
FNV-1a helpers that build the descriptor hashes: `hash_new`, `hash_add` and
`hash_add_byte`.

Custom collectors subclass `Collector` and implement the generators
`describe()` and `collect()`. `describe_by_collect(collector)` yields the
descriptors of what `collect()` yields at that moment. Counters and gauges
are `SelfCollector`s, so each one describes and collects only itself.

## Querying a Prometheus server

```python
from datetime import datetime, timedelta, timezone

from promclient.api.client import Config, new_client
from promclient.api.v1 import API, APIError, Range

api = API(new_client(Config(address="http://localhost:9090")))

try:
    value, warnings = api.query("up", datetime.now(timezone.utc))
except APIError as err:
    print(err.error_type, err.msg, err.detail)

now = datetime.now(timezone.utc)
matrix, warnings = api.query_range(
    "rate(http_requests_total[5m])",
    Range(start=now - timedelta(hours=1), end=now, step=timedelta(minutes=1)),
)
```

`Config` takes an `address` and a `timeout` in seconds, which defaults to 30.

### API methods

`API` has these methods:

| Method | Returns |
| --- | --- |
| `query`, `query_range` | the result and a tuple of warnings |
| `label_names`, `label_values`, `series` | a list and a tuple of warnings |
| `alerts` | `AlertsResult` |
| `alert_managers` | `AlertManagersResult` |
| `config` | `ConfigResult` |
| `flags` | a dict |
| `snapshot` | `SnapshotResult` |
| `rules` | `RulesResult`, holding `RuleGroup`s of `AlertingRule` and `RecordingRule` |
| `targets` | `TargetsResult` |
| `targets_metadata` | a list of `MetricMetadata` |
| `delete_series`, `clean_tombstones` | nothing |

`parse_rule_group` decodes a single rule group. `format_time` formats a time
as Unix seconds.

### Query results

Query results come from `decode_query_result` in `promclient.api.model`.
They are one of:

- a `Scalar`;
- a list of `Sample` for a vector;
- a list of `SampleStream` for a matrix.

`SamplePair.to_json()` and `SamplePair.from_json()` encode and decode the
`[seconds, "value"]` form.

### Sending requests

Queries are sent as a form POST with `do_get_fallback`. If the server
answers 405, the request is sent again as a GET.

`HttpClient` is built on `urllib`. Any other `Client` implementation with
`url` and `do` can take its place. `ApiClient` wraps a client and unwraps the
API's JSON envelope.

### Errors

Errors raise `APIError`, which has these attributes:

- `error_type`: an `ErrorType`, or the server's own string if it is not one
  of the known types;
- `msg`: the message;
- `detail`: the response body, for responses whose status is neither 2xx nor
  an API error code;
- `warnings`: the warnings of the response.

## What this package does not do

- It has no registry that gathers collectors and checks their descriptors
  for consistency.
- It has no metric vectors with variable label values.
- It has no histograms or summaries.
- It does not render the text exposition format.
- It has no HTTP handler or server to expose metrics for scraping.
- It has no command-line program.

## Tests

The tests use pytest. Install the `test` extra, which adds pytest.