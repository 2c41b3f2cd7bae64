"""Unit tests for the HTTP-based metric providers, backed by httpx.MockTransport."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from canary_metrics.errors import (
    ConfigurationError,
    MissingCredentialError,
    MultipleValuesReturnedError,
    NoValuesFoundError,
    QueryError,
    QueryTimeoutError,
)
from canary_metrics.models import MetricTemplateProvider
from canary_metrics.providers.appdynamics import AppDynamicsCloudProvider, extract_uql_value
from canary_metrics.providers.datadog import DatadogProvider
from canary_metrics.providers.dynatrace import DynatraceProvider
from canary_metrics.providers.external_metrics import ExternalMetricsProvider
from canary_metrics.providers.graphite import GraphiteProvider
from canary_metrics.providers.influxdb import InfluxDBProvider, parse_annotated_csv
from canary_metrics.providers.newrelic import NerdGraphProvider, NewRelicProvider
from canary_metrics.providers.signoz import SignozProvider
from canary_metrics.providers.skywalking import SkyWalkingProvider
from canary_metrics.providers.splunk import SplunkProvider

from .fakes import Recorder, respond_json, respond_text

pytestmark = pytest.mark.anyio


# =============================================================================
# DATADOG
# =============================================================================

DATADOG_CREDENTIALS = {"datadog_api_key": b"api-key", "datadog_application_key": b"app-key"}


def _datadog(backend, **fields):
    spec = MetricTemplateProvider(type="datadog", **fields)
    return DatadogProvider(spec, DATADOG_CREDENTIALS, metric_interval="1m", transport=backend.transport)


class TestDatadog:
    async def test_last_point_of_first_series(self):
        backend = respond_json(
            {"series": [{"pointlist": [[1, 1.0], [2, None], [3, 3.5]]}, {"pointlist": [[1, 9.0]]}]}
        )
        assert await _datadog(backend).run_query("avg:requests{*}") == 3.5

    async def test_request(self):
        backend = respond_json({"series": [{"pointlist": [[1, 1.0]]}]})
        await _datadog(backend).run_query("avg:requests{*}")
        request = backend.last
        assert str(request.url).startswith("https://api.datadoghq.com/api/v1/query?")
        assert request.headers["DD-API-KEY"] == "api-key"
        assert request.headers["DD-APPLICATION-KEY"] == "app-key"
        params = request.url.params
        assert params["query"] == "avg:requests{*}"
        assert int(params["to"]) - int(params["from"]) == 600

    async def test_custom_address(self):
        backend = respond_json({"series": [{"pointlist": [[1, 1.0]]}]})
        await _datadog(backend, address="https://api.datadoghq.eu").run_query("x")
        assert backend.last.url.host == "api.datadoghq.eu"

    async def test_no_series(self):
        with pytest.raises(NoValuesFoundError):
            await _datadog(respond_json({"series": []})).run_query("x")

    async def test_only_null_points(self):
        with pytest.raises(NoValuesFoundError):
            await _datadog(respond_json({"series": [{"pointlist": [[1, None]]}]})).run_query("x")

    async def test_forbidden(self):
        backend = respond_json({"errors": ["Forbidden"]}, status_code=403)
        with pytest.raises(QueryError) as exc_info:
            await _datadog(backend).run_query("x")
        assert exc_info.value.status_code == 403
        assert "api-key" not in str(exc_info.value)

    async def test_is_online(self):
        backend = respond_json({"valid": True})
        assert await _datadog(backend).is_online()
        assert backend.last.url.path == "/api/v1/validate"


# =============================================================================
# NEW RELIC
# =============================================================================


def _newrelic(backend):
    spec = MetricTemplateProvider(type="newrelic")
    credentials = {"newrelic_account_id": b"100", "newrelic_query_key": b"query-key"}
    return NewRelicProvider(spec, credentials, metric_interval="1m", transport=backend.transport)


class TestNewRelic:
    async def test_single_result(self):
        backend = respond_json({"results": [{"result": 2.5}]})
        assert await _newrelic(backend).run_query("SELECT percentage(count(*)) FROM Transaction") == 2.5
        request = backend.last
        assert request.url.path == "/v1/accounts/100/query"
        assert request.headers["X-Query-Key"] == "query-key"
        assert request.url.params["nrql"] == (
            "SELECT percentage(count(*)) FROM Transaction SINCE 60 seconds ago"
        )

    async def test_no_results(self):
        with pytest.raises(NoValuesFoundError):
            await _newrelic(respond_json({"results": []})).run_query("x")

    async def test_more_than_one_result_is_no_values(self):
        backend = respond_json({"results": [{"result": 1}, {"result": 2}]})
        with pytest.raises(NoValuesFoundError):
            await _newrelic(backend).run_query("x")

    async def test_is_online(self):
        backend = respond_json({"results": []})
        assert await _newrelic(backend).is_online()
        assert backend.last.url.params["nrql"].startswith("SELECT * FROM Metric")


def _nerdgraph(backend, account_id=b"12345"):
    spec = MetricTemplateProvider(type="newrelic-nerdgraph")
    credentials = {"newrelic_account_id": account_id, "newrelic_api_key": b"NRAK-x"}
    return NerdGraphProvider(spec, credentials, metric_interval="2m", transport=backend.transport)


class TestNerdGraph:
    async def test_first_numeric_leaf(self):
        backend = respond_json(
            {"data": {"actor": {"account": {"nrql": {"results": [{"average.duration": 0.25}]}}}}}
        )
        assert await _nerdgraph(backend).run_query("SELECT average(duration) FROM Transaction") == 0.25
        body = backend.last_json()
        assert "account(id: 12345)" in body["query"]
        assert body["variables"]["query"].endswith("SINCE 120 SECONDS ago")
        assert backend.last.headers["Api-Key"] == "NRAK-x"
        assert str(backend.last.url) == "https://api.newrelic.com/graphql"

    async def test_graphql_errors(self):
        backend = respond_json({"data": None, "errors": [{"message": "NRQL Syntax Error"}]})
        with pytest.raises(QueryError, match="NRQL Syntax Error"):
            await _nerdgraph(backend).run_query("SELEC")

    async def test_no_results(self):
        backend = respond_json({"data": {"actor": {"account": {"nrql": {"results": []}}}}})
        with pytest.raises(NoValuesFoundError):
            await _nerdgraph(backend).run_query("x")

    def test_account_id_must_be_an_integer(self):
        with pytest.raises(ConfigurationError, match="not a valid integer"):
            _nerdgraph(respond_json({}), account_id=b"acme")

    async def test_is_online(self):
        backend = respond_json({"data": {"actor": {"user": {"name": "ops"}}}})
        assert await _nerdgraph(backend).is_online()
        assert backend.last_json() == {"query": "{ actor { user { name } } }"}


# =============================================================================
# DYNATRACE
# =============================================================================


def _dynatrace(backend, address="https://abc123.live.dynatrace.com"):
    spec = MetricTemplateProvider(type="dynatrace", address=address)
    return DynatraceProvider(
        spec, {"dynatrace_token": b"dt0c01.x"}, metric_interval="1m", transport=backend.transport
    )


class TestDynatrace:
    async def test_last_series_first_value(self):
        backend = respond_json(
            {
                "result": [
                    {
                        "metricId": "builtin:service.response.time",
                        "data": [{"timestamps": [1], "values": [5.0]}, {"timestamps": [1], "values": [7.0]}],
                    }
                ]
            }
        )
        assert await _dynatrace(backend).run_query("builtin:service.response.time") == 7.0
        request = backend.last
        assert request.url.path == "/api/v2/metrics/query"
        assert request.headers["Authorization"] == "Api-Token dt0c01.x"
        assert request.url.params["resolution"] == "Inf"
        assert request.url.params["metricSelector"] == "builtin:service.response.time"
        assert int(request.url.params["to"]) - int(request.url.params["from"]) == 600_000

    async def test_no_result(self):
        with pytest.raises(NoValuesFoundError):
            await _dynatrace(respond_json({"result": []})).run_query("x")

    async def test_null_value(self):
        backend = respond_json({"result": [{"data": [{"timestamps": [1], "values": [None]}]}]})
        with pytest.raises(NoValuesFoundError):
            await _dynatrace(backend).run_query("x")

    def test_address_required(self):
        with pytest.raises(ConfigurationError):
            _dynatrace(respond_json({}), address="")

    async def test_is_online(self):
        backend = respond_json({"metrics": []})
        assert await _dynatrace(backend).is_online()
        assert backend.last.url.path == "/api/v2/metrics"
        assert backend.last.url.params["pageSize"] == "1"


# =============================================================================
# GRAPHITE
# =============================================================================


def _graphite(backend, credentials=None, **fields):
    spec = MetricTemplateProvider(type="graphite", address="http://graphite:8080", **fields)
    return GraphiteProvider(spec, credentials, transport=backend.transport)


class TestGraphite:
    async def test_last_non_null_datapoint(self):
        backend = respond_json(
            [{"target": "sumSeries(app.requests)", "datapoints": [[1.0, 100], [None, 160], [3.0, 220], [None, 280]]}]
        )
        assert await _graphite(backend).run_query("target=sumSeries(app.requests)&from=-1min") == 3.0

    async def test_query_string_becomes_params(self):
        backend = respond_json([{"target": "x", "datapoints": [[1.0, 100]]}])
        await _graphite(backend).run_query("target=sumSeries(app.requests)&from=-1min&format=raw")
        params = backend.last.url.params
        assert backend.last.url.path == "/render"
        assert params["target"] == "sumSeries(app.requests)"
        assert params["from"] == "-1min"
        assert params.get_list("format") == ["json"]

    async def test_no_datapoints(self):
        with pytest.raises(NoValuesFoundError):
            await _graphite(respond_json([])).run_query("target=x")

    async def test_basic_auth(self):
        backend = respond_json([{"target": "x", "datapoints": [[1.0, 100]]}])
        provider = _graphite(backend, {"username": b"u", "password": b"p"}, secret_ref="graphite")
        await provider.run_query("target=x")
        assert backend.last.headers["authorization"] == "Basic dTpw"

    async def test_is_online_ignores_missing_data(self):
        backend = respond_json([])
        assert await _graphite(backend).is_online()
        assert backend.last.url.params["target"] == "test"

    async def test_is_online_propagates_errors(self):
        with pytest.raises(QueryError):
            await _graphite(respond_text("boom", status_code=500)).is_online()


# =============================================================================
# INFLUXDB
# =============================================================================

INFLUX_CSV = (
    "#datatype,string,long,dateTime:RFC3339,double\r\n"
    "#group,false,false,false,false\r\n"
    "#default,_result,,,\r\n"
    ",result,table,_time,_value\r\n"
    ",,0,2024-01-01T00:00:00Z,1.4\r\n"
    ",,0,2024-01-01T00:01:00Z,2.8\r\n"
    "\r\n"
)

INFLUX_ERROR_CSV = (
    "#datatype,string,string\r\n"
    "#group,true,true\r\n"
    "#default,,\r\n"
    ",error,reference\r\n"
    ",failed to parse query,897\r\n"
)


def _influx(backend, credentials=None, **fields):
    spec = MetricTemplateProvider(type="influxdb", address="http://influxdb:8086", **fields)
    return InfluxDBProvider(spec, credentials, transport=backend.transport)


class TestInfluxDB:
    async def test_first_record_value(self):
        backend = respond_text(INFLUX_CSV)
        query = 'from(bucket: "canary") |> range(start: -1m) |> mean()'
        assert await _influx(backend).run_query(query) == 1.4
        request = backend.last
        assert request.method == "POST"
        assert request.url.path == "/api/v2/query"
        body = backend.last_json()
        assert body["query"] == query
        assert body["type"] == "flux"

    async def test_token_and_org(self):
        backend = respond_text(INFLUX_CSV)
        provider = _influx(backend, {"token": b"influx-token", "org": b"acme"}, secret_ref="influx")
        await provider.run_query("x")
        assert backend.last.headers["authorization"] == "Token influx-token"
        assert backend.last.url.params["org"] == "acme"

    def test_org_required_with_secret(self):
        with pytest.raises(MissingCredentialError, match="org"):
            _influx(respond_text(""), {"token": b"t"}, secret_ref="influx")

    async def test_empty_result(self):
        with pytest.raises(NoValuesFoundError):
            await _influx(respond_text("\r\n")).run_query("x")

    async def test_error_table(self):
        with pytest.raises(QueryError, match="failed to parse query"):
            await _influx(respond_text(INFLUX_ERROR_CSV)).run_query("x")

    async def test_is_online_drains_records(self):
        assert await _influx(respond_text(INFLUX_CSV)).is_online()
        with pytest.raises(QueryError):
            await _influx(respond_text(INFLUX_ERROR_CSV)).is_online()


class TestAnnotatedCsv:
    def test_records(self):
        records = list(parse_annotated_csv(INFLUX_CSV))
        assert [r["_value"] for r in records] == ["1.4", "2.8"]
        assert records[0]["_time"] == "2024-01-01T00:00:00Z"

    def test_multiple_tables(self):
        text = INFLUX_CSV + ",result,table,_value\r\n,,1,9\r\n"
        assert [r["_value"] for r in parse_annotated_csv(text)] == ["1.4", "2.8", "9"]

    def test_error_carries_context(self):
        with pytest.raises(QueryError) as exc_info:
            list(parse_annotated_csv(INFLUX_ERROR_CSV, endpoint="http://influxdb:8086/api/v2/query", query="q"))
        assert exc_info.value.endpoint == "http://influxdb:8086/api/v2/query"
        assert exc_info.value.query == "q"


# =============================================================================
# SPLUNK
# =============================================================================


def _sse(*events: tuple[str, str]) -> str:
    return "".join(f"event: {event}\ndata: {data}\n\n" for event, data in events)


def _splunk(backend, address="https://api.us1.signalfx.com"):
    spec = MetricTemplateProvider(type="splunk", address=address)
    return SplunkProvider(
        spec, {"sf_token_key": b"sf-token"}, metric_interval="1m", transport=backend.transport
    )


class TestSplunk:
    async def test_last_value_of_single_series(self):
        body = _sse(
            ("control-message", '{"event": "STREAM_START"}'),
            ("metadata", '{"type": "metadata", "tsId": "AAAA"}'),
            ("data", '{"type": "data", "data": [{"tsId": "AAAA", "value": 1.5}], "logicalTimestampMs": 1}'),
            ("data", '{"type": "data", "data": [{"tsId": "AAAA", "value": 2.5}], "logicalTimestampMs": 2}'),
            ("control-message", '{"event": "END_OF_CHANNEL"}'),
        )
        backend = respond_text(body)
        program = "data('requests').sum().publish()"
        assert await _splunk(backend).run_query(program) == 2.5
        request = backend.last
        assert str(request.url).startswith("https://stream.us1.signalfx.com/v2/signalflow/execute?")
        assert request.headers["X-SF-Token"] == "sf-token"
        assert request.headers["Content-Type"] == "text/plain"
        assert request.content.decode() == program
        params = request.url.params
        assert params["immediate"] == "true"
        assert int(params["stop"]) - int(params["start"]) == 600_000

    async def test_multiple_series(self):
        body = _sse(
            ("data", '{"type": "data", "data": [{"tsId": "A", "value": 1}, {"tsId": "B", "value": 2}]}'),
        )
        with pytest.raises(MultipleValuesReturnedError):
            await _splunk(respond_text(body)).run_query("x")

    async def test_no_data(self):
        body = _sse(("control-message", '{"event": "END_OF_CHANNEL"}'))
        with pytest.raises(NoValuesFoundError):
            await _splunk(respond_text(body)).run_query("x")

    async def test_error_message(self):
        body = _sse(("error", '{"type": "error", "message": "unknown function foo"}'))
        with pytest.raises(QueryError, match="unknown function foo"):
            await _splunk(respond_text(body)).run_query("foo()")

    @pytest.mark.parametrize(
        "frame",
        ['["not", "an", "object"]', '"done"', "42", '{"type": "data", "data": {"tsId": "A"}}'],
    )
    async def test_malformed_frame(self, frame):
        body = _sse(("data", frame))
        with pytest.raises(QueryError) as exc_info:
            await _splunk(respond_text(body)).run_query("x")
        assert exc_info.value.body == frame

    async def test_http_error(self):
        with pytest.raises(QueryError) as exc_info:
            await _splunk(respond_text("unauthorized", status_code=401)).run_query("x")
        assert exc_info.value.status_code == 401
        assert exc_info.value.body == "unauthorized"

    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(QueryTimeoutError):
            await _splunk(Recorder(handler)).run_query("x")

    async def test_stream_address_maps_to_api_for_online_check(self):
        backend = respond_json({"results": []})
        assert await _splunk(backend, address="wss://stream.eu0.signalfx.com").is_online()
        assert str(backend.last.url) == "https://api.eu0.signalfx.com/v2/metric?limit=1"


# =============================================================================
# SKYWALKING
# =============================================================================


def _skywalking(backend):
    spec = MetricTemplateProvider(type="skywalking", address="http://skywalking-oap:12800")
    return SkyWalkingProvider(spec, metric_interval="5m", transport=backend.transport)


class TestSkyWalking:
    async def test_first_non_null_value(self):
        backend = respond_json(
            {"data": {"apdex": {"label": None, "values": {"values": [{"value": None}, {"value": 9800}]}}}}
        )
        query = "query queryData($duration: Duration!) { apdex: readMetricsValues(duration: $duration) }"
        assert await _skywalking(backend).run_query(query) == 9800.0
        body = backend.last_json()
        assert backend.last.url.path == "/graphql"
        assert body["query"] == query
        duration = body["variables"]["duration"]
        assert duration["step"] == "MINUTE"
        assert len(duration["start"]) == len("2024-01-01 1200")

    async def test_no_values(self):
        backend = respond_json({"data": {"apdex": {"values": {"values": [{"value": None}]}}}})
        with pytest.raises(NoValuesFoundError):
            await _skywalking(backend).run_query("x")

    async def test_graphql_error(self):
        backend = respond_json({"data": None, "errors": [{"message": "bad metric"}]})
        with pytest.raises(QueryError, match="bad metric"):
            await _skywalking(backend).run_query("x")

    async def test_is_online_accepts_method_not_allowed(self):
        backend = respond_text("", status_code=405)
        assert await _skywalking(backend).is_online()
        assert backend.last.url.path == "/internal/l7check"

    async def test_is_online_rejects_server_error(self):
        with pytest.raises(QueryError):
            await _skywalking(respond_text("", status_code=500)).is_online()


# =============================================================================
# KUBERNETES EXTERNAL METRICS
# =============================================================================


def _external(backend, credentials=None, **kwargs):
    spec = MetricTemplateProvider(type="external-metrics", address="https://kubernetes.default.svc")
    return ExternalMetricsProvider(
        spec, credentials or {"token": b"sa-token"}, transport=backend.transport, **kwargs
    )


class TestExternalMetrics:
    async def test_quantity_value(self):
        backend = respond_json({"items": [{"metricName": "http_requests", "value": "250m"}]})
        query = "default/http_requests?labelSelector=app%3Dpodinfo"
        assert await _external(backend).run_query(query) == 0.25
        request = backend.last
        assert request.url.path == "/apis/external.metrics.k8s.io/v1beta1/namespaces/default/http_requests"
        assert request.url.params["labelSelector"] == "app=podinfo"
        assert request.headers["authorization"] == "Bearer sa-token"

    async def test_no_items(self):
        with pytest.raises(NoValuesFoundError):
            await _external(respond_json({"items": []})).run_query("default/x")

    async def test_bad_quantity(self):
        with pytest.raises(NoValuesFoundError, match="unparseable"):
            await _external(respond_json({"items": [{"value": "lots"}]})).run_query("default/x")

    async def test_service_account_token_file(self, tmp_path):
        token = tmp_path / "token"
        token.write_text("file-token\n")
        spec = MetricTemplateProvider(type="external-metrics", address="https://kubernetes.default.svc")
        backend = respond_json({"items": [{"value": "3"}]})
        provider = ExternalMetricsProvider(spec, None, transport=backend.transport, token_path=token)
        assert await provider.run_query("default/x") == 3.0
        assert backend.last.headers["authorization"] == "Bearer file-token"

    def test_missing_token_file(self, tmp_path):
        spec = MetricTemplateProvider(type="external-metrics", address="https://kubernetes.default.svc")
        with pytest.raises(ConfigurationError, match="service account token"):
            ExternalMetricsProvider(spec, None, token_path=tmp_path / "missing")

    def test_empty_token_file(self, tmp_path):
        token = tmp_path / "token"
        token.write_text("")
        spec = MetricTemplateProvider(type="external-metrics", address="https://kubernetes.default.svc")
        with pytest.raises(ConfigurationError, match="empty"):
            ExternalMetricsProvider(spec, None, token_path=token)

    async def test_is_online_dials_the_address(self):
        async def accept(reader, writer):
            writer.close()

        server = await asyncio.start_server(accept, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        spec = MetricTemplateProvider(type="external-metrics", address=f"http://127.0.0.1:{port}")
        try:
            assert await ExternalMetricsProvider(spec, {"token": b"t"}).is_online()
        finally:
            server.close()
            await server.wait_closed()


# =============================================================================
# APPDYNAMICS CLOUD
# =============================================================================

APPD_ADDRESS = "https://acme.observe.appdynamics.com"

UQL_RESPONSE = [
    {"type": "model", "model": {"name": "m:main"}},
    {
        "type": "data",
        "model": {"$jsonPath": "$..[?(@.type == 'data')]"},
        "data": [
            [
                {"source": "sys:derived"},
                [["2024-01-01T00:00:00Z", 364200.0], ["2024-01-01T00:01:00Z", 364288.0]],
            ]
        ],
    },
]


class AppDynamicsBackend:
    def __init__(self):
        self.token_requests = 0
        self.lookups = 0
        self.queries = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "observe-tenant-lookup-api.saas.appdynamics.com":
            self.lookups += 1
            return httpx.Response(200, json={"tenantId": "t-1"})
        if request.url.path == "/auth/t-1/default/oauth2/token":
            self.token_requests += 1
            return httpx.Response(
                200, json={"access_token": "tok", "token_type": "bearer", "expires_in": 3600}
            )
        self.queries.append(request)
        return httpx.Response(200, json=UQL_RESPONSE)


def _appd(backend, address=APPD_ADDRESS):
    spec = MetricTemplateProvider(type="appdynamicscloud", address=address)
    credentials = {"appdcloud_client_secret_id": b"client-id", "appdcloud_client_secret_key": b"client-secret"}
    return AppDynamicsCloudProvider(spec, credentials, transport=httpx.MockTransport(backend))


class TestAppDynamicsCloud:
    async def test_last_point(self):
        backend = AppDynamicsBackend()
        assert await _appd(backend).run_query("fetch metrics(apm:response_time)") == 364288.0
        request = backend.queries[0]
        assert request.url.path == "/monitoring/v1/query/execute"
        assert request.headers["authorization"] == "Bearer tok"

    async def test_token_is_cached(self):
        backend = AppDynamicsBackend()
        provider = _appd(backend)
        await asyncio.gather(*(provider.run_query(f"q{i}") for i in range(5)))
        assert backend.lookups == 1
        assert backend.token_requests == 1
        assert len(backend.queries) == 5

    async def test_nothing_happens_at_construction(self):
        backend = AppDynamicsBackend()
        _appd(backend)
        assert backend.lookups == 0 and backend.token_requests == 0

    async def test_is_online_authenticates(self):
        backend = AppDynamicsBackend()
        assert await _appd(backend).is_online()
        assert backend.token_requests == 1

    def test_address_required(self):
        with pytest.raises(ConfigurationError):
            _appd(AppDynamicsBackend(), address="")

    def test_extract_uql_value(self):
        assert extract_uql_value(UQL_RESPONSE) == 364288.0
        assert extract_uql_value([]) is None
        assert extract_uql_value([{"type": "data", "data": []}]) is None
        assert extract_uql_value({"data": []}) is None


# =============================================================================
# SIGNOZ
# =============================================================================


def _signoz_response(*series_values):
    return {
        "data": {
            "result": [
                {
                    "queryName": "A",
                    "series": [
                        {"labels": {}, "values": [{"timestamp": i, "value": v} for i, v in enumerate(values)]}
                        for values in series_values
                    ],
                }
            ]
        }
    }


def _signoz(backend, credentials=None, **fields):
    spec = MetricTemplateProvider(type="signoz", address="http://signoz:8080", **fields)
    return SignozProvider(spec, credentials, transport=backend.transport)


class TestSignoz:
    async def test_last_value(self):
        backend = respond_json(_signoz_response(["0.5", 0.75]))
        query = '{"start": 0, "end": 1, "requestType": "time_series", "compositeQuery": {"queries": []}}'
        assert await _signoz(backend).run_query(query) == 0.75
        request = backend.last
        assert request.method == "POST"
        assert request.url.path == "/api/v5/query_range"
        assert request.content.decode() == query
        assert request.headers["content-type"] == "application/json"
        assert "signoz-api-key" not in request.headers

    async def test_api_key(self):
        backend = respond_json(_signoz_response([1]))
        await _signoz(backend, {"apiKey": b"sz-key"}, secret_ref="signoz").run_query("{}")
        assert backend.last.headers["SIGNOZ-API-KEY"] == "sz-key"

    async def test_multiple_series(self):
        with pytest.raises(MultipleValuesReturnedError):
            await _signoz(respond_json(_signoz_response([1], [2]))).run_query("{}")

    async def test_multiple_results(self):
        payload = _signoz_response([1])
        payload["data"]["result"].append(payload["data"]["result"][0])
        with pytest.raises(MultipleValuesReturnedError):
            await _signoz(respond_json(payload)).run_query("{}")

    async def test_no_results(self):
        with pytest.raises(NoValuesFoundError):
            await _signoz(respond_json({"data": {"result": []}})).run_query("{}")

    async def test_is_online(self):
        backend = respond_json(_signoz_response([1]))
        assert await _signoz(backend).is_online()
        assert backend.last_json()["compositeQuery"]["queries"][0]["type"] == "builder_formula"
