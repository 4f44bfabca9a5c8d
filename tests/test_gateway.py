import time
import httpx
import pytest
from fastapi.testclient import TestClient
from graphql import build_schema, parse, print_ast
from gateway.adapters.upstream import RemoteExecutor, UpstreamResponseError
from gateway.cache.response_cache import operation_signature
from gateway.config.general import general
from gateway.main import create_app
from conftest import COUNTRIES_RESULT, COUNTRIES_V2_SDL, UPSTREAM_URL


COUNTRIES = "{ countries { code name } }"


@pytest.fixture
def app(fake_upstream):
    return create_app(executor=fake_upstream.executor(), refresh_interval=60)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def post(client, query, **kwargs):
    return client.post("/graphql", json={"query": query}, **kwargs)


def test_startup_introspects_with_default_headers(client, fake_upstream):
    [call] = fake_upstream.introspection_calls
    assert call.headers["accept"] == "application/json"
    assert call.headers["accept-encoding"] == "gzip, deflate, br"


def test_anonymous_query_is_forwarded_and_cached(client, app, fake_upstream):
    response = post(client, COUNTRIES)

    assert response.status_code == 200
    assert response.json() == COUNTRIES_RESULT
    assert len(fake_upstream.query_calls) == 1
    signature = operation_signature(print_ast(parse(COUNTRIES)), {}, None)
    assert app.state.gateway.cache.get(None, signature) is not None

    assert post(client, COUNTRIES).json() == COUNTRIES_RESULT
    assert len(fake_upstream.query_calls) == 1


def test_session_cookie_hit_skips_upstream(client, fake_upstream):
    cookie = {"cookie": "session=abc123"}
    first = post(client, COUNTRIES, headers=cookie)
    second = post(client, COUNTRIES, headers=cookie)

    assert first.json() == second.json() == COUNTRIES_RESULT
    assert len(fake_upstream.query_calls) == 1
    assert fake_upstream.query_calls[0].headers["cookie"] == "session=abc123"


def test_sessions_never_share_cached_results(client, fake_upstream):
    post(client, COUNTRIES, headers={"cookie": "session=s1"})
    fake_upstream.response = {"data": {"countries": [{"code": "FR", "name": "France"}]}}
    response = post(client, COUNTRIES, headers={"cookie": "session=s2"})

    assert response.json()["data"]["countries"][0]["code"] == "FR"
    assert len(fake_upstream.query_calls) == 2
    post(client, COUNTRIES)
    assert len(fake_upstream.query_calls) == 3


def test_variables_are_part_of_the_cache_key(client, fake_upstream):
    query = "query One($code: ID!) { country(code: $code) { name } }"
    fake_upstream.response = {"data": {"country": {"name": "United States"}}}
    for code in ("US", "FR", "US"):
        client.post(
            "/graphql",
            json={"query": query, "variables": {"code": code}, "operationName": "One"},
        )
    assert [c.body["variables"] for c in fake_upstream.query_calls] == [
        {"code": "US"},
        {"code": "FR"},
    ]


def test_caller_headers_reach_upstream(client, fake_upstream):
    post(client, COUNTRIES, headers={"authorization": "Bearer token"})
    [call] = fake_upstream.query_calls
    assert call.headers["authorization"] == "Bearer token"
    assert call.headers["host"] == "upstream.test"


def test_validation_errors_never_reach_upstream(client, fake_upstream):
    response = post(client, "{ planets { name } }")

    assert response.status_code == 200
    assert "planets" in response.json()["errors"][0]["message"]
    assert fake_upstream.query_calls == []


def test_syntax_errors_never_reach_upstream(client, fake_upstream):
    response = post(client, "{ countries { code ")

    assert response.json()["errors"][0]["message"].startswith("Syntax Error")
    assert fake_upstream.query_calls == []


def test_unknown_operation_name(client, fake_upstream):
    response = client.post(
        "/graphql", json={"query": "query A { countries { code } }", "operationName": "B"}
    )
    assert response.json()["errors"][0]["extensions"]["code"] == "BAD_USER_INPUT"
    assert fake_upstream.query_calls == []


def test_mutations_are_never_cached(client, fake_upstream):
    fake_upstream.response = {"data": {"touch": True}}
    post(client, "mutation { touch }")
    response = post(client, "mutation { touch }")

    assert response.json() == {"data": {"touch": True}}
    assert len(fake_upstream.query_calls) == 2


def test_results_with_errors_are_not_cached(client, fake_upstream):
    fake_upstream.response = {"data": None, "errors": [{"message": "rate limited"}]}
    post(client, COUNTRIES)
    response = post(client, COUNTRIES)

    assert response.json() == fake_upstream.response
    assert len(fake_upstream.query_calls) == 2


def test_upstream_failure_is_a_graphql_error(client, fake_upstream):
    fake_upstream.error = httpx.ConnectError("connection refused")
    response = post(client, COUNTRIES)

    assert response.status_code == 200
    [error] = response.json()["errors"]
    assert error["extensions"]["code"] == "UPSTREAM_ERROR"


def test_upstream_timeout_has_distinct_code(client, fake_upstream):
    fake_upstream.error = httpx.ReadTimeout("too slow")
    response = post(client, COUNTRIES)
    assert response.json()["errors"][0]["extensions"]["code"] == "UPSTREAM_TIMEOUT"


def test_batched_requests_keep_order(client, fake_upstream):
    fake_upstream.response = {"data": {"touch": True}}
    response = client.post(
        "/graphql",
        json=[{"query": "mutation { touch }"}, {"query": "{ planets { name } }"}],
    )

    [first, second] = response.json()
    assert first == {"data": {"touch": True}}
    assert "errors" in second


def test_batch_limit(client):
    batch = [{"query": COUNTRIES}] * (general.BATCH_LIMIT + 1)
    response = client.post("/graphql", json=batch)

    assert response.status_code == 400
    assert "limited" in response.json()["errors"][0]["message"]


def test_empty_batch(client):
    assert client.post("/graphql", json=[]).status_code == 400


def test_missing_query_is_a_graphql_error(client, fake_upstream):
    response = client.post("/graphql", json={"variables": {}})

    assert response.status_code == 400
    [error] = response.json()["errors"]
    assert error["extensions"]["code"] == "BAD_REQUEST"
    assert "query" in error["message"]
    assert fake_upstream.query_calls == []


def test_non_object_variables_are_a_graphql_error(client):
    response = client.post("/graphql", json={"query": COUNTRIES, "variables": [1]})

    assert response.status_code == 400
    assert response.json()["errors"][0]["extensions"]["code"] == "BAD_REQUEST"


def test_malformed_json_is_a_graphql_error(client, fake_upstream):
    response = client.post(
        "/graphql",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 400
    assert "invalid JSON" in response.json()["errors"][0]["message"]
    assert fake_upstream.query_calls == []


def test_bad_batch_item_fails_alone(client, fake_upstream):
    response = client.post("/graphql", json=[{"query": COUNTRIES}, {"nope": 1}])

    assert response.status_code == 200
    [first, second] = response.json()
    assert first == COUNTRIES_RESULT
    assert second["errors"][0]["extensions"]["code"] == "BAD_REQUEST"
    assert len(fake_upstream.query_calls) == 1


def test_client_accept_encoding_is_not_forwarded(client, fake_upstream):
    post(client, COUNTRIES, headers={"accept-encoding": "gzip, deflate, br, zstd"})

    [call] = fake_upstream.query_calls
    assert call.headers["accept-encoding"] == "gzip, deflate, br"


def test_string_errors_from_upstream_are_passed_through(client, fake_upstream):
    fake_upstream.response = {"data": None, "errors": ["boom"]}
    response = post(client, COUNTRIES)

    assert response.status_code == 200
    assert response.json() == {"data": None, "errors": [{"message": "boom"}]}


def test_get_executes_queries(client, fake_upstream):
    response = client.get("/graphql", params={"query": COUNTRIES})
    assert response.json() == COUNTRIES_RESULT


def test_get_with_variables(client, fake_upstream):
    fake_upstream.response = {"data": {"country": {"name": "United States"}}}
    response = client.get(
        "/graphql",
        params={
            "query": "query One($code: ID!) { country(code: $code) { name } }",
            "variables": '{"code": "US"}',
        },
    )
    assert response.json() == fake_upstream.response
    assert fake_upstream.query_calls[0].body["variables"] == {"code": "US"}


def test_get_rejects_bad_variables(client):
    response = client.get("/graphql", params={"query": COUNTRIES, "variables": "{nope"})
    assert response.status_code == 400


def test_get_refuses_mutations(client, fake_upstream):
    response = client.get("/graphql", params={"query": "mutation { touch }"})
    assert "errors" in response.json()
    assert fake_upstream.query_calls == []


def test_get_without_query_serves_graphiql(client):
    response = client.get("/graphql", headers={"accept": "text/html"})
    assert response.status_code == 200
    assert "graphiql" in response.text


def test_schema_download(client):
    response = client.get("/graphql/schema.gql")
    assert "attachment" in response.headers["content-disposition"]
    assert "type Country" in response.text


def test_health(client):
    assert client.get("/health").status_code == 200


def test_startup_fails_without_upstream_schema():
    def handler(request):
        return httpx.Response(503, text="<html>unavailable</html>")

    app = create_app(
        executor=RemoteExecutor(url=UPSTREAM_URL, transport=httpx.MockTransport(handler))
    )
    with pytest.raises(UpstreamResponseError):
        with TestClient(app):
            pass


def test_refresh_swaps_schema_while_serving(fake_upstream):
    app = create_app(executor=fake_upstream.executor(), refresh_interval=0.05)
    with TestClient(app) as client:
        query = "{ countries { code continent } }"
        assert "errors" in post(client, query).json()

        fake_upstream.schema = build_schema(COUNTRIES_V2_SDL)
        fake_upstream.response = {"data": {"countries": [{"code": "US", "continent": "NA"}]}}
        deadline = time.monotonic() + 5
        while "continent" not in app.state.gateway.registry.get().type_map["Country"].fields:
            assert time.monotonic() < deadline
            time.sleep(0.02)

        assert post(client, query).json() == fake_upstream.response


def test_shutdown_stops_refresh(fake_upstream):
    app = create_app(executor=fake_upstream.executor(), refresh_interval=0.02)
    with TestClient(app):
        time.sleep(0.1)
    assert not app.state.refresher.running

    calls = len(fake_upstream.introspection_calls)
    time.sleep(0.1)
    assert len(fake_upstream.introspection_calls) == calls
