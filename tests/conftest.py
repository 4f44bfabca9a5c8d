from typing import Any
from dataclasses import dataclass
from json import loads
import httpx
import pytest
from graphql import GraphQLSchema, build_schema, introspection_from_schema
from gateway.adapters.upstream import RemoteExecutor
from gateway.interfaces.operation import ExecutionResult, Operation


UPSTREAM_URL = "http://upstream.test/graphql"

COUNTRIES_SDL = """
type Country {
  code: ID!
  name: String!
}

type Query {
  countries: [Country!]!
  country(code: ID!): Country
}

type Mutation {
  touch: Boolean
}
"""

# Same as above plus a field, so it is a real change
COUNTRIES_V2_SDL = COUNTRIES_SDL.replace("name: String!", "name: String!\n  continent: String")

COUNTRIES_RESULT = {"data": {"countries": [{"code": "US", "name": "United States"}]}}


@dataclass
class Recorded:
    headers: httpx.Headers
    body: dict[str, Any]

    @property
    def is_introspection(self) -> bool:
        return "__schema" in self.body["query"]


class FakeUpstream:
    """In-process stand-in for the remote GraphQL service."""

    def __init__(self, sdl: str = COUNTRIES_SDL):
        self.schema = build_schema(sdl)
        self.response: Any = COUNTRIES_RESULT
        self.status_code = 200
        self.error: Exception | None = None
        self.requests: list[Recorded] = []

    @property
    def query_calls(self) -> list[Recorded]:
        return [r for r in self.requests if not r.is_introspection]

    @property
    def introspection_calls(self) -> list[Recorded]:
        return [r for r in self.requests if r.is_introspection]

    def handler(self, request: httpx.Request) -> httpx.Response:
        recorded = Recorded(headers=request.headers, body=loads(request.content))
        self.requests.append(recorded)
        if self.error is not None:
            raise self.error
        if recorded.is_introspection:
            return httpx.Response(200, json={"data": introspection_from_schema(self.schema)})
        return httpx.Response(self.status_code, json=self.response)

    def executor(self, timeout: float | None = None) -> RemoteExecutor:
        return RemoteExecutor(
            url=UPSTREAM_URL, timeout=timeout, transport=httpx.MockTransport(self.handler)
        )


class ScriptedIntrospection:
    """Executor whose introspection answers follow a script of schemas or errors."""

    def __init__(self, *script: GraphQLSchema | Exception):
        self.script = list(script)
        self.calls: list[tuple[Operation, Any]] = []

    async def execute(self, operation: Operation, headers=None) -> ExecutionResult:
        self.calls.append((operation, headers))
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        return ExecutionResult(data=introspection_from_schema(step))


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def schema_a() -> GraphQLSchema:
    return build_schema(COUNTRIES_SDL)


@pytest.fixture
def schema_b() -> GraphQLSchema:
    return build_schema(COUNTRIES_V2_SDL)
