from __future__ import annotations
from logging import getLogger
from graphql import (
    GraphQLSchema,
    build_client_schema,
    get_introspection_query,
    lexicographic_sort_schema,
    parse,
    print_schema,
)
from gateway.interfaces.operation import Executor, Operation, as_error


logger = getLogger(__name__)

INTROSPECTION_DOCUMENT = parse(get_introspection_query(descriptions=True))


class IntrospectionError(Exception):
    pass


class SchemaNotLoadedError(RuntimeError):
    pass


async def introspect(executor: Executor) -> GraphQLSchema:
    # No caller here, so the executor falls back to its default headers
    result = await executor.execute(
        Operation(document=INTROSPECTION_DOCUMENT, operation_name="IntrospectionQuery")
    )
    if result.errors:
        messages = "; ".join(str(as_error(error).get("message")) for error in result.errors)
        raise IntrospectionError(f"Upstream rejected introspection: {messages}")
    if not isinstance(result.data, dict) or "__schema" not in result.data:
        raise IntrospectionError("Upstream introspection returned no schema")
    try:
        return build_client_schema(result.data)  # type: ignore[arg-type]
    except (TypeError, ValueError) as e:
        raise IntrospectionError(f"Invalid introspection result: {e}") from e


def canonical_sdl(schema: GraphQLSchema) -> str:
    """SDL with types, fields and arguments in lexicographic order.

    Upstream servers are free to return introspection in any order, so
    printing the raw schema would report spurious changes.
    """
    return print_schema(lexicographic_sort_schema(schema))


class SchemaRegistry:
    """Holds the one active schema.

    Readers take a reference with `get()` and keep using that object for the
    whole request; `set()` rebinds the reference and never edits a schema, so a
    reader can never observe a mix of old and new types.
    """

    _schema: GraphQLSchema | None

    def __init__(self, schema: GraphQLSchema | None = None):
        self._schema = schema

    @property
    def loaded(self) -> bool:
        return self._schema is not None

    def get(self) -> GraphQLSchema:
        schema = self._schema
        if schema is None:
            raise SchemaNotLoadedError("No schema has been loaded from upstream yet")
        return schema

    def set(self, schema: GraphQLSchema) -> None:
        self._schema = schema

    async def initialize(self, executor: Executor) -> GraphQLSchema:
        schema = await introspect(executor)
        self.set(schema)
        logger.info(
            "schema loaded",
            extra={"event": "schema-loaded", "types": len(schema.type_map)},
        )
        return schema
