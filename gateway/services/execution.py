from __future__ import annotations
from typing import Any, Collection, Mapping
from logging import getLogger
from graphql import GraphQLError, OperationType, get_operation_ast, parse, validate
from gateway.adapters.upstream import UpstreamError
from gateway.cache.response_cache import ResponseCache, operation_signature
from gateway.interfaces.operation import Executor, ExecutionResult, Operation
from gateway.interfaces.schemas import GraphQLRequest
from gateway.policies.session_key import extract_session_key
from gateway.schema.registry import SchemaRegistry


logger = getLogger(__name__)

ALL_OPERATIONS = frozenset(OperationType)


def error_result(message: str, code: str | None = None) -> ExecutionResult:
    error: dict[str, Any] = {"message": message}
    if code:
        error["extensions"] = {"code": code}
    return ExecutionResult.from_errors(error)


class GraphQLGateway:
    """Drives a single request through validate -> cache -> upstream."""

    def __init__(
        self,
        registry: SchemaRegistry,
        executor: Executor,
        cache: ResponseCache | None = None,
        cache_anonymous: bool = True,
    ):
        self.registry = registry
        self.executor = executor
        self.cache = cache
        self.cache_anonymous = cache_anonymous

    async def execute(
        self,
        body: GraphQLRequest,
        headers: Mapping[str, str] | None = None,
        allowed: Collection[OperationType] = ALL_OPERATIONS,
    ) -> ExecutionResult:
        # One schema reference for the whole request, even if a refresh swaps it meanwhile
        schema = self.registry.get()
        try:
            document = parse(body.query)
        except GraphQLError as e:
            return ExecutionResult.from_errors(e.formatted)
        errors = validate(schema, document)
        if errors:
            return ExecutionResult.from_errors(*(error.formatted for error in errors))
        operation_ast = get_operation_ast(document, body.operationName)
        if operation_ast is None:
            return error_result(
                "Could not determine what operation to execute.", "BAD_USER_INPUT"
            )
        if operation_ast.operation not in allowed:
            return error_result(
                f"Can only perform a {', '.join(op.value for op in allowed)} operation"
                " from this request.",
                "BAD_REQUEST",
            )

        operation = Operation(
            document=document,
            variables=body.variables or {},
            operation_name=body.operationName,
            extensions=body.extensions or {},
        )
        session_key = extract_session_key(headers)
        signature = None
        if self._cacheable(operation_ast.operation, session_key):
            signature = operation_signature(
                operation.query, operation.variables, operation.operation_name
            )
            cached = self.cache.get(session_key, signature)  # type: ignore[union-attr]
            if cached is not None:
                return cached

        try:
            result = await self.executor.execute(operation, headers)
        except UpstreamError as e:
            logger.error(
                "upstream call failed: %s", e, extra={"event": "upstream-error"}
            )
            return error_result(str(e), e.code)

        if signature is not None and not result.errors:
            self.cache.put(session_key, signature, result)  # type: ignore[union-attr]
        return result

    def _cacheable(self, operation_type: OperationType, session_key: str | None) -> bool:
        if self.cache is None or operation_type is not OperationType.QUERY:
            return False
        return session_key is not None or self.cache_anonymous
