from typing import Annotated, Any
import asyncio
from json import loads, JSONDecodeError
from io import BytesIO
from fastapi import Depends, APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from graphql import OperationType, print_schema
from pydantic import ValidationError
from gateway.config.general import general
from gateway.interfaces.schemas import GraphQLRequest
from gateway.interfaces.operation import ExecutionResult
from gateway.services.execution import GraphQLGateway, error_result


router = APIRouter(prefix=general.GRAPHQL_PATH)

GRAPHIQL_HTML = """<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>{title}</title>
    <style>body {{ margin: 0; height: 100vh; }} #graphiql {{ height: 100vh; }}</style>
    <link rel="stylesheet" href="https://unpkg.com/graphiql@3/graphiql.min.css" />
  </head>
  <body>
    <div id="graphiql">Loading...</div>
    <script crossorigin src="https://unpkg.com/react@18/umd/react.production.min.js"></script>
    <script crossorigin src="https://unpkg.com/react-dom@18/umd/react-dom.production.min.js"></script>
    <script crossorigin src="https://unpkg.com/graphiql@3/graphiql.min.js"></script>
    <script>
      const fetcher = GraphiQL.createFetcher({{ url: window.location.pathname }});
      ReactDOM.createRoot(document.getElementById("graphiql")).render(
        React.createElement(GraphiQL, {{ fetcher }})
      );
    </script>
  </body>
</html>
"""


def get_gateway(request: Request) -> GraphQLGateway:
    return request.app.state.gateway


def bad_request(message: str) -> JSONResponse:
    return JSONResponse(
        error_result(message, "BAD_REQUEST").formatted, status_code=400
    )


def invalid_request_message(error: ValidationError) -> str:
    details = "; ".join(
        f"{'.'.join(str(part) for part in detail['loc']) or 'body'}: {detail['msg']}"
        for detail in error.errors()
    )
    return f"Invalid GraphQL request: {details}"


async def run_item(gateway: GraphQLGateway, raw: Any, headers) -> ExecutionResult:
    # One bad entry of a batch must not take the others down
    try:
        body = GraphQLRequest.model_validate(raw)
    except ValidationError as e:
        return error_result(invalid_request_message(e), "BAD_REQUEST")
    return await gateway.execute(body, headers)


@router.post("")
async def graphql_request(
    request: Request,
    gateway: Annotated[GraphQLGateway, Depends(get_gateway)],
):
    try:
        payload = await request.json()
    except ValueError:
        return bad_request("POST body sent invalid JSON.")
    if isinstance(payload, dict):
        try:
            body = GraphQLRequest.model_validate(payload)
        except ValidationError as e:
            return bad_request(invalid_request_message(e))
        result = await gateway.execute(body, request.headers)
        return result.formatted
    if not isinstance(payload, list):
        return bad_request("POST body is expected to be an object or a list of objects.")
    if not general.BATCHING:
        return bad_request("Batching is not supported.")
    if not payload:
        return bad_request("Received an empty list in the batched request.")
    if len(payload) > general.BATCH_LIMIT:
        return bad_request(
            f"Batching is limited to {general.BATCH_LIMIT} operations per request."
        )
    results = await asyncio.gather(
        *(run_item(gateway, item, request.headers) for item in payload)
    )
    return [result.formatted for result in results]


@router.get("")
async def graphql_get(
    request: Request,
    gateway: Annotated[GraphQLGateway, Depends(get_gateway)],
):
    params = request.query_params
    if "query" not in params:
        if general.GRAPHIQL:
            return HTMLResponse(GRAPHIQL_HTML.format(title=general.PROJECT_NAME))
        return bad_request("Missing query parameter.")
    raw: dict[str, Any] = {
        "query": params["query"],
        "operationName": params.get("operationName") or None,
    }
    try:
        for key in ("variables", "extensions"):
            if params.get(key):
                raw[key] = loads(params[key])
        body = GraphQLRequest.model_validate(raw)
    except (JSONDecodeError, ValidationError) as e:
        return bad_request(f"Invalid request parameters: {e}")
    result = await gateway.execute(body, request.headers, allowed=(OperationType.QUERY,))
    return result.formatted


@router.get("/schema.gql")
async def graphql_schema(gateway: Annotated[GraphQLGateway, Depends(get_gateway)]):
    headers = {"Content-Disposition": 'attachment; filename="schema.gql"'}
    return StreamingResponse(
        BytesIO(print_schema(gateway.registry.get()).encode()), headers=headers
    )
