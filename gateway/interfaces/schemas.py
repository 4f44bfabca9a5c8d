from pydantic import BaseModel
from pydantic.types import JsonValue


class GraphQLRequest(BaseModel):
    operationName: str | None = None
    query: str
    variables: dict[str, JsonValue] | None = None
    extensions: dict[str, JsonValue] | None = None
