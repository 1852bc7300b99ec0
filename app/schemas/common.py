"""Shared base for request bodies sent camelCase by the web client."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelRequest(BaseModel):
    """Accepts camelCase keys (and snake_case); fields are snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
