"""Schemas for the research endpoint."""

from typing import Any

from pydantic import Field

from app.research.types import ResearchOptions
from app.schemas.common import CamelRequest


class ResearchRequest(CamelRequest):
    """
    Request body for POST /api/research.
    query stays untyped so a missing or non-string query gets the endpoint's own 400 message.
    """

    query: Any = Field(None, description="The research question.")
    options: ResearchOptions | None = None
