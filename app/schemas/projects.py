"""Schemas for the projects (spaces) endpoints."""

from pydantic import Field

from app.schemas.common import CamelRequest


class ProjectCreateRequest(CamelRequest):
    name: str = Field(..., min_length=1)
    description: str | None = None
    color: str | None = Field(None, description="Hex colour; defaults to #FE5102.")
    icon: str | None = Field(None, description="Icon name; defaults to folder.")


class ProjectUpdateRequest(CamelRequest):
    name: str | None = Field(None, min_length=1)
    description: str | None = None
    color: str | None = None
    icon: str | None = None


class ProjectInstructionsRequest(CamelRequest):
    content: str


class ChatAssignRequest(CamelRequest):
    """Move chat_id into project_id, or out of any project when project_id is null."""

    chat_id: str
    project_id: str | None = None
