"""
Projects (spaces) endpoints: CRUD, chat membership and custom instructions.
"""

import logging

from fastapi import APIRouter, HTTPException

from app.schemas.projects import (
    ChatAssignRequest,
    ProjectCreateRequest,
    ProjectInstructionsRequest,
    ProjectUpdateRequest,
)
from app.services import projects_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/projects", tags=["projects"])


def _require_project(project_id: str) -> dict:
    project = projects_service.get_project(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.get("", summary="All projects with chat counts")
def list_projects() -> dict:
    return {"projects": projects_service.get_projects()}


@router.post("", status_code=201, summary="Create a project")
def create_project(body: ProjectCreateRequest) -> dict:
    project = projects_service.create_project(body.name, body.description, body.color, body.icon)
    if project is None:
        raise HTTPException(status_code=500, detail="Failed to create project")
    return project


@router.get("/chat-counts", summary="Chat count per project")
def chat_counts() -> dict:
    return {"counts": projects_service.get_project_chat_counts()}


@router.post("/assign-chat", summary="Move a chat into or out of a project")
def assign_chat(body: ChatAssignRequest) -> dict:
    if body.project_id is not None:
        _require_project(body.project_id)
    if not projects_service.assign_chat_to_project(body.chat_id, body.project_id):
        raise HTTPException(status_code=404, detail="Chat not found")
    return {"success": True}


@router.get("/{project_id}", summary="Project with instructions and chats")
def get_project(project_id: str) -> dict:
    project = projects_service.get_project_with_details(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.patch("/{project_id}", summary="Update a project")
def update_project(project_id: str, body: ProjectUpdateRequest) -> dict:
    project = projects_service.update_project(project_id, body.model_dump(exclude_unset=True))
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.delete("/{project_id}", summary="Delete a project (its chats are kept)")
def delete_project(project_id: str) -> dict:
    if not projects_service.delete_project(project_id):
        raise HTTPException(status_code=404, detail="Project not found")
    return {"success": True}


@router.get("/{project_id}/chats", summary="Chats in a project")
def project_chats(project_id: str) -> dict:
    _require_project(project_id)
    return {"chats": projects_service.get_project_chats(project_id)}


@router.get("/{project_id}/instructions", summary="Project instructions")
def get_instructions(project_id: str) -> dict:
    _require_project(project_id)
    return {"instructions": projects_service.get_project_instructions(project_id)}


@router.put("/{project_id}/instructions", summary="Create or replace project instructions")
def save_instructions(project_id: str, body: ProjectInstructionsRequest) -> dict:
    _require_project(project_id)
    instructions = projects_service.save_project_instructions(project_id, body.content)
    if instructions is None:
        raise HTTPException(status_code=500, detail="Failed to save instructions")
    return {"instructions": instructions}


@router.delete("/{project_id}/instructions", summary="Remove project instructions")
def delete_instructions(project_id: str) -> dict:
    _require_project(project_id)
    return {"success": projects_service.delete_project_instructions(project_id)}
