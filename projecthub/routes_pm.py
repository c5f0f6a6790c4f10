"""
projecthub/routes_pm.py

Project-manager endpoints: capacity, project creation and team staffing.

Every staffing change is capacity-guarded inside the mutating SQL statement
(see assignments.py); violations return 400 with a capacity message.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from projecthub import assignments
from projecthub.auth_context import AuthContext, get_db
from projecthub.authz import Capability
from projecthub.db import DbConnection
from projecthub.dependencies import require_capability
from projecthub.schemas_pm import MemberAddRequest, ProjectCreateRequest, ProjectStatusRequest, TeamLeaderRequest

router = APIRouter(
    prefix="/api/pm",
    tags=["pm"],
)


@router.get("/capacity")
def check_pm_capacity(
    ctx: AuthContext = Depends(require_capability(Capability.CAPACITY_VIEW)),
    conn: DbConnection = Depends(get_db),
) -> dict:
    return {"success": True, "data": {"pm": assignments.pm_capacity(conn, ctx)}}


@router.get("/projects")
def list_projects(
    ctx: AuthContext = Depends(require_capability(Capability.PROJECT_CREATE)),
    conn: DbConnection = Depends(get_db),
) -> dict:
    projects = assignments.list_managed_projects(conn, ctx)
    return {"success": True, "data": {"projects": projects, "total": len(projects)}}


@router.post("/projects", status_code=201)
def create_project(
    request: ProjectCreateRequest,
    ctx: AuthContext = Depends(require_capability(Capability.PROJECT_CREATE)),
    conn: DbConnection = Depends(get_db),
) -> dict:
    project = assignments.create_project(conn, ctx, request.to_data())
    return {"success": True, "message": "Project created successfully", "data": {"project": project}}


@router.patch("/projects/{project_id}/status")
def update_project_status(
    request: ProjectStatusRequest,
    project_id: int = Path(..., ge=1),
    ctx: AuthContext = Depends(require_capability(Capability.PROJECT_CREATE)),
    conn: DbConnection = Depends(get_db),
) -> dict:
    project = assignments.update_project_status(conn, ctx, project_id, request.status)
    return {"success": True, "message": "Project status updated", "data": {"project": project}}


@router.put("/projects/{project_id}/team-leader")
def update_team_leader(
    request: TeamLeaderRequest,
    project_id: int = Path(..., ge=1),
    ctx: AuthContext = Depends(require_capability(Capability.TEAM_ASSIGN)),
    conn: DbConnection = Depends(get_db),
) -> dict:
    project = assignments.set_team_leader(conn, ctx, project_id, request.team_leader_id)
    message = "Team leader updated successfully" if request.team_leader_id else "Team leader removed from project"
    return {"success": True, "message": message, "data": {"project": project}}


@router.post("/projects/{project_id}/members")
def add_project_member(
    request: MemberAddRequest,
    project_id: int = Path(..., ge=1),
    ctx: AuthContext = Depends(require_capability(Capability.TEAM_ASSIGN)),
    conn: DbConnection = Depends(get_db),
) -> dict:
    project = assignments.add_member(conn, ctx, project_id, request.user_id)
    return {"success": True, "message": "Member added to project successfully", "data": {"project": project}}


@router.delete("/projects/{project_id}/members/{user_id}")
def remove_project_member(
    project_id: int = Path(..., ge=1),
    user_id: int = Path(..., ge=1),
    ctx: AuthContext = Depends(require_capability(Capability.TEAM_ASSIGN)),
    conn: DbConnection = Depends(get_db),
) -> dict:
    project = assignments.remove_member(conn, ctx, project_id, user_id)
    return {"success": True, "message": "Member removed from project", "data": {"project": project}}


@router.get("/team-leaders/available")
def get_available_team_leaders(
    ctx: AuthContext = Depends(require_capability(Capability.TEAM_ASSIGN)),
    conn: DbConnection = Depends(get_db),
) -> dict:
    users = assignments.available_team_leaders(conn, ctx)
    return {"success": True, "data": {"teamLeaders": users, "total": len(users)}}


@router.get("/members/available")
def get_available_members(
    ctx: AuthContext = Depends(require_capability(Capability.TEAM_ASSIGN)),
    conn: DbConnection = Depends(get_db),
) -> dict:
    users = assignments.available_members(conn, ctx)
    return {"success": True, "data": {"members": users, "total": len(users)}}
