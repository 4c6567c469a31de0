"""
API v1 Router

Context entities are addressed by id or slug; creates name their parent in
the body (organizationId, projectId).
"""

from fastapi import APIRouter

from . import labels, me, memberships, organizations, system, tasks
from .projects import projects_router, workspaces_router

router = APIRouter()

router.include_router(me.router, prefix="/me", tags=["Me"])
router.include_router(organizations.router, prefix="/organizations", tags=["Organizations"])
router.include_router(workspaces_router, prefix="/workspaces", tags=["Workspaces"])
router.include_router(projects_router, prefix="/projects", tags=["Projects"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
router.include_router(labels.router, prefix="/labels", tags=["Labels"])
router.include_router(memberships.router, prefix="/memberships", tags=["Memberships"])
router.include_router(system.router, prefix="/system", tags=["System"])


@router.get("/", tags=["API"])
async def api_root():
    """API root — returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/me",
            "/organizations",
            "/workspaces",
            "/projects",
            "/tasks",
            "/labels",
            "/memberships",
            "/system/users",
        ],
    }
