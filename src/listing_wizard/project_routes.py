"""
Plan, usage and project API routes
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from .dependencies import (
    get_current_user_id,
    get_project_store,
    get_renderer,
    get_subscription_service,
    get_usage_meter,
)
from .exceptions import NotFound
from .schemas import Project, ProjectStatus
from .services.plan_policy import plan_summaries
from .services.preview_renderer import PreviewRenderer
from .services.project_store import ProjectStore, project_key
from .services.subscription_service import SubscriptionService
from .services.usage_meter import UsageMeter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["projects"])


class PlanInfoResponse(BaseModel):
    """Response model for plan information"""
    name: str
    display_name: str
    price_monthly: float
    features: List[str]
    limits: Dict[str, int]


class UsageResponse(BaseModel):
    """Response model for the current month's usage"""
    plan: str
    month: str
    usage: Dict[str, Dict[str, Any]]


def _owned_project(store: ProjectStore, project_id: str, user_id: str) -> Project:
    """Load a project, hiding projects of other users behind NotFound"""
    project = store.get(project_id)
    if project.owner_id != user_id:
        raise NotFound(project_key(project_id))
    return project


@router.get("/plans", response_model=List[PlanInfoResponse])
async def get_plans():
    """All subscription plans and their monthly limits"""
    return plan_summaries()


@router.get("/usage", response_model=UsageResponse)
def get_usage(
    user_id: str = Depends(get_current_user_id),
    usage_meter: UsageMeter = Depends(get_usage_meter),
    subscriptions: SubscriptionService = Depends(get_subscription_service)
):
    """Usage statistics for the current UTC month"""
    usage = usage_meter.get_usage(user_id)
    return UsageResponse(
        plan=subscriptions.get_plan(user_id).value,
        month=usage.month,
        usage=usage_meter.get_usage_stats(user_id),
    )


@router.get("/projects")
def list_projects(
    status_filter: Optional[ProjectStatus] = Query(None, alias="status"),
    user_id: str = Depends(get_current_user_id),
    store: ProjectStore = Depends(get_project_store)
):
    """The user's projects, newest first, optionally only those with the given status"""
    return [
        project.to_record()
        for project in store.list(user_id)
        if status_filter is None or project.status == status_filter
    ]


@router.get("/projects/{project_id}")
def get_project(
    project_id: str,
    user_id: str = Depends(get_current_user_id),
    store: ProjectStore = Depends(get_project_store)
):
    return _owned_project(store, project_id, user_id).to_record()


@router.get("/projects/{project_id}/preview", response_class=HTMLResponse)
def preview_project(
    project_id: str,
    download: bool = Query(False),
    user_id: str = Depends(get_current_user_id),
    store: ProjectStore = Depends(get_project_store),
    renderer: PreviewRenderer = Depends(get_renderer)
):
    """
    Listing HTML of a project

    With ?download=true the document is sent as an attachment named after the title.
    """
    project = _owned_project(store, project_id, user_id)
    headers = {}
    if download:
        headers["Content-Disposition"] = f'attachment; filename="{renderer.export_filename(project)}"'
    return HTMLResponse(content=renderer.render(project), headers=headers)


@router.delete("/projects/{project_id}")
def delete_project(
    project_id: str,
    user_id: str = Depends(get_current_user_id),
    store: ProjectStore = Depends(get_project_store)
):
    """Delete a project; deleting an already missing project succeeds"""
    try:
        _owned_project(store, project_id, user_id)
    except NotFound:
        return {"success": True}
    store.delete(project_id)
    return {"success": True}
