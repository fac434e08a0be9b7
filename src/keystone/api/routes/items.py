"""Read accessors and user actions for the presentation layer."""

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from keystone.errors import ItemNotFoundError
from keystone.models.items import ActionStatus, ItemSource
from keystone.pipeline.actions import ItemActionService
from keystone.pipeline.brief import BriefGenerator
from keystone.pipeline.nudges import NudgeGenerator

from ..auth import verify_api_key

router = APIRouter(dependencies=[Depends(verify_api_key)])


class ItemActionRequest(BaseModel):
    action: Literal["done", "snooze", "ignore"]
    days: int = Field(default=1, ge=1, le=365, description="Snooze length; ignored otherwise")


# =============================================================================
# Canonical items
# =============================================================================


@router.get("/items")
async def list_items(
    request: Request,
    status: ActionStatus | None = None,
    owner_email: str | None = None,
    source: ItemSource | None = None,
    limit: int = Query(default=100, ge=1, le=500),
):
    items = await request.app.state.repository.list_items(
        status=status, owner_email=owner_email, source=source, limit=limit
    )
    return [item.to_api_dict() for item in items]


@router.post("/items/{item_id}/action")
async def apply_item_action(item_id: UUID, body: ItemActionRequest, request: Request):
    actions = ItemActionService(request.app.state.repository)
    try:
        if body.action == "done":
            item = await actions.mark_done(item_id)
        elif body.action == "snooze":
            item = await actions.snooze(item_id, days=body.days)
        else:
            item = await actions.ignore(item_id)
    except ItemNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return item.to_api_dict()


@router.get("/items/{item_id}/history")
async def item_history(item_id: UUID, request: Request):
    history = await ItemActionService(request.app.state.repository).history(item_id=item_id)
    return [entry.model_dump(mode="json") for entry in history]


# =============================================================================
# Spreadsheet rows
# =============================================================================


@router.get("/sheet-items")
async def list_sheet_items(
    request: Request,
    status: ActionStatus | None = None,
    owner_email: str | None = None,
    needs_owner_mapping: bool | None = None,
    is_overdue: bool | None = None,
    disappeared: bool | None = None,
):
    rows = await request.app.state.repository.list_rows(
        status=status,
        owner_email=owner_email,
        needs_owner_mapping=needs_owner_mapping,
        is_overdue=is_overdue,
        disappeared=disappeared,
    )
    return [row.to_api_dict() for row in rows]


@router.get("/waiting-on")
async def waiting_on(request: Request, owner_email: str):
    rows = await request.app.state.repository.list_waiting_on(owner_email)
    return [row.to_api_dict() for row in rows]


# =============================================================================
# Nudges
# =============================================================================


@router.get("/nudges")
async def active_nudges(request: Request):
    nudges = await NudgeGenerator(request.app.state.repository).active()
    return [n.model_dump(mode="json") for n in nudges]


@router.post("/nudges/{nudge_id}/dismiss")
async def dismiss_nudge(nudge_id: UUID, request: Request):
    try:
        await NudgeGenerator(request.app.state.repository).dismiss(nudge_id)
    except ItemNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return {"dismissed": True}


# =============================================================================
# Daily brief
# =============================================================================


@router.get("/brief")
async def latest_brief(request: Request):
    """Most recent stored brief, or null before the first one is generated."""
    brief = await BriefGenerator(request.app.state.repository).latest()
    return {"brief": brief.model_dump(mode="json") if brief else None}
