# routers/prs.py — Owner-scoped PR board: list, create, update, delete
import logging
from typing import Optional, List

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from cache import QueryCache, get_query_cache
from database import get_db_session
from errors import NotFoundError, ValidationError
from models import PRCategory, PRPriority, PRStatus
import queries

logger = logging.getLogger("pr-board.prs")

router = APIRouter(prefix="/api/prs", tags=["Pull Requests"])

# Fields that may be absent but never explicitly cleared
REQUIRED_ON_UPDATE = ("title", "category", "author", "status", "priority")


# ============================================================
# SCHEMAS
# ============================================================

class PRLink(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str = Field(..., min_length=1)
    label: Optional[str] = None


class PRCreate(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    title: str = Field(..., min_length=1, max_length=500)
    category: PRCategory
    project: Optional[str] = None
    service: Optional[str] = None
    author: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: Optional[PRStatus] = None
    priority: Optional[PRPriority] = None
    links: List[PRLink] = []
    scheduled_date: Optional[str] = Field(None, alias="scheduledDate", pattern=r"^\d{4}-\d{2}-\d{2}$")
    scheduled_time: Optional[str] = Field(None, alias="scheduledTime", pattern=r"^\d{2}:\d{2}(:\d{2})?$")
    email_reminder: bool = Field(False, alias="emailReminder")
    calendar_event: bool = Field(False, alias="calendarEvent")


class PRUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: Optional[str] = None
    version: Optional[int] = None
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    category: Optional[PRCategory] = None
    project: Optional[str] = None
    service: Optional[str] = None
    author: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    status: Optional[PRStatus] = None
    priority: Optional[PRPriority] = None
    links: Optional[List[PRLink]] = None
    scheduled_date: Optional[str] = Field(None, alias="scheduledDate", pattern=r"^\d{4}-\d{2}-\d{2}$")
    scheduled_time: Optional[str] = Field(None, alias="scheduledTime", pattern=r"^\d{2}:\d{2}(:\d{2})?$")
    email_reminder: Optional[bool] = Field(None, alias="emailReminder")
    calendar_event: Optional[bool] = Field(None, alias="calendarEvent")


def _links(links: Optional[List[PRLink]]) -> Optional[list]:
    if links is None:
        return None
    return [link.model_dump(exclude_none=True) for link in links]


# ============================================================
# ENDPOINTS
# ============================================================

@router.get("")
async def list_prs(
    project: Optional[str] = Query(None),
    status: Optional[PRStatus] = Query(None),
    category: Optional[PRCategory] = Query(None),
    service: Optional[str] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    cache: QueryCache = Depends(get_query_cache),
):
    prs = await queries.list_prs(
        db, cache, current_user.id,
        project=project, status=status, category=category, service=service,
    )
    return {"prs": prs}


@router.post("", status_code=201)
async def create_pr(
    body: PRCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    cache: QueryCache = Depends(get_query_cache),
):
    """Create a PR owned by the caller. The owner always comes from the session."""
    data = body.model_dump(exclude={"links"})
    data["links"] = _links(body.links)
    pr = await queries.create_pr(db, cache, current_user.id, data)
    logger.info("PR created: %s", pr["id"])
    return {"pr": pr}


@router.patch("")
async def update_pr(
    body: PRUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    cache: QueryCache = Depends(get_query_cache),
):
    """Partial update. Pass ``version`` to reject the write if the PR changed since it was read."""
    if not body.id:
        raise ValidationError("Missing id")

    changes = body.model_dump(exclude_unset=True, exclude={"id", "version", "links"})
    if "links" in body.model_fields_set:
        changes["links"] = _links(body.links) or []
    cleared = [f for f in REQUIRED_ON_UPDATE if f in changes and changes[f] is None]
    if cleared:
        raise ValidationError(f"Field cannot be null: {', '.join(cleared)}")

    pr = await queries.update_pr(
        db, cache, current_user.id, body.id, changes, expected_version=body.version,
    )
    if pr is None:
        raise NotFoundError("PR not found")
    return {"pr": pr}


@router.delete("", status_code=204, response_class=Response)
async def delete_pr(
    id: Optional[str] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    cache: QueryCache = Depends(get_query_cache),
):
    if not id:
        raise ValidationError("Missing id")
    await queries.delete_pr(db, cache, current_user.id, id)
    return Response(status_code=204)
