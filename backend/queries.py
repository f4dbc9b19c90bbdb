# queries.py — Owner-scoped data access for PRs, workspaces and defaults
#
# Every statement filters on user_id. Functions return wire-format dicts
# (camelCase keys) so cached values never hold ORM state.

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cache import QueryCache
from errors import ConflictError, NotFoundError, ValidationError
from logging_system import TimedOperation
from models import (
    PullRequest, Workspace, Defaults, PRCategory, PRStatus, PRPriority, utcnow,
)

logger = logging.getLogger("pr-board.queries")

PR_NAMESPACE = "prs"
WORKSPACE_NAMESPACE = "workspaces"
DEFAULTS_KEY = "global"

# snake_case attribute -> camelCase wire name
PR_WIRE_FIELDS = {
    "title": "title",
    "category": "category",
    "project": "project",
    "service": "service",
    "author": "author",
    "description": "description",
    "status": "status",
    "priority": "priority",
    "links": "links",
    "scheduled_date": "scheduledDate",
    "scheduled_time": "scheduledTime",
    "email_reminder": "emailReminder",
    "calendar_event": "calendarEvent",
}

DEFAULTS_WIRE_FIELDS = {
    "default_project": "defaultProject",
    "default_service": "defaultService",
    "default_email": "defaultEmail",
    "default_author": "defaultAuthor",
}


# ============================================================
# SERIALIZATION
# ============================================================

def _ts(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def _value(v: Any) -> Any:
    return v.value if hasattr(v, "value") else v


def pr_to_dict(pr: PullRequest) -> Dict[str, Any]:
    data = {"id": pr.id}
    for attr, wire in PR_WIRE_FIELDS.items():
        data[wire] = _value(getattr(pr, attr))
    data["links"] = list(pr.links or [])
    data["version"] = pr.version
    data["createdAt"] = _ts(pr.created_at)
    data["updatedAt"] = _ts(pr.updated_at)
    return data


def workspace_to_dict(ws: Workspace) -> Dict[str, Any]:
    return {
        "id": ws.id,
        "name": ws.name,
        "type": _value(ws.type),
        "createdAt": _ts(ws.created_at),
    }


def defaults_to_dict(row: Optional[Defaults]) -> Dict[str, Any]:
    if row is None:
        return {}
    data = {"key": row.key}
    for attr, wire in DEFAULTS_WIRE_FIELDS.items():
        data[wire] = getattr(row, attr)
    data["updatedAt"] = _ts(row.updated_at)
    return data


def check_category_names(category: str, project: Optional[str], service: Optional[str]) -> None:
    """The category picks which name field is authoritative; that one must be non-empty."""
    if _value(category) == PRCategory.PROJECT.value and not (project or "").strip():
        raise ValidationError("Project name is required for project-type PRs")
    if _value(category) == PRCategory.SERVICE.value and not (service or "").strip():
        raise ValidationError("Service name is required for service-type PRs")


def _invalidate_prs(cache: QueryCache, owner_id: str) -> None:
    cache.invalidate(QueryCache.owner_prefix(PR_NAMESPACE, owner_id))


def _invalidate_workspaces(cache: QueryCache, owner_id: str) -> None:
    cache.invalidate(QueryCache.owner_prefix(WORKSPACE_NAMESPACE, owner_id))


# ============================================================
# PULL REQUESTS
# ============================================================

async def list_prs(
    db: AsyncSession,
    cache: QueryCache,
    owner_id: str,
    project: Optional[str] = None,
    status: Optional[str] = None,
    category: Optional[str] = None,
    service: Optional[str] = None,
) -> List[Dict[str, Any]]:
    status = _value(status)
    category = _value(category)
    key = QueryCache.make_key(
        PR_NAMESPACE, owner_id,
        project=project, status=status, category=category, service=service,
    )
    cached = cache.get(key)
    if cached is not None:
        logger.debug("prs.list cache hit owner=%s", owner_id)
        return cached
    # Taken before the query; a write committed meanwhile makes the result uncacheable
    generation = cache.generation(QueryCache.owner_prefix(PR_NAMESPACE, owner_id))

    with TimedOperation(logger, "prs.list", owner=owner_id):
        stmt = select(PullRequest).where(PullRequest.user_id == owner_id)
        if project:
            stmt = stmt.where(PullRequest.project == project)
        if service:
            stmt = stmt.where(PullRequest.service == service)
        if status:
            stmt = stmt.where(PullRequest.status == PRStatus(status))
        if category:
            stmt = stmt.where(PullRequest.category == PRCategory(category))
        stmt = stmt.order_by(PullRequest.updated_at.desc())
        result = await db.execute(stmt)
        prs = [pr_to_dict(pr) for pr in result.scalars().all()]

    cache.set(key, prs, generation=generation)
    return prs


async def create_pr(db: AsyncSession, cache: QueryCache, owner_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Insert a PR for ``owner_id``. ``data`` uses model attribute names."""
    check_category_names(data.get("category"), data.get("project"), data.get("service"))

    fields = {k: v for k, v in data.items() if k in PR_WIRE_FIELDS and v is not None}
    fields.setdefault("status", PRStatus.INITIAL)
    fields.setdefault("priority", PRPriority.MEDIUM)

    with TimedOperation(logger, "prs.create", owner=owner_id):
        pr = PullRequest(user_id=owner_id, version=1, **fields)
        db.add(pr)
        await db.commit()
        await db.refresh(pr)

    _invalidate_prs(cache, owner_id)
    return pr_to_dict(pr)


async def update_pr(
    db: AsyncSession,
    cache: QueryCache,
    owner_id: str,
    pr_id: str,
    changes: Dict[str, Any],
    expected_version: Optional[int] = None,
) -> Optional[Dict[str, Any]]:
    """Apply ``changes`` to the owner's PR. Returns None when no such PR is visible."""
    stmt = select(PullRequest).where(PullRequest.id == pr_id, PullRequest.user_id == owner_id)
    pr = (await db.execute(stmt)).scalar_one_or_none()
    if pr is None:
        return None

    if expected_version is not None and expected_version != pr.version:
        raise ConflictError(
            f"PR was modified by another request (expected version {expected_version}, current {pr.version})"
        )

    fields = {k: v for k, v in changes.items() if k in PR_WIRE_FIELDS}
    check_category_names(
        fields.get("category", pr.category),
        fields.get("project", pr.project),
        fields.get("service", pr.service),
    )

    current_version = pr.version
    with TimedOperation(logger, "prs.update", owner=owner_id, pr=pr_id):
        # Compare-and-swap on version so concurrent writers cannot interleave
        result = await db.execute(
            update(PullRequest)
            .where(
                PullRequest.id == pr_id,
                PullRequest.user_id == owner_id,
                PullRequest.version == current_version,
            )
            .values(**fields, version=current_version + 1, updated_at=utcnow())
        )
        if result.rowcount == 0:
            await db.rollback()
            raise ConflictError("PR was modified by another request")
        await db.commit()

    _invalidate_prs(cache, owner_id)
    await db.refresh(pr)
    return pr_to_dict(pr)


async def delete_pr(db: AsyncSession, cache: QueryCache, owner_id: str, pr_id: str) -> bool:
    with TimedOperation(logger, "prs.delete", owner=owner_id, pr=pr_id):
        result = await db.execute(
            delete(PullRequest).where(PullRequest.id == pr_id, PullRequest.user_id == owner_id)
        )
        await db.commit()

    _invalidate_prs(cache, owner_id)
    return result.rowcount > 0


# ============================================================
# WORKSPACES
# ============================================================

async def list_workspaces(
    db: AsyncSession,
    cache: QueryCache,
    owner_id: str,
    type: Optional[str] = None,
) -> List[Dict[str, Any]]:
    type = _value(type)
    key = QueryCache.make_key(WORKSPACE_NAMESPACE, owner_id, type=type)
    cached = cache.get(key)
    if cached is not None:
        return cached
    generation = cache.generation(QueryCache.owner_prefix(WORKSPACE_NAMESPACE, owner_id))

    with TimedOperation(logger, "workspaces.list", owner=owner_id, type=type):
        stmt = select(Workspace).where(Workspace.user_id == owner_id)
        if type:
            stmt = stmt.where(Workspace.type == PRCategory(type))
        stmt = stmt.order_by(Workspace.name.asc())
        result = await db.execute(stmt)
        items = [workspace_to_dict(ws) for ws in result.scalars().all()]

    cache.set(key, items, generation=generation)
    return items


async def create_workspace(
    db: AsyncSession,
    cache: QueryCache,
    owner_id: str,
    name: str,
    type: str,
) -> Dict[str, Any]:
    name = (name or "").strip()
    if not name or not type:
        raise ValidationError("Missing fields")
    type = PRCategory(_value(type))

    existing = await db.execute(
        select(Workspace.id).where(
            Workspace.user_id == owner_id,
            Workspace.type == type,
            Workspace.name == name,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("Duplicate workspace name for this user")

    with TimedOperation(logger, "workspaces.create", owner=owner_id, type=type.value):
        ws = Workspace(user_id=owner_id, name=name, type=type)
        db.add(ws)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError("Duplicate workspace name for this user")
        await db.refresh(ws)

    _invalidate_workspaces(cache, owner_id)
    return workspace_to_dict(ws)


async def count_referencing_prs(db: AsyncSession, owner_id: str, name: str, type: str) -> int:
    category = PRCategory(_value(type))
    name_column = PullRequest.project if category == PRCategory.PROJECT else PullRequest.service
    result = await db.execute(
        select(func.count()).select_from(PullRequest).where(
            PullRequest.user_id == owner_id,
            PullRequest.category == category,
            name_column == name,
        )
    )
    return result.scalar_one()


async def delete_workspace(
    db: AsyncSession,
    cache: QueryCache,
    owner_id: str,
    name: str,
    type: str,
) -> None:
    name = (name or "").strip()
    if not name or not type:
        raise ValidationError("Missing type or name")
    category = PRCategory(_value(type))

    in_use = await count_referencing_prs(db, owner_id, name, category)
    if in_use:
        raise ConflictError("Workspace is in use by your PRs")

    with TimedOperation(logger, "workspaces.delete", owner=owner_id, type=category.value):
        result = await db.execute(
            delete(Workspace).where(
                Workspace.user_id == owner_id,
                Workspace.type == category,
                Workspace.name == name,
            )
        )
        await db.commit()

    if result.rowcount == 0:
        raise NotFoundError("Workspace not found")
    _invalidate_workspaces(cache, owner_id)


# ============================================================
# DEFAULTS
# ============================================================

async def get_defaults(db: AsyncSession) -> Dict[str, Any]:
    row = await db.get(Defaults, DEFAULTS_KEY)
    return defaults_to_dict(row)


async def update_defaults(db: AsyncSession, changes: Dict[str, Any]) -> Dict[str, Any]:
    """Upsert the global defaults row; only the supplied fields change."""
    row = await db.get(Defaults, DEFAULTS_KEY)
    if row is None:
        row = Defaults(key=DEFAULTS_KEY)
        db.add(row)
    for attr in DEFAULTS_WIRE_FIELDS:
        if attr in changes:
            setattr(row, attr, changes[attr])
    row.updated_at = utcnow()
    await db.commit()
    await db.refresh(row)
    return defaults_to_dict(row)
