# sharing.py — Capability-token share links for read-only board reports
#
# A share link grants read access to one owner's full PR list to whoever
# holds the token. It is resolved without any session and is bounded by
# expiry and an active flag.

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from auth import CurrentUser
from cache import QueryCache
from config import APP_URL, SHARE_LINK_DAYS
from errors import NotFoundError
from logging_system import TimedOperation
from models import ShareLink, User, utcnow
from queries import list_prs

logger = logging.getLogger("pr-board.sharing")

TOKEN_BYTES = 32


class ShareLinkCreated(BaseModel):
    token: str
    share_url: str
    expires_at: datetime


class SharedReport(BaseModel):
    title: str
    created_by: str
    created_at: Optional[datetime] = None
    prs: List[Dict[str, Any]]
    access_count: int


def _ts(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def share_link_to_dict(link: ShareLink) -> Dict[str, Any]:
    return {
        "token": link.token,
        "title": link.title,
        "isActive": link.is_active,
        "accessCount": link.access_count,
        "lastAccessedAt": _ts(link.last_accessed_at),
        "expiresAt": _ts(link.expires_at),
        "createdAt": _ts(link.created_at),
    }


class ShareLinkService:
    def __init__(self, app_url: str = APP_URL, lifetime_days: int = SHARE_LINK_DAYS):
        self.app_url = app_url.rstrip("/")
        self.lifetime = timedelta(days=lifetime_days)

    def share_url(self, token: str) -> str:
        return f"{self.app_url}/share/{token}"

    async def create(self, db: AsyncSession, owner: CurrentUser) -> ShareLinkCreated:
        token = secrets.token_hex(TOKEN_BYTES)
        expires_at = utcnow() + self.lifetime

        with TimedOperation(logger, "share.create", owner=owner.id):
            link = ShareLink(
                token=token,
                user_id=owner.id,
                title=f"{owner.name}'s PR Board Report",
                expires_at=expires_at,
                access_count=0,
                is_active=True,
            )
            db.add(link)
            await db.commit()

        return ShareLinkCreated(token=token, share_url=self.share_url(token), expires_at=expires_at)

    async def resolve(self, db: AsyncSession, cache: QueryCache, token: str) -> SharedReport:
        """Return the owner's board for a valid token and count the access.

        Missing, inactive and expired tokens are indistinguishable to the caller.
        """
        now = utcnow()
        with TimedOperation(logger, "share.resolve"):
            # Single conditional UPDATE so concurrent resolutions never lose a count
            result = await db.execute(
                update(ShareLink)
                .where(
                    ShareLink.token == token,
                    ShareLink.is_active.is_(True),
                    ShareLink.expires_at > now,
                )
                .values(access_count=ShareLink.access_count + 1, last_accessed_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await db.rollback()
                raise NotFoundError("Invalid or expired share link", code="PRB-SHARE-001")
            await db.commit()

            row = (
                await db.execute(
                    select(ShareLink, User.name)
                    .join(User, User.id == ShareLink.user_id)
                    .where(ShareLink.token == token)
                )
            ).one()
            link, owner_name = row
            await db.refresh(link)
            prs = await list_prs(db, cache, link.user_id)

        return SharedReport(
            title=link.title,
            created_by=owner_name,
            created_at=link.created_at,
            prs=prs,
            access_count=link.access_count,
        )

    async def deactivate(self, db: AsyncSession, owner_id: str, token: str) -> bool:
        result = await db.execute(
            update(ShareLink)
            .where(ShareLink.token == token, ShareLink.user_id == owner_id)
            .values(is_active=False)
        )
        await db.commit()
        if result.rowcount:
            logger.info("Share link deactivated owner=%s", owner_id)
        return result.rowcount > 0

    async def list_for_owner(self, db: AsyncSession, owner_id: str) -> List[Dict[str, Any]]:
        result = await db.execute(
            select(ShareLink)
            .where(ShareLink.user_id == owner_id)
            .order_by(ShareLink.created_at.desc())
        )
        return [share_link_to_dict(link) for link in result.scalars().all()]


share_link_service = ShareLinkService()
