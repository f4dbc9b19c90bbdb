# models.py — Database models for the PR Board
# - UUID string primary keys
# - Every owned table carries a user_id owner reference (no nesting)
# - PRs carry a version counter for optimistic concurrency

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, JSON, Boolean, Integer,
    Enum as SQLEnum, ForeignKey, Text, Index, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


# ============================================================
# ENUMS
# ============================================================

class PRStatus(str, PyEnum):
    INITIAL = "initial"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    MERGED = "merged"
    RELEASED = "released"


class PRPriority(str, PyEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class PRCategory(str, PyEnum):
    PROJECT = "project"
    SERVICE = "service"


# Board column order
STATUS_ORDER = [s.value for s in PRStatus]

DEFAULT_PREFERENCES = {
    "theme": "system",
    "emailNotifications": True,
    "calendarIntegration": False,
}


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# ============================================================
# USERS
# ============================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    name = Column(String(50), nullable=False)
    avatar = Column(String, nullable=True)
    is_verified = Column(Boolean, default=False, nullable=False)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    preferences = Column(JSON, default=lambda: dict(DEFAULT_PREFERENCES))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


# ============================================================
# PULL REQUESTS
# ============================================================

class PullRequest(Base):
    __tablename__ = "prs"

    id = Column(String, primary_key=True, default=new_uuid)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(500), nullable=False)
    category = Column(
        SQLEnum(PRCategory, values_callable=_enum_values, name="pr_category"),
        nullable=False,
    )
    project = Column(String(255), nullable=True)
    service = Column(String(255), nullable=True)
    author = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(
        SQLEnum(PRStatus, values_callable=_enum_values, name="pr_status"),
        default=PRStatus.INITIAL,
        nullable=False,
    )
    priority = Column(
        SQLEnum(PRPriority, values_callable=_enum_values, name="pr_priority"),
        default=PRPriority.MEDIUM,
        nullable=False,
    )
    links = Column(JSON, default=list)
    scheduled_date = Column(String(10), nullable=True)
    scheduled_time = Column(String(8), nullable=True)
    email_reminder = Column(Boolean, default=False, nullable=False)
    calendar_event = Column(Boolean, default=False, nullable=False)
    version = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_prs_user_updated", "user_id", "updated_at"),
        Index("ix_prs_user_project", "user_id", "project"),
        Index("ix_prs_user_service", "user_id", "service"),
    )


# ============================================================
# WORKSPACES
# ============================================================

class Workspace(Base):
    __tablename__ = "workspaces"

    id = Column(String, primary_key=True, default=new_uuid)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    type = Column(
        SQLEnum(PRCategory, values_callable=_enum_values, name="workspace_type"),
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "type", "name", name="uq_workspace_user_type_name"),
        Index("ix_workspaces_user_type", "user_id", "type"),
    )


# ============================================================
# DEFAULTS (global singleton row)
# ============================================================

class Defaults(Base):
    __tablename__ = "defaults"

    key = Column(String(50), primary_key=True, default="global")
    default_project = Column(String(255), nullable=True)
    default_service = Column(String(255), nullable=True)
    default_email = Column(String(255), nullable=True)
    default_author = Column(String(255), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


# ============================================================
# SHARE LINKS
# ============================================================

class ShareLink(Base):
    __tablename__ = "share_links"

    id = Column(String, primary_key=True, default=new_uuid)
    token = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    access_count = Column(Integer, default=0, nullable=False)
    last_accessed_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
