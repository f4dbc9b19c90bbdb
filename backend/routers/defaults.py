# routers/defaults.py — Global form defaults (shared by every user)
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db_session
import queries

router = APIRouter(prefix="/api/defaults", tags=["Defaults"])


class DefaultsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    default_project: Optional[str] = Field(None, alias="defaultProject")
    default_service: Optional[str] = Field(None, alias="defaultService")
    default_email: Optional[str] = Field(None, alias="defaultEmail")
    default_author: Optional[str] = Field(None, alias="defaultAuthor")


@router.get("")
async def get_defaults(db: AsyncSession = Depends(get_db_session)):
    return {"defaults": await queries.get_defaults(db)}


@router.post("", status_code=201)
async def save_defaults(body: DefaultsUpdate, db: AsyncSession = Depends(get_db_session)):
    changes = body.model_dump(exclude_unset=True)
    return {"defaults": await queries.update_defaults(db, changes)}
