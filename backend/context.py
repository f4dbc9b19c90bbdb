# context.py — Process-wide application context (database + query cache)
from dataclasses import dataclass, field

from fastapi import Request

from cache import QueryCache
from database import Database


@dataclass
class AppContext:
    database: Database = field(default_factory=Database)
    cache: QueryCache = field(default_factory=QueryCache)

    async def close(self) -> None:
        self.cache.clear()
        await self.database.dispose()


def get_app_context(request: Request) -> AppContext:
    return request.app.state.context
