"""
Client-side board state with optimistic updates.

Every mutation is applied locally first, persisted to the snapshot file, and
then sent to the server. Each PR carries a sync record (pending, confirmed or
failed) and the last server-confirmed copy. Failed moves and removals revert
to that copy; failed edits and creates stay local and can be retried with
``retry_failed``. Each mutation bumps a per-PR generation so a slow response
for an older mutation never overwrites a newer local change.
"""

import copy
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from board_client import BoardClientError, PRBoardClient
from models import STATUS_ORDER

logger = logging.getLogger("pr-board.board")

STORAGE_KEY = "pr-tracker-data-v1"
LOCAL_ID_PREFIX = "local-"

DEFAULT_COLUMNS = {
    "initial": "Initial",
    "in_review": "In Review",
    "approved": "Approved",
    "merged": "Merged",
    "released": "Released",
}

# Fields a client may send back on update
EDITABLE_FIELDS = (
    "title", "category", "project", "service", "author", "description",
    "status", "priority", "links", "scheduledDate", "scheduledTime",
    "emailReminder", "calendarEvent",
)

SYNC_ERRORS = (BoardClientError, httpx.HTTPError)


class SyncState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class SyncRecord:
    state: SyncState = SyncState.CONFIRMED
    confirmed: Optional[Dict[str, Any]] = None
    generation: int = 0
    operation: Optional[str] = None
    unsent: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


@dataclass
class Notice:
    level: str
    message: str


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_local(pr_id: str) -> bool:
    return pr_id.startswith(LOCAL_ID_PREFIX)


def _error_message(exc: Exception) -> str:
    return exc.message if isinstance(exc, BoardClientError) else str(exc) or exc.__class__.__name__


class BoardState:
    def __init__(self, client: PRBoardClient, storage_path: Optional[Path] = None):
        self.client = client
        self.storage_path = Path(storage_path) if storage_path else None
        self.columns: Dict[str, str] = dict(DEFAULT_COLUMNS)
        self.prs: List[Dict[str, Any]] = []
        self.projects: List[str] = []
        self.services: List[str] = []
        self.sync: Dict[str, SyncRecord] = {}
        self.notices: List[Notice] = []
        self._creating: set = set()

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    def get(self, pr_id: str) -> Optional[Dict[str, Any]]:
        for pr in self.prs:
            if pr["id"] == pr_id:
                return pr
        return None

    def _index(self, pr_id: str) -> int:
        for i, pr in enumerate(self.prs):
            if pr["id"] == pr_id:
                return i
        return -1

    def _replace(self, pr_id: str, record: Dict[str, Any]) -> None:
        i = self._index(pr_id)
        if i >= 0:
            self.prs[i] = record

    def _notify(self, level: str, message: str) -> None:
        self.notices.append(Notice(level, message))
        log = logger.warning if level in ("warning", "error") else logger.info
        log("%s", message)

    def sync_state(self, pr_id: str) -> Optional[SyncState]:
        record = self.sync.get(pr_id)
        return record.state if record else None

    def _begin(self, pr_id: str, operation: str) -> int:
        record = self.sync.get(pr_id)
        if record is None:
            current = self.get(pr_id)
            record = SyncRecord(confirmed=copy.deepcopy(current) if current and not _is_local(pr_id) else None)
            self.sync[pr_id] = record
        record.generation += 1
        record.state = SyncState.PENDING
        record.operation = operation
        record.error = None
        return record.generation

    def _mark_unsynced(self, pr_id: str) -> None:
        record = self.sync[pr_id]
        record.operation = "create"
        if pr_id not in self._creating:
            record.state = SyncState.FAILED

    def _is_current(self, pr_id: str, generation: int) -> bool:
        record = self.sync.get(pr_id)
        return record is not None and record.generation == generation

    def _confirm(self, pr_id: str, server_pr: Dict[str, Any]) -> None:
        record = self.sync.setdefault(pr_id, SyncRecord())
        known = (record.confirmed or {}).get("version", 0)
        if server_pr.get("version", 0) >= known:
            record.confirmed = copy.deepcopy(server_pr)

    # ------------------------------------------------------------------
    # Server synchronisation
    # ------------------------------------------------------------------

    async def refresh(self) -> None:
        """Reload everything from the server. Unsynced local records are kept."""
        prs = await self.client.list_prs()
        projects = await self.client.list_workspaces("project")
        services = await self.client.list_workspaces("service")

        local_only = [pr for pr in self.prs if _is_local(pr["id"])]
        self.prs = local_only + prs
        self.projects = [w["name"] for w in projects]
        self.services = [w["name"] for w in services]
        self.sync = {
            pr_id: record for pr_id, record in self.sync.items() if _is_local(pr_id)
        }
        for pr in prs:
            self.sync[pr["id"]] = SyncRecord(state=SyncState.CONFIRMED, confirmed=copy.deepcopy(pr))
        self.save()

    async def move(self, pr_id: str, status: str) -> bool:
        """Move a card to another column. Any column may follow any other."""
        if status not in self.columns:
            raise ValueError(f"Unknown status: {status}")
        pr = self.get(pr_id)
        if pr is None:
            self._notify("error", "PR not found")
            return False
        if pr["status"] == status:
            return True

        generation = self._begin(pr_id, "update")
        self._replace(pr_id, {**pr, "status": status, "updatedAt": _now_iso()})
        self.save()

        if _is_local(pr_id):
            self._mark_unsynced(pr_id)
            return True

        try:
            server_pr = await self.client.update_pr(pr_id, {"status": status})
        except SYNC_ERRORS as e:
            if not self._is_current(pr_id, generation):
                return False
            record = self.sync[pr_id]
            record.state = SyncState.FAILED
            record.error = _error_message(e)
            record.unsent = {**record.unsent, "status": status}
            if record.confirmed is not None:
                self._replace(pr_id, copy.deepcopy(record.confirmed))
            self.save()
            self._notify("error", f"Failed to move PR: {record.error}")
            return False

        self._confirm(pr_id, server_pr)
        if self._is_current(pr_id, generation):
            self._replace(pr_id, server_pr)
            record = self.sync[pr_id]
            record.state = SyncState.CONFIRMED
            record.unsent = {}
            self.save()
            self._notify("success", f"PR moved to {self.columns[status]}")
        return True

    async def edit(self, pr_id: str, changes: Dict[str, Any]) -> bool:
        """Inline edit. On failure the local version is kept and marked failed."""
        pr = self.get(pr_id)
        if pr is None:
            self._notify("error", "PR not found")
            return False
        changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}

        generation = self._begin(pr_id, "update")
        self._replace(pr_id, {**pr, **changes, "updatedAt": _now_iso()})
        self.save()

        if _is_local(pr_id):
            self._mark_unsynced(pr_id)
            return True

        try:
            server_pr = await self.client.update_pr(pr_id, changes)
        except SYNC_ERRORS as e:
            if self._is_current(pr_id, generation):
                record = self.sync[pr_id]
                record.state = SyncState.FAILED
                record.error = _error_message(e)
                record.unsent = {**record.unsent, **changes}
                self.save()
                self._notify("warning", f"PR saved locally but server update failed: {record.error}")
            return False

        self._confirm(pr_id, server_pr)
        if self._is_current(pr_id, generation):
            self._replace(pr_id, server_pr)
            record = self.sync[pr_id]
            record.state = SyncState.CONFIRMED
            record.unsent = {}
            self.save()
            self._notify("success", "PR updated successfully")
        return True

    async def create(self, draft: Dict[str, Any]) -> Dict[str, Any]:
        """Add a PR at the top of the board, then replace it with the server's copy."""
        local_id = f"{LOCAL_ID_PREFIX}{uuid.uuid4().hex}"
        now = _now_iso()
        placeholder = {
            "status": "initial",
            "priority": "medium",
            "links": [],
            **{k: v for k, v in draft.items() if k in EDITABLE_FIELDS},
            "id": local_id,
            "createdAt": now,
            "updatedAt": now,
        }
        self.prs.insert(0, placeholder)
        self._begin(local_id, "create")
        self.save()
        server_pr = await self._sync_create(local_id)
        if server_pr is not None:
            return self.get(server_pr["id"]) or server_pr
        return self.get(local_id) or placeholder

    async def _sync_create(self, local_id: str) -> Optional[Dict[str, Any]]:
        record = self.sync[local_id]
        generation = record.generation
        local = self.get(local_id)
        payload = {k: v for k, v in local.items() if k in EDITABLE_FIELDS and v is not None}

        self._creating.add(local_id)
        try:
            server_pr = await self.client.create_pr(payload)
        except SYNC_ERRORS as e:
            if local_id in self.sync:
                record.state = SyncState.FAILED
                record.error = _error_message(e)
                self.save()
                self._notify("warning", f"PR saved locally but failed to sync with server: {record.error}")
            return None
        finally:
            self._creating.discard(local_id)

        if self.get(local_id) is None:
            # Removed locally while the create was in flight
            self.sync.pop(local_id, None)
            try:
                await self.client.delete_pr(server_pr["id"])
            except SYNC_ERRORS as e:
                logger.warning("Could not delete PR removed during create: %s", _error_message(e))
            return None

        if not self._is_current(local_id, generation):
            # Edited while in flight: keep local fields under the server identity
            edited = self.get(local_id)
            unsent = {k: edited[k] for k in EDITABLE_FIELDS if k in edited and edited[k] != server_pr.get(k)}
            self._replace(local_id, {**server_pr, **unsent})
            self.sync.pop(local_id, None)
            self.sync[server_pr["id"]] = SyncRecord(
                state=SyncState.FAILED if unsent else SyncState.CONFIRMED,
                confirmed=copy.deepcopy(server_pr),
                operation="update",
                unsent=unsent,
            )
            self.save()
            return server_pr

        self._replace(local_id, server_pr)
        self.sync.pop(local_id, None)
        self.sync[server_pr["id"]] = SyncRecord(state=SyncState.CONFIRMED, confirmed=copy.deepcopy(server_pr))
        self.save()
        self._notify("success", "PR created successfully")
        return server_pr

    async def remove(self, pr_id: str) -> bool:
        index = self._index(pr_id)
        if index < 0:
            return False
        pr = self.prs[index]

        if _is_local(pr_id):
            del self.prs[index]
            self.sync.pop(pr_id, None)
            self.save()
            self._notify("success", "PR deleted")
            return True

        generation = self._begin(pr_id, "delete")
        del self.prs[index]
        self.save()

        try:
            await self.client.delete_pr(pr_id)
        except SYNC_ERRORS as e:
            if self._is_current(pr_id, generation):
                record = self.sync[pr_id]
                record.state = SyncState.FAILED
                record.error = _error_message(e)
                self.prs.insert(min(index, len(self.prs)), copy.deepcopy(record.confirmed or pr))
                self.save()
                self._notify("error", f"Failed to delete PR: {record.error}")
            return False

        if self._is_current(pr_id, generation):
            self.sync.pop(pr_id, None)
            self._notify("success", "PR deleted")
        return True

    async def retry_failed(self) -> int:
        """Re-send every failed record's latest local version. Returns the number that synced."""
        synced = 0
        for pr_id, record in list(self.sync.items()):
            if record.state != SyncState.FAILED:
                continue
            if record.operation == "create" and _is_local(pr_id):
                self._begin(pr_id, "create")
                if await self._sync_create(pr_id) is not None:
                    synced += 1
            elif record.operation == "delete":
                if await self.remove(pr_id):
                    synced += 1
            elif record.unsent:
                unsent = dict(record.unsent)
                pr = self.get(pr_id)
                if pr is None:
                    continue
                if set(unsent) == {"status"}:
                    ok = await self.move(pr_id, unsent["status"])
                else:
                    ok = await self.edit(pr_id, unsent)
                if ok:
                    synced += 1
        return synced

    async def add_workspace(self, name: str, type: str) -> bool:
        """Register a project or service name. An existing name counts as success."""
        names = self.projects if type == "project" else self.services
        name = name.strip()
        if not name:
            return False
        try:
            await self.client.create_workspace(name, type)
        except BoardClientError as e:
            if e.status_code != 409:
                self._notify("error", f"Failed to add {type}: {e.message}")
                return False
        if name not in names:
            names.append(name)
            names.sort()
        self.save()
        return True

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def project_names(self) -> List[str]:
        return sorted({pr.get("project") for pr in self.prs if pr.get("project")} | set(self.projects))

    def service_names(self) -> List[str]:
        return sorted({pr.get("service") for pr in self.prs if pr.get("service")} | set(self.services))

    def filtered(
        self,
        project: Optional[str] = None,
        service: Optional[str] = None,
        category: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        prs = self.prs
        if project:
            prs = [pr for pr in prs if pr.get("project") == project]
        if service:
            prs = [pr for pr in prs if pr.get("service") == service]
        if category:
            prs = [pr for pr in prs if pr.get("category") == category]
        return prs

    def by_status(self, **filters: Optional[str]) -> Dict[str, List[Dict[str, Any]]]:
        columns = {status: [] for status in STATUS_ORDER if status in self.columns}
        for pr in self.filtered(**filters):
            columns.setdefault(pr.get("status", "initial"), []).append(pr)
        return columns

    # ------------------------------------------------------------------
    # Snapshot persistence
    # ------------------------------------------------------------------

    def to_snapshot(self) -> Dict[str, Any]:
        return {
            "key": STORAGE_KEY,
            "columns": self.columns,
            "prs": self.prs,
            "projects": self.projects,
            "services": self.services,
            "failed": {
                pr_id: {"operation": r.operation, "unsent": r.unsent, "error": r.error}
                for pr_id, r in self.sync.items()
                if r.state == SyncState.FAILED
            },
        }

    def save(self, path: Optional[Path] = None) -> None:
        target = Path(path) if path else self.storage_path
        if target is None:
            return
        target.write_text(json.dumps(self.to_snapshot(), indent=2))

    def load(self, path: Optional[Path] = None) -> bool:
        """Restore a saved snapshot. Returns False when there is nothing usable."""
        source = Path(path) if path else self.storage_path
        if source is None or not source.exists():
            return False
        try:
            data = json.loads(source.read_text())
        except ValueError:
            logger.warning("Ignoring unreadable board snapshot at %s", source)
            return False
        if data.get("key") != STORAGE_KEY:
            return False

        self.columns = data.get("columns") or dict(DEFAULT_COLUMNS)
        self.prs = data.get("prs", [])
        self.projects = data.get("projects", [])
        self.services = data.get("services", [])
        self.sync = {}
        for pr in self.prs:
            if not _is_local(pr["id"]):
                self.sync[pr["id"]] = SyncRecord(confirmed=copy.deepcopy(pr))
        for pr_id, failed in data.get("failed", {}).items():
            record = self.sync.setdefault(pr_id, SyncRecord())
            record.state = SyncState.FAILED
            record.operation = failed.get("operation")
            record.unsent = failed.get("unsent") or {}
            record.error = failed.get("error")
        for pr in self.prs:
            # Local records never confirmed by the server must be re-created
            if _is_local(pr["id"]) and pr["id"] not in self.sync:
                self.sync[pr["id"]] = SyncRecord(state=SyncState.FAILED, operation="create")
        return True
