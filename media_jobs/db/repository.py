"""Job status records and result rows in Supabase.

Every status write is a guarded update (compare-and-set on the current
status), so a job never regresses and a duplicate delivery of the same job
cannot take it over:

- ``claim``    pending -> first stage, or re-entry by the same owner
- ``advance``  only from a status ranked below the target
- ``complete`` / ``fail`` only from a non-terminal status
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from supabase import Client

from media_jobs.errors import JobOwnershipError, PersistenceError
from media_jobs.jobs.models import (
    JobKind,
    JobStatus,
    NotificationMessage,
    is_terminal,
    non_terminal_statuses,
    statuses_before,
)

logger = logging.getLogger(__name__)

STATUS_TABLES: Dict[JobKind, str] = {
    JobKind.FACE_SWAP: "faceswap_jobs",
    JobKind.AI_VIDEO_CARD: "my_cards",
    JobKind.SLIDESHOW_CARD: "my_cards",
}
JOB_KEY = "job_id"


def _values(statuses) -> list:
    return [s.value for s in statuses]


class JobRepository:
    """Row-level access to the job tables, keyed by job id."""

    def __init__(self, client: Client):
        self._client = client

    # -- status transitions -------------------------------------------------

    async def claim(
        self,
        kind: JobKind,
        job_id: str,
        status: JobStatus,
        owner: str,
        fields: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Take ownership of a job and move it to its first in-progress status."""
        await asyncio.to_thread(self._claim, kind, job_id, status, owner, fields or {})

    async def advance(
        self,
        kind: JobKind,
        job_id: str,
        status: JobStatus,
        fields: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Move forward to ``status``. Returns False if already at or past it."""
        return await asyncio.to_thread(self._advance, kind, job_id, status, fields or {})

    async def update_fields(self, kind: JobKind, job_id: str, fields: Dict[str, Any]) -> None:
        """Write side attributes of a job that is still in progress."""
        table = STATUS_TABLES[kind]
        query = (
            self._client.table(table)
            .update(fields)
            .eq(JOB_KEY, job_id)
            .in_("status", _values(non_terminal_statuses(kind)))
        )
        await asyncio.to_thread(self._execute, table, "update", query)

    async def complete(self, kind: JobKind, job_id: str, fields: Dict[str, Any]) -> None:
        rows = await asyncio.to_thread(
            self._terminal_write, kind, job_id, {**fields, "status": JobStatus.COMPLETE.value}
        )
        if not rows:
            raise JobOwnershipError(job_id, await self.get_status(kind, job_id))

    async def fail(
        self,
        kind: JobKind,
        job_id: str,
        message: str,
        fields: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Mark a job failed. Returns False if it was already terminal."""
        values = {**(fields or {}), "status": JobStatus.FAILED.value, "error_message": message}
        rows = await asyncio.to_thread(self._terminal_write, kind, job_id, values)
        return bool(rows)

    async def record_error(self, kind: JobKind, job_id: str, message: str) -> None:
        """Store the latest error without ending the job (a retry will follow)."""
        await self.update_fields(kind, job_id, {"error_message": message})

    async def get(self, kind: JobKind, job_id: str) -> Optional[Dict[str, Any]]:
        table = STATUS_TABLES[kind]
        query = self._client.table(table).select("*").eq(JOB_KEY, job_id).limit(1)
        rows = await asyncio.to_thread(self._execute, table, "select", query)
        return rows[0] if rows else None

    async def get_status(self, kind: JobKind, job_id: str) -> Optional[str]:
        row = await self.get(kind, job_id)
        return row.get("status") if row else None

    # -- result rows --------------------------------------------------------

    async def insert_faceswap(
        self, user_id: str, s3_path: str, source_image_url: str, template_image_url: str
    ) -> Any:
        return await self._insert_returning_id("my_faceswaps", {
            "user_id": user_id,
            "s3_path": s3_path,
            "source_image_url": source_image_url,
            "template_image_url": template_image_url,
        })

    async def insert_public_share(self, my_card_id: str, thumbnail_url: Optional[str]) -> Any:
        return await self._insert_returning_id("public_shared_cards", {
            "my_card_id": my_card_id,
            "thumbnail_url": thumbnail_url,
        })

    async def set_share_link(self, my_card_id: str, link: str) -> None:
        query = self._client.table("my_cards").update({"shortLinkeCard": link}).eq("id", my_card_id)
        await asyncio.to_thread(self._execute, "my_cards", "update", query)

    async def insert_notification(self, message: NotificationMessage) -> Any:
        return await self._insert_returning_id("notifications", {
            "user_id": message.user_id,
            "type": message.type,
            "message": message.message,
            "link": message.link,
            "is_read": False,
        })

    # -- sync internals (run in a worker thread) ----------------------------

    def _execute(self, table: str, operation: str, query) -> list:
        try:
            response = query.execute()
        except Exception as e:
            raise PersistenceError(table, operation, str(e)) from e
        return response.data or []

    def _claim(self, kind, job_id, status, owner, fields) -> None:
        table = STATUS_TABLES[kind]
        values = {**fields, "status": status.value, "claimed_by": owner}

        fresh = (
            self._client.table(table)
            .update(values)
            .eq(JOB_KEY, job_id)
            .eq("status", JobStatus.PENDING.value)
        )
        if self._execute(table, "claim", fresh):
            return

        # Same delivery re-entering after a retryable failure
        reentry = (
            self._client.table(table)
            .update({"claimed_by": owner, "error_message": None})
            .eq(JOB_KEY, job_id)
            .eq("claimed_by", owner)
            .in_("status", _values(non_terminal_statuses(kind)))
        )
        if self._execute(table, "claim", reentry):
            return

        raise JobOwnershipError(job_id, self._current_status(table, job_id))

    def _advance(self, kind, job_id, status, fields) -> bool:
        table = STATUS_TABLES[kind]
        query = (
            self._client.table(table)
            .update({**fields, "status": status.value})
            .eq(JOB_KEY, job_id)
            .in_("status", _values(statuses_before(kind, status)))
        )
        if self._execute(table, "advance", query):
            return True

        current = self._current_status(table, job_id)
        if current is None or is_terminal(current):
            raise JobOwnershipError(job_id, current)
        if fields:
            side = (
                self._client.table(table)
                .update(fields)
                .eq(JOB_KEY, job_id)
                .in_("status", _values(non_terminal_statuses(kind)))
            )
            self._execute(table, "update", side)
        logger.info("[job %s] already at %s, not moving back to %s", job_id, current, status.value)
        return False

    def _terminal_write(self, kind, job_id, values) -> list:
        table = STATUS_TABLES[kind]
        query = (
            self._client.table(table)
            .update(values)
            .eq(JOB_KEY, job_id)
            .in_("status", _values(non_terminal_statuses(kind)))
        )
        return self._execute(table, "update", query)

    def _current_status(self, table: str, job_id: str) -> Optional[str]:
        query = self._client.table(table).select("status").eq(JOB_KEY, job_id).limit(1)
        rows = self._execute(table, "select", query)
        return rows[0].get("status") if rows else None

    async def _insert_returning_id(self, table: str, row: Dict[str, Any]) -> Any:
        query = self._client.table(table).insert(row)
        rows = await asyncio.to_thread(self._execute, table, "insert", query)
        if not rows or rows[0].get("id") is None:
            raise PersistenceError(table, "insert", "no id returned")
        return rows[0]["id"]
