"""
Draft autosave for the story editor.

The engine keeps two canonical JSON strings: the latest snapshot the editor produced and the
last snapshot the server acknowledged. Edits are debounced, then written through a single
write loop so that at most one PUT is in flight; edits that land during a write are collapsed
into one follow-up write of the newest snapshot.

    IDLE --update--> DEBOUNCING --timer--> WRITING --ok, stale--> WRITING
      ^                                     |  ^                     |
      |                               update|  |ok, stale            |
      |                                     v  |                     |
      +--ok, synced / failed------- WRITING_QUEUED <-----------------+

A failed write leaves the acknowledged snapshot unchanged. If input arrived during the failed
write the debounce is re-armed; otherwise the next update or flush retries.

After detach() no timer is armed again. The write in flight finishes, and a follow-up write
happens only when flush_on_unload() asked for it.
"""
import asyncio
import enum
import logging
from typing import Awaitable, Callable

import httpx

from tales.core.errors import DraftSaveError, DraftSyncTimeout
from tales.schemas.project import DraftSnapshot

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.45
DEFAULT_FLUSH_TIMEOUT = 7.0
DEFAULT_POLL_INTERVAL = 0.05

STATUS_SYNCED = "Draft synced"
STATUS_UNSAVED = "Unsaved changes"
STATUS_SAVING = "Saving..."
STATUS_SAVE_FAILED = "Save failed"

DraftWriter = Callable[[dict], Awaitable[None]]


class SyncState(str, enum.Enum):
    idle = "idle"
    debouncing = "debouncing"
    writing = "writing"
    writing_queued = "writing_queued"


class HttpDraftWriter:
    """PUT the full draft to the API. Raises DraftSaveError with the server's message."""

    def __init__(self, client: httpx.AsyncClient, project_id: str):
        self._client = client
        self.project_id = project_id

    async def __call__(self, payload: dict) -> None:
        try:
            r = await self._client.put(f"/projects/{self.project_id}", json=payload)
        except httpx.HTTPError as e:
            raise DraftSaveError(STATUS_SAVE_FAILED, {"error": str(e)}) from e
        if r.is_success:
            return
        message = STATUS_SAVE_FAILED
        try:
            detail = r.json().get("detail")
            if isinstance(detail, str) and detail:
                message = detail
        except (ValueError, AttributeError):
            pass
        raise DraftSaveError(message)


class DraftSyncEngine:
    def __init__(
        self,
        writer: DraftWriter,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        flush_timeout: float = DEFAULT_FLUSH_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        on_status: Callable[[str], None] | None = None,
    ):
        self._writer = writer
        self._debounce_seconds = debounce_seconds
        self._flush_timeout = flush_timeout
        self._poll_interval = poll_interval
        self._on_status = on_status

        self._latest: DraftSnapshot | None = None
        self._latest_json: str | None = None
        self._acknowledged_json: str | None = None
        self._debounce_handle: asyncio.TimerHandle | None = None
        self._write_task: asyncio.Task | None = None
        self._detached = False
        self._unload_requested = False

        self.state = SyncState.idle
        self.status = STATUS_SYNCED
        self.last_error: str | None = None
        self.writes_started = 0

    # ---- introspection ----

    @property
    def in_flight(self) -> bool:
        return self.state in (SyncState.writing, SyncState.writing_queued)

    @property
    def is_synced(self) -> bool:
        return self._latest_json is None or self._latest_json == self._acknowledged_json

    @property
    def acknowledged_json(self) -> str | None:
        return self._acknowledged_json

    def set_status(self, status: str) -> None:
        self.status = status
        if self._on_status is not None:
            self._on_status(status)

    # ---- editor-facing operations ----

    def hydrate(self, snapshot: DraftSnapshot) -> None:
        """Adopt the server copy as both latest and acknowledged."""
        self._cancel_debounce()
        self._latest = snapshot
        self._latest_json = snapshot.serialize()
        self._acknowledged_json = self._latest_json
        self.set_status(STATUS_SYNCED)

    def update(self, snapshot: DraftSnapshot) -> None:
        """Record a new editor snapshot and schedule a write after the quiet period."""
        self._latest = snapshot
        self._latest_json = snapshot.serialize()
        if not self.is_synced:
            self.set_status(STATUS_UNSAVED)
        if self.in_flight:
            # The write loop re-checks latest when the current write finishes
            self.state = SyncState.writing_queued
            return
        self._arm_debounce()

    async def flush(self, snapshot: DraftSnapshot | None = None, timeout: float | None = None) -> None:
        """
        Write now and wait until the server has the latest snapshot.
        Raises DraftSyncTimeout if that does not happen within the flush timeout; callers must not navigate then.
        """
        if snapshot is not None:
            self._latest = snapshot
            self._latest_json = snapshot.serialize()
        self._cancel_debounce()
        self._request_write()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + (self._flush_timeout if timeout is None else timeout)
        while not (self.is_synced and not self.in_flight):
            if loop.time() >= deadline:
                logger.warning("draft_sync: flush timed out state=%s last_error=%s", self.state.value, self.last_error)
                raise DraftSyncTimeout()
            await asyncio.sleep(self._poll_interval)
            if not self.in_flight and not self.is_synced:
                # Last attempt failed; retry while waiting
                self._cancel_debounce()
                self._request_write()

    def flush_on_unload(self) -> asyncio.Task | None:
        """Best-effort write on teardown. Not awaited; completion is not guaranteed."""
        self._cancel_debounce()
        if self.is_synced:
            return None
        self._unload_requested = True
        return self._request_write()

    def detach(self) -> None:
        """
        Editor is going away: drop the pending debounce and never schedule another one.
        An in-flight write is left to finish; after it only an unload write may follow.
        """
        self._detached = True
        self._cancel_debounce()

    # ---- internals ----

    def _arm_debounce(self) -> None:
        if self._detached:
            return
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        loop = asyncio.get_running_loop()
        self._debounce_handle = loop.call_later(self._debounce_seconds, self._on_debounce)
        self.state = SyncState.debouncing

    def _cancel_debounce(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        if self.state is SyncState.debouncing:
            self.state = SyncState.idle

    def _on_debounce(self) -> None:
        self._debounce_handle = None
        if self.state is SyncState.debouncing:
            self.state = SyncState.idle
        self._request_write()

    def _request_write(self) -> asyncio.Task | None:
        """Start the write loop, or queue behind the write in flight. Never starts a second writer."""
        if self.in_flight:
            self.state = SyncState.writing_queued
            return self._write_task
        if self.is_synced:
            self.set_status(STATUS_SYNCED)
            return None
        self.state = SyncState.writing
        self._write_task = asyncio.get_running_loop().create_task(self._write_loop())
        return self._write_task

    async def _write_loop(self) -> None:
        while True:
            payload_json = self._latest_json
            payload = self._latest.to_payload()
            self.state = SyncState.writing
            self.writes_started += 1
            self.set_status(STATUS_SAVING)
            try:
                await self._writer(payload)
            except Exception as e:
                message = str(e) or STATUS_SAVE_FAILED
                self.last_error = message
                logger.warning("draft_sync: write failed: %s", message)
                queued = self.state is SyncState.writing_queued
                self.state = SyncState.idle
                self.set_status(message)
                if queued and not self.is_synced:
                    self._arm_debounce()
                return
            self._acknowledged_json = payload_json
            self.last_error = None
            if self.is_synced:
                self.state = SyncState.idle
                self.set_status(STATUS_SYNCED)
                return
            if self._detached and not self._unload_requested:
                self.state = SyncState.idle
                return
            logger.debug("draft_sync: snapshot changed during write, writing again")
