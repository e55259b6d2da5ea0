"""Tests for the draft autosave engine and the editor session on top of it."""

import asyncio

import httpx
import pytest

from tales.client.draft_sync import (
    STATUS_SYNCED,
    STATUS_UNSAVED,
    DraftSyncEngine,
    HttpDraftWriter,
    SyncState,
)
from tales.client.editor import EditorSession
from tales.core.errors import DraftSaveError, DraftSyncTimeout
from tales.schemas.project import DraftSnapshot, Page, ProjectRecord, project_to_response


def snapshot(body: str = "", vibe: str = "romantic") -> DraftSnapshot:
    return DraftSnapshot(templateId="papyrus", vibe=vibe, pages=[Page(id="p1", body=body, signature="")])


class RecordingWriter:
    """Async draft writer that records payloads; can be held open with a gate or made to fail."""

    def __init__(self):
        self.payloads: list[dict] = []
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.fail_next = 0
        self.gate: asyncio.Event | None = None

    async def __call__(self, payload: dict) -> None:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            if self.fail_next:
                self.fail_next -= 1
                raise DraftSaveError("Save failed")
            self.payloads.append(payload)
        finally:
            self.in_flight -= 1


async def wait_for(predicate, timeout: float = 2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


@pytest.fixture
def writer():
    return RecordingWriter()


def make_engine(writer, **kwargs) -> DraftSyncEngine:
    kwargs.setdefault("debounce_seconds", 0.01)
    kwargs.setdefault("flush_timeout", 1.0)
    kwargs.setdefault("poll_interval", 0.005)
    engine = DraftSyncEngine(writer, **kwargs)
    engine.hydrate(snapshot("initial"))
    return engine


class TestDebounceAndCoalescing:
    @pytest.mark.asyncio
    async def test_rapid_updates_collapse_into_one_write(self, writer):
        engine = make_engine(writer)
        for body in ("a", "ab", "abc"):
            engine.update(snapshot(body))
        assert engine.status == STATUS_UNSAVED
        assert engine.state is SyncState.debouncing
        await wait_for(lambda: engine.is_synced and not engine.in_flight)
        assert [p["pages"][0]["body"] for p in writer.payloads] == ["abc"]
        assert engine.status == STATUS_SYNCED
        assert engine.state is SyncState.idle

    @pytest.mark.asyncio
    async def test_edits_during_write_queue_one_follow_up(self, writer):
        writer.gate = asyncio.Event()
        engine = make_engine(writer)
        engine.update(snapshot("first"))
        await wait_for(lambda: writer.in_flight == 1)
        engine.update(snapshot("second"))
        engine.update(snapshot("third"))
        assert engine.state is SyncState.writing_queued
        writer.gate.set()
        await wait_for(lambda: engine.is_synced and not engine.in_flight)
        assert [p["pages"][0]["body"] for p in writer.payloads] == ["first", "third"]
        assert writer.max_in_flight == 1
        assert engine.acknowledged_json == snapshot("third").serialize()

    @pytest.mark.asyncio
    async def test_unchanged_snapshot_is_not_written(self, writer):
        engine = make_engine(writer)
        engine.update(snapshot("initial"))
        await asyncio.sleep(0.05)
        assert writer.calls == 0
        assert engine.status == STATUS_SYNCED


class TestFailures:
    @pytest.mark.asyncio
    async def test_failed_write_keeps_acknowledged_and_surfaces_error(self, writer):
        writer.fail_next = 1
        engine = make_engine(writer)
        engine.update(snapshot("lost?"))
        await wait_for(lambda: writer.calls == 1 and not engine.in_flight)
        assert engine.status == "Save failed"
        assert engine.acknowledged_json == snapshot("initial").serialize()
        assert not engine.is_synced

    @pytest.mark.asyncio
    async def test_next_edit_retries(self, writer):
        writer.fail_next = 1
        engine = make_engine(writer)
        engine.update(snapshot("one"))
        await wait_for(lambda: writer.calls == 1 and not engine.in_flight)
        engine.update(snapshot("two"))
        await wait_for(lambda: engine.is_synced and not engine.in_flight)
        assert [p["pages"][0]["body"] for p in writer.payloads] == ["two"]


class TestFlush:
    @pytest.mark.asyncio
    async def test_flush_writes_immediately(self, writer):
        engine = make_engine(writer, debounce_seconds=10)
        engine.update(snapshot("now"))
        await engine.flush()
        assert [p["pages"][0]["body"] for p in writer.payloads] == ["now"]
        assert engine.is_synced

    @pytest.mark.asyncio
    async def test_flush_with_snapshot(self, writer):
        engine = make_engine(writer, debounce_seconds=10)
        await engine.flush(snapshot("given"))
        assert engine.acknowledged_json == snapshot("given").serialize()

    @pytest.mark.asyncio
    async def test_flush_when_synced_does_nothing(self, writer):
        engine = make_engine(writer)
        await engine.flush()
        assert writer.calls == 0

    @pytest.mark.asyncio
    async def test_flush_retries_after_failure(self, writer):
        writer.fail_next = 1
        engine = make_engine(writer, debounce_seconds=10)
        engine.update(snapshot("retry me"))
        await engine.flush()
        assert engine.is_synced
        assert engine.writes_started == 2

    @pytest.mark.asyncio
    async def test_flush_waits_for_queued_write(self, writer):
        writer.gate = asyncio.Event()
        engine = make_engine(writer)
        engine.update(snapshot("first"))
        await wait_for(lambda: writer.in_flight == 1)
        flush = asyncio.ensure_future(engine.flush(snapshot("final")))
        await asyncio.sleep(0.02)
        assert not flush.done()
        writer.gate.set()
        await flush
        assert writer.payloads[-1]["pages"][0]["body"] == "final"
        assert writer.max_in_flight == 1

    @pytest.mark.asyncio
    async def test_flush_times_out(self, writer):
        writer.fail_next = 1000
        engine = make_engine(writer)
        engine.update(snapshot("never"))
        with pytest.raises(DraftSyncTimeout) as exc:
            await engine.flush(timeout=0.1)
        assert exc.value.message == "Unable to sync draft right now. Please retry in a moment."


class TestUnload:
    @pytest.mark.asyncio
    async def test_unload_fires_final_write(self, writer):
        engine = make_engine(writer, debounce_seconds=10)
        engine.update(snapshot("bye"))
        task = engine.flush_on_unload()
        engine.detach()
        assert task is not None
        await task
        assert [p["pages"][0]["body"] for p in writer.payloads] == ["bye"]

    @pytest.mark.asyncio
    async def test_unload_when_synced(self, writer):
        engine = make_engine(writer)
        assert engine.flush_on_unload() is None

    @pytest.mark.asyncio
    async def test_detach_cancels_debounce(self, writer):
        engine = make_engine(writer, debounce_seconds=0.02)
        engine.update(snapshot("dropped"))
        engine.detach()
        await asyncio.sleep(0.06)
        assert writer.calls == 0

    @pytest.mark.asyncio
    async def test_failed_write_after_detach_does_not_rearm(self, writer):
        writer.gate = asyncio.Event()
        writer.fail_next = 1
        engine = make_engine(writer)
        engine.update(snapshot("a"))
        await wait_for(lambda: writer.in_flight == 1)
        engine.update(snapshot("b"))
        engine.detach()
        writer.gate.set()
        await wait_for(lambda: not engine.in_flight)
        await asyncio.sleep(0.05)
        assert writer.calls == 1
        assert engine.state is SyncState.idle

    @pytest.mark.asyncio
    async def test_no_follow_up_write_after_detach(self, writer):
        writer.gate = asyncio.Event()
        engine = make_engine(writer)
        engine.update(snapshot("a"))
        await wait_for(lambda: writer.in_flight == 1)
        engine.update(snapshot("b"))
        engine.detach()
        writer.gate.set()
        await wait_for(lambda: not engine.in_flight)
        await asyncio.sleep(0.05)
        assert [p["pages"][0]["body"] for p in writer.payloads] == ["a"]

    @pytest.mark.asyncio
    async def test_unload_during_write_sends_latest(self, writer):
        writer.gate = asyncio.Event()
        engine = make_engine(writer)
        engine.update(snapshot("a"))
        await wait_for(lambda: writer.in_flight == 1)
        engine.update(snapshot("b"))
        task = engine.flush_on_unload()
        engine.detach()
        writer.gate.set()
        await task
        assert [p["pages"][0]["body"] for p in writer.payloads] == ["a", "b"]
        assert writer.max_in_flight == 1


class TestHttpDraftWriter:
    @pytest.mark.asyncio
    async def test_puts_full_snapshot(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path))
            return httpx.Response(200, json={"project": {}})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api.test") as client:
            await HttpDraftWriter(client, "proj1")(snapshot("x").to_payload())
        assert seen == [("PUT", "/projects/proj1")]

    @pytest.mark.asyncio
    async def test_server_detail_becomes_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"detail": "Project not found."})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api.test") as client:
            with pytest.raises(DraftSaveError) as exc:
                await HttpDraftWriter(client, "proj1")(snapshot("x").to_payload())
        assert exc.value.message == "Project not found."


def project_record(pages: int = 1) -> ProjectRecord:
    return ProjectRecord(
        id="proj1",
        template_id="papyrus",
        vibe="romantic",
        pages_json=[Page(id=f"p{i}", body="", signature="") for i in range(pages)],
    )


def make_editor(writer, pages: int = 1, **kwargs) -> EditorSession:
    kwargs.setdefault("debounce_seconds", 10)
    kwargs.setdefault("flush_timeout", 1.0)
    kwargs.setdefault("poll_interval", 0.005)
    return EditorSession(project_record(pages), DraftSyncEngine(writer, **kwargs))


class TestEditorSession:
    @pytest.mark.asyncio
    async def test_starts_synced(self, writer):
        editor = make_editor(writer)
        assert editor.status == STATUS_SYNCED
        assert editor.quote.totalAmount == 1500

    @pytest.mark.asyncio
    async def test_page_limit(self, writer):
        editor = make_editor(writer, pages=19)
        assert editor.add_page() is not None
        assert editor.can_add_page is False
        assert editor.add_page() is None
        assert len(editor.pages) == 20
        assert editor.quote.premiumUnits == 1

    @pytest.mark.asyncio
    async def test_last_page_cannot_be_deleted(self, writer):
        editor = make_editor(writer)
        assert editor.delete_page("p0") is False
        assert len(editor.pages) == 1

    @pytest.mark.asyncio
    async def test_delete_page(self, writer):
        editor = make_editor(writer, pages=2)
        assert editor.delete_page("p0") is True
        assert [p.id for p in editor.pages] == ["p1"]
        assert editor.status == STATUS_UNSAVED

    @pytest.mark.asyncio
    async def test_body_edit_recomputes_names(self, writer):
        editor = make_editor(writer)
        assert editor.update_page("p0", body="Dear Tolu") is True
        assert editor.pages[0].highlightedNames == ["Dear", "Tolu", "dear"]
        assert editor.status == STATUS_UNSAVED

    @pytest.mark.asyncio
    async def test_no_op_update(self, writer):
        editor = make_editor(writer)
        assert editor.update_page("p0", body="") is False
        assert editor.update_page("missing", body="x") is False
        assert editor.status == STATUS_SYNCED

    @pytest.mark.asyncio
    async def test_premium_vibe_changes_quote(self, writer):
        editor = make_editor(writer)
        editor.set_vibe("heartbreak")
        assert editor.quote.totalAmount == 2000
        assert editor.quote.purchaseType == "premium"

    @pytest.mark.asyncio
    async def test_navigate_flushes_first(self, writer):
        editor = make_editor(writer)
        editor.set_template("door-reveal")
        assert await editor.navigate_with_save("/checkout") == "/checkout"
        assert writer.payloads[-1]["templateId"] == "door-reveal"

    @pytest.mark.asyncio
    async def test_navigate_aborts_when_flush_fails(self, writer):
        writer.fail_next = 1000
        editor = make_editor(writer, flush_timeout=0.1)
        editor.update_page("p0", title="Hello")
        assert await editor.navigate_with_save("/checkout") is None
        assert editor.status == "Unable to sync draft right now. Please retry in a moment."

    @pytest.mark.asyncio
    async def test_close_writes_pending_edit(self, writer):
        editor = make_editor(writer)
        editor.update_page("p0", title="Last words")
        task = editor.close()
        await task
        assert writer.payloads[-1]["pages"][0]["title"] == "Last words"

    @pytest.mark.asyncio
    async def test_open_loads_from_api(self, writer):
        puts = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, json={"project": project_to_response(project_record(2))})
            puts.append(request)
            return httpx.Response(200, json={})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api.test") as client:
            editor = await EditorSession.open(client, "proj1", debounce_seconds=10)
            assert len(editor.pages) == 2
            editor.add_page()
            assert await editor.navigate_with_save("/preview") == "/preview"
        assert len(puts) == 1
