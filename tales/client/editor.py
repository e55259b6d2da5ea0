"""Editor session: in-memory story state whose every mutation is handed to the DraftSyncEngine."""
import logging

import httpx

from tales.client.draft_sync import DraftSyncEngine, HttpDraftWriter
from tales.core.catalog import TemplateId
from tales.core.errors import NotFoundError, TalesError
from tales.schemas.project import DraftSnapshot, Page, ProjectRecord
from tales.services.pricing import MAX_PAGE_LIMIT, CheckoutQuote, get_checkout_quote
from tales.services.text_format import detect_likely_names

logger = logging.getLogger(__name__)


class EditorSession:
    def __init__(self, project: ProjectRecord, engine: DraftSyncEngine):
        self.project_id = project.id
        self.is_premium = project.is_premium
        self.template_id = TemplateId(project.template_id)
        self.vibe = project.vibe
        self.pages: list[Page] = [p.model_copy() for p in project.pages_json] or [Page(signature="")]
        self.engine = engine
        engine.hydrate(self.snapshot())

    @classmethod
    async def open(cls, client: httpx.AsyncClient, project_id: str, **engine_kwargs) -> "EditorSession":
        """Load a project from the API and start an editor bound to it."""
        r = await client.get(f"/projects/{project_id}")
        if r.status_code == 404:
            raise NotFoundError("Project not found.", {"project_id": project_id})
        r.raise_for_status()
        project = ProjectRecord.model_validate(r.json()["project"])
        engine = DraftSyncEngine(HttpDraftWriter(client, project_id), **engine_kwargs)
        return cls(project, engine)

    # ---- derived ----

    def snapshot(self) -> DraftSnapshot:
        return DraftSnapshot(templateId=self.template_id, vibe=self.vibe, pages=[p.model_copy() for p in self.pages])

    @property
    def quote(self) -> CheckoutQuote:
        return get_checkout_quote(self.template_id, self.vibe, self.pages)

    @property
    def can_add_page(self) -> bool:
        return len(self.pages) < MAX_PAGE_LIMIT

    @property
    def status(self) -> str:
        return self.engine.status

    def _changed(self) -> None:
        self.engine.update(self.snapshot())

    def _index(self, page_id: str) -> int | None:
        for i, page in enumerate(self.pages):
            if page.id == page_id:
                return i
        return None

    # ---- mutations ----

    def set_template(self, template_id: str) -> None:
        template_id = TemplateId(template_id)
        if template_id == self.template_id:
            return
        self.template_id = template_id
        self._changed()

    def set_vibe(self, vibe: str) -> None:
        if not vibe or vibe == self.vibe:
            return
        self.vibe = vibe
        self._changed()

    def add_page(self) -> Page | None:
        if not self.can_add_page:
            return None
        page = Page(signature="")
        self.pages.append(page)
        self._changed()
        return page

    def update_page(self, page_id: str, **updates) -> bool:
        """Apply field updates to one page. Body changes recompute highlightedNames. Returns False when nothing changed."""
        i = self._index(page_id)
        if i is None:
            return False
        current = self.pages[i]
        updates.pop("id", None)
        if "body" in updates and updates["body"] != current.body:
            updates["highlightedNames"] = detect_likely_names(updates["body"] or "")
        updated = Page.model_validate({**current.model_dump(), **updates})
        if updated == current:
            return False
        self.pages[i] = updated
        self._changed()
        return True

    def delete_page(self, page_id: str) -> bool:
        """Remove a page; the last remaining page cannot be deleted."""
        if len(self.pages) <= 1:
            return False
        i = self._index(page_id)
        if i is None:
            return False
        del self.pages[i]
        self._changed()
        return True

    # ---- navigation ----

    async def navigate_with_save(self, destination: str) -> str | None:
        """Flush before leaving for a page that reads persisted state. Returns destination, or None if the flush failed."""
        try:
            await self.engine.flush(self.snapshot())
        except TalesError as e:
            logger.info("editor: navigation to %s aborted: %s", destination, e)
            self.engine.set_status(e.message)
            return None
        return destination

    def close(self):
        """Teardown: best-effort final write, then drop timers."""
        task = self.engine.flush_on_unload()
        self.engine.detach()
        return task
