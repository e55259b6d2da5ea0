"""In-process entitlement store for local dev and tests. One instance per app; nothing is global."""
import threading
from datetime import datetime, timezone
from uuid import uuid4

from tales.core.catalog import TemplateId
from tales.core.errors import NotFoundError, PremiumRequiredError
from tales.db.models import new_slug
from tales.schemas.project import Page, ProjectRecord, PublishedTaleRecord
from tales.schemas.reaction import ReactionRecord

MAX_KEPT_REACTIONS = 50


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryEntitlementStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._projects: dict[str, ProjectRecord] = {}
        self._published_by_project: dict[str, PublishedTaleRecord] = {}
        self._project_by_slug: dict[str, str] = {}
        self._reactions: dict[str, list[ReactionRecord]] = {}
        self._purchases: dict[str, dict] = {}

    # ---- projects ----

    def create_project(self, template_id, vibe, character_refs=None, pages=None) -> ProjectRecord:
        refs = list(character_refs or [])
        if not pages:
            pages = [Page(characterId=refs[0] if refs else None, signature="")]
        now = _now()
        record = ProjectRecord(
            id=uuid4().hex[:14],
            template_id=template_id,
            vibe=vibe,
            pages_json=pages,
            character_refs=refs,
            is_premium=False,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._projects[record.id] = record
        return record

    def get_project(self, project_id) -> ProjectRecord | None:
        with self._lock:
            return self._projects.get(project_id)

    def replace_project(self, project_id, template_id, vibe, pages) -> ProjectRecord:
        with self._lock:
            existing = self._projects.get(project_id)
            if existing is None:
                raise NotFoundError("Project not found.", {"project_id": project_id})
            # model_copy skips validation, so coerce here
            updated = existing.model_copy(
                update={
                    "template_id": TemplateId(template_id),
                    "vibe": vibe,
                    "pages_json": [p if isinstance(p, Page) else Page.model_validate(p) for p in pages],
                    "updated_at": _now(),
                }
            )
            self._projects[project_id] = updated
            return updated

    def set_premium(self, project_id) -> None:
        with self._lock:
            self._set_premium_locked(project_id)

    def _set_premium_locked(self, project_id) -> None:
        existing = self._projects.get(project_id)
        if existing is None:
            raise NotFoundError("Project not found.", {"project_id": project_id})
        if not existing.is_premium:
            self._projects[project_id] = existing.model_copy(update={"is_premium": True, "updated_at": _now()})

    # ---- published tales ----

    def get_published_by_project(self, project_id) -> PublishedTaleRecord | None:
        with self._lock:
            return self._published_by_project.get(project_id)

    def create_or_upgrade_published(self, project_id, premium) -> PublishedTaleRecord:
        with self._lock:
            return self._create_or_upgrade_locked(project_id, premium)

    def _create_or_upgrade_locked(self, project_id, premium) -> PublishedTaleRecord:
        if project_id not in self._projects:
            raise NotFoundError("Project not found.", {"project_id": project_id})
        existing = self._published_by_project.get(project_id)
        if existing is not None:
            if premium and not existing.is_premium:
                existing = existing.model_copy(update={"is_premium": True})
                self._published_by_project[project_id] = existing
            return existing
        tale = PublishedTaleRecord(
            id=uuid4().hex[:14],
            project_id=project_id,
            slug=new_slug(),
            is_premium=bool(premium),
            narration_url=None,
            published_at=_now(),
        )
        self._published_by_project[project_id] = tale
        self._project_by_slug[tale.slug] = project_id
        return tale

    def get_published_by_slug(self, slug):
        with self._lock:
            project_id = self._project_by_slug.get(slug)
            if project_id is None:
                return None
            tale = self._published_by_project.get(project_id)
            project = self._projects.get(project_id)
            if tale is None or project is None:
                return None
            return tale, project

    def save_narration_url(self, project_id, narration_url) -> PublishedTaleRecord:
        with self._lock:
            tale = self._create_or_upgrade_locked(project_id, True)
            tale = tale.model_copy(update={"narration_url": narration_url, "is_premium": True})
            self._published_by_project[project_id] = tale
            self._set_premium_locked(project_id)
            return tale

    # ---- purchases ----

    def append_purchase_log(self, purchase_type, reference, amount_minor, currency) -> bool:
        with self._lock:
            if reference in self._purchases:
                return False
            self._purchases[reference] = {
                "type": purchase_type,
                "provider_ref": reference,
                "amount_minor": int(amount_minor),
                "currency": currency,
                "created_at": _now(),
            }
            return True

    def count_usage(self, reference_prefix) -> int:
        prefix = reference_prefix.lower()
        with self._lock:
            return sum(1 for ref in self._purchases if ref.lower().startswith(prefix))

    # ---- reactions ----

    def add_reaction(self, slug, reaction, reply_text) -> ReactionRecord:
        with self._lock:
            project_id = self._project_by_slug.get(slug)
            tale = self._published_by_project.get(project_id) if project_id else None
            if tale is None:
                raise NotFoundError("Tale not found.", {"slug": slug})
            if not tale.is_premium:
                raise PremiumRequiredError("Reactions are premium.")
            record = ReactionRecord(reaction=reaction, reply_text=reply_text, created_at=_now())
            kept = [record] + self._reactions.get(tale.id, [])
            self._reactions[tale.id] = kept[:MAX_KEPT_REACTIONS]
            return record

    def list_reactions(self, slug, limit=50) -> list[ReactionRecord]:
        with self._lock:
            project_id = self._project_by_slug.get(slug)
            tale = self._published_by_project.get(project_id) if project_id else None
            if tale is None:
                return []
            return list(self._reactions.get(tale.id, []))[:limit]
