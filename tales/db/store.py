"""
Entitlement store contract. Every core component reads and writes projects, published tales,
purchases and reactions through this interface.

Implementations:
- SqlEntitlementStore: SQLAlchemy, used whenever DATABASE_URL is set
- MemoryEntitlementStore: in-process dev/test backend
"""
from __future__ import annotations

import logging
from typing import Protocol

from fastapi import Request

from tales.core.config import Settings
from tales.schemas.project import Page, ProjectRecord, PublishedTaleRecord
from tales.schemas.reaction import ReactionRecord

logger = logging.getLogger(__name__)


class EntitlementStore(Protocol):
    def create_project(
        self,
        template_id: str,
        vibe: str,
        character_refs: list[str] | None = None,
        pages: list[Page] | None = None,
    ) -> ProjectRecord:
        ...

    def get_project(self, project_id: str) -> ProjectRecord | None:
        ...

    def replace_project(self, project_id: str, template_id: str, vibe: str, pages: list[Page]) -> ProjectRecord:
        """Full replace of draft content. Raises NotFoundError. Never touches is_premium."""
        ...

    def set_premium(self, project_id: str) -> None:
        """Set is_premium true (idempotent). Raises NotFoundError."""
        ...

    def get_published_by_project(self, project_id: str) -> PublishedTaleRecord | None:
        ...

    def create_or_upgrade_published(self, project_id: str, premium: bool) -> PublishedTaleRecord:
        """Return the project's tale, creating it if missing and upgrading it to premium if asked. Never downgrades."""
        ...

    def get_published_by_slug(self, slug: str) -> tuple[PublishedTaleRecord, ProjectRecord] | None:
        ...

    def append_purchase_log(self, purchase_type: str, reference: str, amount_minor: int, currency: str) -> bool:
        """Append a purchase row. Returns False (no error) when the reference already exists."""
        ...

    def count_usage(self, reference_prefix: str) -> int:
        """Number of purchase rows whose reference starts with reference_prefix."""
        ...

    def save_narration_url(self, project_id: str, narration_url: str) -> PublishedTaleRecord:
        """Store narration on the (created-if-missing) tale and force tale + project premium."""
        ...

    def add_reaction(self, slug: str, reaction: str, reply_text: str | None) -> ReactionRecord:
        """Raises NotFoundError for unknown slug, PremiumRequiredError for non-premium tales."""
        ...

    def list_reactions(self, slug: str, limit: int = 50) -> list[ReactionRecord]:
        """Newest first; empty for unknown slug."""
        ...


def build_store(settings: Settings) -> EntitlementStore:
    """Pick the backend once at startup."""
    if settings.database_url:
        from tales.db.session import init_db, make_session_factory
        from tales.db.sql_store import SqlEntitlementStore

        logger.info("store: using SQL backend")
        session_factory = make_session_factory(settings.database_url)
        if settings.app_env != "production":
            # Production schema is managed by alembic
            init_db(session_factory)
        return SqlEntitlementStore(session_factory)
    from tales.db.memory_store import MemoryEntitlementStore

    logger.warning("store: DATABASE_URL not set, using in-memory backend (data is lost on restart)")
    return MemoryEntitlementStore()


def get_store(request: Request) -> EntitlementStore:
    return request.app.state.store
