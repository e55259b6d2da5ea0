"""SQLAlchemy entitlement store. One short session per operation; uniqueness constraints make concurrent payment paths safe."""
import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from tales.core.catalog import TemplateId
from tales.core.errors import NotFoundError, PremiumRequiredError
from tales.db import models
from tales.schemas.project import Page, ProjectRecord, PublishedTaleRecord
from tales.schemas.reaction import ReactionRecord

logger = logging.getLogger(__name__)


def _project_record(row: models.Project) -> ProjectRecord:
    return ProjectRecord(
        id=row.id,
        template_id=row.template_id,
        vibe=row.vibe,
        pages_json=row.pages_json or [],
        character_refs=row.character_refs or [],
        is_premium=bool(row.is_premium),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _dump_pages(pages) -> list[dict]:
    return [
        (p if isinstance(p, Page) else Page.model_validate(p)).model_dump(mode="json", exclude_none=True)
        for p in pages
    ]


class SqlEntitlementStore:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def _session(self) -> Session:
        return self._session_factory()

    # ---- projects ----

    def create_project(self, template_id, vibe, character_refs=None, pages=None) -> ProjectRecord:
        refs = list(character_refs or [])
        if not pages:
            pages = [Page(characterId=refs[0] if refs else None, signature="")]
        db = self._session()
        try:
            row = models.Project(
                template_id=TemplateId(template_id).value,
                vibe=vibe,
                pages_json=_dump_pages(pages),
                character_refs=refs,
                is_premium=False,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return _project_record(row)
        finally:
            db.close()

    def get_project(self, project_id) -> ProjectRecord | None:
        db = self._session()
        try:
            row = db.query(models.Project).filter(models.Project.id == project_id).first()
            return _project_record(row) if row else None
        finally:
            db.close()

    def replace_project(self, project_id, template_id, vibe, pages) -> ProjectRecord:
        db = self._session()
        try:
            row = db.query(models.Project).filter(models.Project.id == project_id).first()
            if not row:
                raise NotFoundError("Project not found.", {"project_id": project_id})
            row.template_id = TemplateId(template_id).value
            row.vibe = vibe
            row.pages_json = _dump_pages(pages)
            db.commit()
            db.refresh(row)
            return _project_record(row)
        finally:
            db.close()

    def set_premium(self, project_id) -> None:
        db = self._session()
        try:
            self._set_premium(db, project_id)
            db.commit()
        finally:
            db.close()

    def _set_premium(self, db: Session, project_id) -> None:
        exists = db.query(models.Project.id).filter(models.Project.id == project_id).first()
        if not exists:
            raise NotFoundError("Project not found.", {"project_id": project_id})
        # Only ever flips false -> true
        db.execute(
            update(models.Project)
            .where(models.Project.id == project_id, models.Project.is_premium.is_(False))
            .values(is_premium=True)
        )

    # ---- published tales ----

    def get_published_by_project(self, project_id) -> PublishedTaleRecord | None:
        db = self._session()
        try:
            row = db.query(models.PublishedTale).filter(models.PublishedTale.project_id == project_id).first()
            return PublishedTaleRecord.model_validate(row) if row else None
        finally:
            db.close()

    def create_or_upgrade_published(self, project_id, premium) -> PublishedTaleRecord:
        db = self._session()
        try:
            row = self._create_or_upgrade(db, project_id, premium)
            return PublishedTaleRecord.model_validate(row)
        finally:
            db.close()

    def _create_or_upgrade(self, db: Session, project_id, premium) -> models.PublishedTale:
        row = db.query(models.PublishedTale).filter(models.PublishedTale.project_id == project_id).first()
        if row is None:
            if not db.query(models.Project.id).filter(models.Project.id == project_id).first():
                raise NotFoundError("Project not found.", {"project_id": project_id})
            row = models.PublishedTale(project_id=project_id, is_premium=bool(premium))
            db.add(row)
            try:
                db.commit()
                db.refresh(row)
                logger.info("store: published project_id=%s slug=%s premium=%s", project_id, row.slug, row.is_premium)
                return row
            except IntegrityError:
                # Webhook and verify raced to publish; the other insert won
                db.rollback()
                logger.info("store: concurrent publish for project_id=%s, reusing existing row", project_id)
                row = db.query(models.PublishedTale).filter(models.PublishedTale.project_id == project_id).one()
        if premium and not row.is_premium:
            db.execute(
                update(models.PublishedTale)
                .where(models.PublishedTale.id == row.id, models.PublishedTale.is_premium.is_(False))
                .values(is_premium=True)
            )
            db.commit()
            db.refresh(row)
        return row

    def get_published_by_slug(self, slug):
        db = self._session()
        try:
            tale = db.query(models.PublishedTale).filter(models.PublishedTale.slug == slug).first()
            if not tale:
                return None
            project = db.query(models.Project).filter(models.Project.id == tale.project_id).first()
            if not project:
                return None
            return PublishedTaleRecord.model_validate(tale), _project_record(project)
        finally:
            db.close()

    def save_narration_url(self, project_id, narration_url) -> PublishedTaleRecord:
        db = self._session()
        try:
            row = self._create_or_upgrade(db, project_id, True)
            row.narration_url = narration_url
            row.is_premium = True
            self._set_premium(db, project_id)
            db.commit()
            db.refresh(row)
            return PublishedTaleRecord.model_validate(row)
        finally:
            db.close()

    # ---- purchases ----

    def append_purchase_log(self, purchase_type, reference, amount_minor, currency) -> bool:
        db = self._session()
        try:
            if db.query(models.Purchase.id).filter(models.Purchase.provider_ref == reference).first():
                return False
            db.add(
                models.Purchase(
                    type=purchase_type,
                    provider_ref=reference,
                    amount_minor=int(amount_minor),
                    currency=currency,
                )
            )
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.info("store: purchase reference=%s already logged", reference)
                return False
            return True
        finally:
            db.close()

    def count_usage(self, reference_prefix) -> int:
        db = self._session()
        try:
            return (
                db.query(models.Purchase)
                .filter(models.Purchase.provider_ref.istartswith(reference_prefix, autoescape=True))
                .count()
            )
        finally:
            db.close()

    # ---- reactions ----

    def add_reaction(self, slug, reaction, reply_text) -> ReactionRecord:
        db = self._session()
        try:
            tale = db.query(models.PublishedTale).filter(models.PublishedTale.slug == slug).first()
            if not tale:
                raise NotFoundError("Tale not found.", {"slug": slug})
            if not tale.is_premium:
                raise PremiumRequiredError("Reactions are premium.")
            row = models.Reaction(
                published_tale_id=tale.id,
                reaction=getattr(reaction, "value", reaction),
                reply_text=reply_text,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return ReactionRecord.model_validate(row)
        finally:
            db.close()

    def list_reactions(self, slug, limit=50) -> list[ReactionRecord]:
        db = self._session()
        try:
            tale = db.query(models.PublishedTale.id).filter(models.PublishedTale.slug == slug).first()
            if not tale:
                return []
            rows = (
                db.query(models.Reaction)
                .filter(models.Reaction.published_tale_id == tale.id)
                .order_by(models.Reaction.created_at.desc())
                .limit(limit)
                .all()
            )
            return [ReactionRecord.model_validate(r) for r in rows]
        finally:
            db.close()
