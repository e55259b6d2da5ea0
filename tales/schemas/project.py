import json
import secrets
from datetime import datetime
from pydantic import BaseModel, Field, model_validator

from tales.core.catalog import DEFAULT_TEMPLATE_ID, DEFAULT_VIBE_ID, TemplateId
from tales.services.pricing import MAX_PAGE_LIMIT


def new_page_id() -> str:
    return secrets.token_urlsafe(8)


class Page(BaseModel):
    """One step of a story. Keys are camelCase because pages_json is stored exactly as the editor sends it."""
    id: str = Field(default_factory=new_page_id)
    title: str = ""
    body: str = ""
    signature: str | None = None
    highlightedNames: list[str] | None = None  # derived from body by the editor
    bgColor: str | None = None
    textColor: str | None = None
    characterId: str | None = None  # catalog sticker id or inline data URL
    characterPosition: str | None = None
    stickerX: float | None = Field(None, ge=0, le=100)
    stickerY: float | None = Field(None, ge=0, le=100)
    stickerSize: float | None = Field(None, ge=0, le=100)
    secret: bool | None = None


class DraftSnapshot(BaseModel):
    """Full editor document sent on every draft write (no partial patches)."""
    templateId: TemplateId
    vibe: str = Field(..., min_length=1)
    pages: list[Page] = Field(..., min_length=1, max_length=MAX_PAGE_LIMIT)

    @model_validator(mode="after")
    def _unique_page_ids(self):
        ids = [p.id for p in self.pages]
        if len(set(ids)) != len(ids):
            raise ValueError("Page ids must be unique within a project.")
        return self

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)

    def serialize(self) -> str:
        """Canonical JSON used to compare snapshots."""
        return json.dumps(self.to_payload(), sort_keys=True, separators=(",", ":"))


class ProjectCreate(BaseModel):
    templateId: TemplateId = DEFAULT_TEMPLATE_ID
    vibe: str = Field(DEFAULT_VIBE_ID, min_length=1)
    characterRefs: list[str] | None = None


class ProjectRecord(BaseModel):
    id: str
    template_id: TemplateId
    vibe: str
    pages_json: list[Page]
    character_refs: list[str] = Field(default_factory=list)
    is_premium: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True

    def snapshot(self) -> DraftSnapshot:
        return DraftSnapshot(templateId=self.template_id, vibe=self.vibe, pages=self.pages_json)


class PublishedTaleRecord(BaseModel):
    id: str
    project_id: str
    slug: str
    is_premium: bool = False
    narration_url: str | None = None
    published_at: datetime | None = None

    class Config:
        from_attributes = True


def project_to_response(p: ProjectRecord) -> dict:
    """Serialize a project for JSON responses."""
    return {
        "id": p.id,
        "template_id": p.template_id.value,
        "vibe": p.vibe,
        "pages_json": [pg.model_dump(mode="json", exclude_none=True) for pg in p.pages_json],
        "character_refs": list(p.character_refs),
        "is_premium": p.is_premium,
        "created_at": p.created_at.isoformat() if p.created_at else None,
        "updated_at": p.updated_at.isoformat() if p.updated_at else None,
    }


def published_to_response(t: PublishedTaleRecord) -> dict:
    return {
        "id": t.id,
        "project_id": t.project_id,
        "slug": t.slug,
        "is_premium": t.is_premium,
        "narration_url": t.narration_url,
        "published_at": t.published_at.isoformat() if t.published_at else None,
    }
