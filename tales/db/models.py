import secrets
import uuid
from datetime import datetime, timezone
from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

# Match migration 001: id/fk columns are String(36)
ID_TYPE = String(36)
# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSON_TYPE = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


def uuid_str():
    return str(uuid.uuid4())


def new_slug():
    """Public, unguessable tale key (14 url-safe chars)."""
    return secrets.token_urlsafe(10)


def utcnow():
    return datetime.now(timezone.utc)


class Project(Base):
    """Draft content. Replaced wholesale by the editor; is_premium only ever goes false -> true."""
    __tablename__ = "projects"
    id = Column(ID_TYPE, primary_key=True, default=uuid_str)
    template_id = Column(String(32), nullable=False)
    vibe = Column(String(64), nullable=False)
    pages_json = Column(JSON_TYPE, nullable=False)  # [{id, title, body, ...}] in story order
    character_refs = Column(JSON_TYPE)
    is_premium = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class PublishedTale(Base):
    """Public projection of a project; one row per project, upgraded in place."""
    __tablename__ = "published_tales"
    id = Column(ID_TYPE, primary_key=True, default=uuid_str)
    project_id = Column(ID_TYPE, ForeignKey("projects.id"), nullable=False, unique=True)
    slug = Column(String(32), nullable=False, unique=True, default=new_slug)
    is_premium = Column(Boolean, nullable=False, default=False)
    narration_url = Column(Text, nullable=True)
    published_at = Column(DateTime(timezone=True), default=utcnow)


class Purchase(Base):
    """Append-only purchase log. provider_ref is unique: a repeated reference is a no-op."""
    __tablename__ = "purchases"
    id = Column(ID_TYPE, primary_key=True, default=uuid_str)
    type = Column(String(16), nullable=False)  # export | premium
    provider_ref = Column(String(128), nullable=False, unique=True)  # vt_... or discount_CODE_...
    amount_minor = Column(Integer, nullable=False, default=0)
    currency = Column(String(8), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Reaction(Base):
    __tablename__ = "reactions"
    id = Column(ID_TYPE, primary_key=True, default=uuid_str)
    published_tale_id = Column(ID_TYPE, ForeignKey("published_tales.id"), nullable=False)
    reaction = Column(String(16), nullable=False)  # blush | scream | cry | omo | speechless | love
    reply_text = Column(String(160), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
