import enum
from datetime import datetime
from pydantic import BaseModel

MAX_REPLY_CHARS = 160


class ReactionCategory(str, enum.Enum):
    blush = "blush"
    scream = "scream"
    cry = "cry"
    omo = "omo"
    speechless = "speechless"
    love = "love"


class ReactionCreate(BaseModel):
    taleSlug: str | None = None
    reaction: ReactionCategory | None = None
    replyText: str | None = None


class ReactionRecord(BaseModel):
    reaction: ReactionCategory
    reply_text: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


def clean_reply(text: str | None) -> str | None:
    """Trim and cap a reply; empty replies become None."""
    if not isinstance(text, str):
        return None
    text = text.strip()[:MAX_REPLY_CHARS]
    return text or None
