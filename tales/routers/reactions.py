import logging
from fastapi import APIRouter, Depends, HTTPException
from tales.core.errors import NotFoundError, PremiumRequiredError
from tales.db.store import EntitlementStore, get_store
from tales.schemas.reaction import ReactionCreate, clean_reply

logger = logging.getLogger(__name__)
router = APIRouter(tags=["reactions"])

REACTIONS_PAGE_SIZE = 50


def _reaction_to_response(r) -> dict:
    return {
        "reaction": r.reaction.value,
        "reply_text": r.reply_text,
        "created_at": r.created_at.isoformat() if r.created_at else None,
    }


@router.post("/reactions")
def post_reaction(body: ReactionCreate, store: EntitlementStore = Depends(get_store)):
    """Viewer reaction on a premium tale. Storage errors are not echoed to the viewer."""
    slug = (body.taleSlug or "").strip()
    if not slug or body.reaction is None:
        raise HTTPException(status_code=400, detail="Invalid reaction payload.")
    try:
        record = store.add_reaction(slug, body.reaction.value, clean_reply(body.replyText))
        logger.info("reactions: slug=%s reaction=%s reply=%s", slug, record.reaction.value, bool(record.reply_text))
        return {"success": True, "reaction": _reaction_to_response(record)}
    except HTTPException:
        raise
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Tale not found.")
    except PremiumRequiredError:
        raise HTTPException(status_code=403, detail="Reactions are premium only.")
    except Exception as e:
        logger.exception("reactions: slug=%s error %s", slug, e)
        raise HTTPException(status_code=500, detail="Failed to save reaction.")


@router.get("/tales/{slug}/reactions")
def list_reactions(slug: str, store: EntitlementStore = Depends(get_store)):
    records = store.list_reactions(slug, limit=REACTIONS_PAGE_SIZE)
    return {"reactions": [_reaction_to_response(r) for r in records]}
