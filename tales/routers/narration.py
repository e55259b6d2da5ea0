import logging
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from tales.core.config import Settings, get_settings
from tales.core.errors import TalesError, http_status_for
from tales.db.store import EntitlementStore, get_store
from tales.services.narration import narrate_project

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/narration", tags=["narration"])


class NarrationBody(BaseModel):
    projectId: str | None = None
    text: str | None = None


@router.post("")
def create_narration(
    body: NarrationBody,
    store: EntitlementStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    project_id = (body.projectId or "").strip()
    if not project_id:
        raise HTTPException(status_code=400, detail="projectId is required.")
    text = body.text if body.text and body.text.strip() else None
    logger.info("narration: project_id=%s custom_text=%s", project_id, text is not None)
    try:
        url = narrate_project(store, settings, project_id, text=text)
        return {"narrationUrl": url}
    except HTTPException:
        raise
    except TalesError as e:
        raise HTTPException(status_code=http_status_for(e), detail=e.message)
    except Exception as e:
        logger.exception("narration: project_id=%s error %s", project_id, e)
        raise HTTPException(status_code=500, detail="Narration failed.")
