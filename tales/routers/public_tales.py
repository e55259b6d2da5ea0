import logging
from fastapi import APIRouter, Depends, HTTPException
from tales.db.store import EntitlementStore, get_store
from tales.schemas.project import project_to_response, published_to_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/tales", tags=["tales"])


@router.get("/{slug}")
def get_tale(slug: str, store: EntitlementStore = Depends(get_store)):
    """Public read of a published tale and the story content behind it."""
    found = store.get_published_by_slug(slug)
    if found is None:
        raise HTTPException(status_code=404, detail="Tale not found.")
    tale, project = found
    return {"tale": published_to_response(tale), "project": project_to_response(project)}
