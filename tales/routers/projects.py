import logging
from fastapi import APIRouter, Depends, HTTPException
from tales.core.errors import TalesError, http_status_for
from tales.db.store import EntitlementStore, get_store
from tales.schemas.project import DraftSnapshot, ProjectCreate, project_to_response, published_to_response
from tales.services.pricing import quote_for_project

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/projects", tags=["projects"])


def _load(store: EntitlementStore, project_id: str):
    project = store.get_project(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found.")
    return project


@router.post("", status_code=201)
def create_project(body: ProjectCreate, store: EntitlementStore = Depends(get_store)):
    """New draft with one empty page (first chosen sticker on it)."""
    project = store.create_project(body.templateId.value, body.vibe, character_refs=body.characterRefs or [])
    logger.info("projects/create: project_id=%s template=%s vibe=%s", project.id, project.template_id.value, project.vibe)
    return {"projectId": project.id}


@router.get("/{project_id}")
def get_project(project_id: str, store: EntitlementStore = Depends(get_store)):
    return {"project": project_to_response(_load(store, project_id))}


@router.put("/{project_id}")
def save_draft(project_id: str, body: DraftSnapshot, store: EntitlementStore = Depends(get_store)):
    """Full replace of template, vibe and pages. The premium flag is not writable here."""
    try:
        project = store.replace_project(project_id, body.templateId.value, body.vibe, body.pages)
        logger.debug("projects/save: project_id=%s pages=%d", project_id, len(body.pages))
        return {"project": project_to_response(project)}
    except HTTPException:
        raise
    except TalesError as e:
        raise HTTPException(status_code=http_status_for(e), detail=e.message)
    except Exception as e:
        logger.exception("projects/save: project_id=%s error %s", project_id, e)
        raise HTTPException(status_code=500, detail="Failed to save draft.")


@router.get("/{project_id}/quote")
def get_quote(project_id: str, store: EntitlementStore = Depends(get_store)):
    quote = quote_for_project(_load(store, project_id))
    return quote.model_dump()


@router.get("/{project_id}/published")
def get_published(project_id: str, store: EntitlementStore = Depends(get_store)):
    _load(store, project_id)
    published = store.get_published_by_project(project_id)
    if published is None:
        raise HTTPException(status_code=404, detail="Tale not published yet.")
    return {"tale": published_to_response(published)}
