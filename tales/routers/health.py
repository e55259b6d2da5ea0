import logging

from fastapi import APIRouter, Depends

from tales.db.store import EntitlementStore, get_store

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health")
def health(store: EntitlementStore = Depends(get_store)):
    logger.info("health: OK")
    return {"status": "ok", "store": type(store).__name__}
