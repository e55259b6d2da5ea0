import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool
from tales.core.config import Settings, get_settings
from tales.core.errors import TalesError, http_status_for
from tales.db.store import EntitlementStore, get_store
from tales.schemas.payment import CouponRequest, InitializeRequest
from tales.services.checkout import apply_coupon, start_checkout
from tales.services.paystack import SIGNATURE_HEADER, PaystackClient, get_payment_provider
from tales.services.reconciliation import handle_webhook, verify_reference

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/initialize")
def initialize_payment(
    body: InitializeRequest,
    store: EntitlementStore = Depends(get_store),
    provider: PaystackClient = Depends(get_payment_provider),
    settings: Settings = Depends(get_settings),
):
    email = (body.email or "").strip()
    project_id = (body.projectId or "").strip()
    if not email or not project_id:
        raise HTTPException(status_code=400, detail="Missing email or projectId.")
    logger.info("payments/initialize: project_id=%s discount=%s", project_id, bool(body.discountCode))
    try:
        result = start_checkout(store, provider, settings, project_id, email, discount_code=body.discountCode)
        return result.to_response()
    except HTTPException:
        raise
    except TalesError as e:
        logger.warning("payments/initialize: project_id=%s %s", project_id, e)
        raise HTTPException(status_code=http_status_for(e), detail=e.message)
    except Exception as e:
        logger.exception("payments/initialize: project_id=%s error %s", project_id, e)
        raise HTTPException(status_code=500, detail="Failed to initialize payment.")


@router.get("/verify")
def verify_payment(
    reference: str | None = None,
    store: EntitlementStore = Depends(get_store),
    provider: PaystackClient = Depends(get_payment_provider),
    settings: Settings = Depends(get_settings),
):
    reference = (reference or "").strip()
    if not reference:
        raise HTTPException(status_code=400, detail="Missing payment reference.")
    try:
        result = verify_reference(store, provider, settings, reference)
        logger.info("payments/verify: reference=%s type=%s duplicate=%s", reference, result.purchase_type, result.duplicate)
        return result.to_response()
    except HTTPException:
        raise
    except TalesError as e:
        logger.warning("payments/verify: reference=%s %s", reference, e)
        raise HTTPException(status_code=http_status_for(e), detail=e.message)
    except Exception as e:
        logger.exception("payments/verify: reference=%s error %s", reference, e)
        raise HTTPException(status_code=500, detail="Failed to verify payment.")


@router.post("/webhook")
async def paystack_webhook(
    request: Request,
    store: EntitlementStore = Depends(get_store),
    provider: PaystackClient = Depends(get_payment_provider),
    settings: Settings = Depends(get_settings),
):
    """
    Paystack charge events. Signature is checked over the exact raw bytes.
    Bad or irrelevant events are acknowledged with 200 so Paystack stops retrying;
    storage failures answer a generic 500 so it retries later.
    """
    raw_body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    try:
        outcome = await run_in_threadpool(handle_webhook, store, provider, settings, raw_body, signature)
    except Exception as e:
        logger.exception("payments/webhook: error %s", e)
        raise HTTPException(status_code=500, detail="Webhook processing failed.")
    logger.info("payments/webhook: outcome=%s", outcome.value)
    return {"ok": True}


@router.post("/coupon")
def redeem_coupon(
    body: CouponRequest,
    store: EntitlementStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    project_id = (body.projectId or "").strip()
    code = (body.code or "").strip()
    if not project_id or not code:
        raise HTTPException(status_code=400, detail="Missing projectId or code.")
    try:
        published_url = apply_coupon(store, settings, project_id, code)
        return {"success": True, "publishedUrl": published_url}
    except HTTPException:
        raise
    except TalesError as e:
        logger.info("payments/coupon: project_id=%s %s", project_id, e)
        raise HTTPException(status_code=http_status_for(e), detail=e.message)
    except Exception as e:
        logger.exception("payments/coupon: project_id=%s error %s", project_id, e)
        raise HTTPException(status_code=500, detail="Failed to apply coupon.")
