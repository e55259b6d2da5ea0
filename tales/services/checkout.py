"""Checkout: price the project, then either redeem a discount code or open a Paystack transaction."""
import logging
import secrets
from dataclasses import dataclass
from urllib.parse import quote as urlquote

from tales.core.config import Settings
from tales.core.errors import InvalidDiscountCodeError, NotFoundError, QuotaExceededError
from tales.db.store import EntitlementStore
from tales.services.paystack import PaystackClient
from tales.services.pricing import CheckoutQuote, quote_for_project

logger = logging.getLogger(__name__)

PAYMENT_REFERENCE_PREFIX = "vt_"


def new_payment_reference() -> str:
    return f"{PAYMENT_REFERENCE_PREFIX}{secrets.token_urlsafe(9)}"


def discount_reference_prefix(code: str) -> str:
    return f"discount_{code.upper()}_"


@dataclass
class CheckoutResult:
    quote: CheckoutQuote
    checkout_url: str | None = None
    reference: str | None = None
    published_url: str | None = None

    def to_response(self) -> dict:
        if self.published_url:
            return {"success": True, "publishedUrl": self.published_url, "type": self.quote.purchaseType}
        return {
            "checkoutUrl": self.checkout_url,
            "reference": self.reference,
            "type": self.quote.purchaseType,
            "totalAmount": self.quote.totalAmount,
            "premiumUnits": self.quote.premiumUnits,
        }


def _remaining_quota(store: EntitlementStore, settings: Settings, code: str) -> int | None:
    """Uses left for a configured code, or None if the code is unknown."""
    limit = settings.discount_limits().get(code)
    if limit is None:
        return None
    used = store.count_usage(discount_reference_prefix(code))
    return max(0, limit - used)


def redeem_discount(store: EntitlementStore, settings: Settings, project_id: str, code: str, purchase_type: str) -> str:
    """Premium-unlock and publish a project for free; returns the public URL. Raises QuotaExceededError when used up."""
    code = code.strip().upper()
    remaining = _remaining_quota(store, settings, code)
    if remaining is None:
        raise InvalidDiscountCodeError(code=code)
    if remaining <= 0:
        logger.info("checkout: discount code=%s exhausted, project_id=%s", code, project_id)
        raise QuotaExceededError(code=code)
    store.set_premium(project_id)
    published = store.create_or_upgrade_published(project_id, True)
    reference = f"{discount_reference_prefix(code)}{secrets.token_urlsafe(8)}"
    store.append_purchase_log(purchase_type, reference, 0, settings.currency)
    logger.info("checkout: discount code=%s redeemed project_id=%s slug=%s", code, project_id, published.slug)
    return settings.tale_url(published.slug)


def apply_coupon(store: EntitlementStore, settings: Settings, project_id: str, code: str) -> str:
    """Standalone coupon endpoint: unknown codes are an error rather than ignored."""
    project = store.get_project(project_id)
    if project is None:
        raise NotFoundError("Project not found.", {"project_id": project_id})
    return redeem_discount(store, settings, project_id, code, quote_for_project(project).purchaseType)


def start_checkout(
    store: EntitlementStore,
    provider: PaystackClient,
    settings: Settings,
    project_id: str,
    email: str,
    discount_code: str | None = None,
) -> CheckoutResult:
    project = store.get_project(project_id)
    if project is None:
        raise NotFoundError("Project not found.", {"project_id": project_id})
    quote = quote_for_project(project)

    code = (discount_code or "").strip().upper()
    if code and code in settings.discount_limits():
        published_url = redeem_discount(store, settings, project_id, code, quote.purchaseType)
        return CheckoutResult(quote=quote, published_url=published_url)
    if code:
        logger.info("checkout: unknown discount code=%s ignored, project_id=%s", code, project_id)

    reference = new_payment_reference()
    callback_url = (
        f"{settings.app_base_url.rstrip('/')}/checkout"
        f"?projectId={urlquote(project_id, safe='')}&ref={urlquote(reference, safe='')}"
    )
    metadata = {
        "projectId": project_id,
        "type": quote.purchaseType,
        "premiumUnits": quote.premiumUnits,
        "totalAmount": quote.totalAmount,
    }
    tx = provider.initialize_transaction(email, quote.total_minor, reference, callback_url, metadata)
    logger.info(
        "checkout: initialized project_id=%s reference=%s total=%s type=%s",
        project_id,
        tx.reference,
        quote.totalAmount,
        quote.purchaseType,
    )
    return CheckoutResult(quote=quote, checkout_url=tx.authorization_url, reference=tx.reference)
