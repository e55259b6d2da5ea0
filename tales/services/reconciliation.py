"""
Payment reconciliation: turns a confirmed Paystack charge into entitlements.

Two entry points, one effect:
- verify_reference: the buyer returns from checkout and we ask Paystack for the charge status
- handle_webhook: Paystack posts charge.success, signed with our secret key

Both re-derive the amount floor from current project content and the checkout metadata,
then call finalize(). finalize() is idempotent (purchase log dedups on reference, premium
only moves false -> true), so the two paths may race on the same reference without locking.
"""
import enum
import json
import logging
from dataclasses import dataclass

from tales.core.config import Settings
from tales.core.errors import NotFoundError, PaymentRejectedError
from tales.db.store import EntitlementStore
from tales.schemas.payment import PaymentMetadata, parse_metadata
from tales.services.paystack import PaystackClient
from tales.services.pricing import MINOR_UNITS_PER_MAJOR, expected_total_for_units, quote_for_project

logger = logging.getLogger(__name__)

CHARGE_SUCCESS_EVENT = "charge.success"


@dataclass
class FinalizeResult:
    message: str
    published_url: str
    slug: str
    purchase_type: str
    duplicate: bool = False

    def to_response(self) -> dict:
        return {"message": self.message, "publishedUrl": self.published_url, "type": self.purchase_type}


@dataclass
class ConfirmedCharge:
    """A charge the provider says was paid, normalized from either entry point."""
    reference: str
    amount_minor: int
    currency: str
    metadata: PaymentMetadata


class WebhookOutcome(str, enum.Enum):
    finalized = "finalized"
    ignored = "ignored"


def finalize(
    store: EntitlementStore,
    settings: Settings,
    project_id: str,
    purchase_type: str,
    reference: str,
    amount_minor: int,
    currency: str,
) -> FinalizeResult:
    """Record the purchase and grant entitlements. Calling it again with the same reference changes nothing."""
    is_new = store.append_purchase_log(purchase_type, reference, amount_minor, currency)
    if not is_new:
        logger.info("finalize: reference=%s already logged, re-applying entitlements", reference)
    if purchase_type == "premium":
        store.set_premium(project_id)
        published = store.create_or_upgrade_published(project_id, True)
        message = "Payment confirmed. Premium is unlocked and your tale is live."
    else:
        published = store.create_or_upgrade_published(project_id, False)
        message = "Payment confirmed. Your private tale link is ready."
    logger.info(
        "finalize: project_id=%s type=%s reference=%s slug=%s new=%s",
        project_id,
        purchase_type,
        reference,
        published.slug,
        is_new,
    )
    return FinalizeResult(
        message=message,
        published_url=settings.tale_url(published.slug),
        slug=published.slug,
        purchase_type=purchase_type,
        duplicate=not is_new,
    )


def expected_amount(store: EntitlementStore, metadata: PaymentMetadata) -> tuple[int, str]:
    """
    Amount floor (whole currency units) and purchase type for a charge.
    The floor is the larger of the quote for the project as it is now and the quote implied by
    the metadata's premium-unit count; either source with >= 1 unit makes it a premium purchase.
    """
    project = store.get_project(metadata.projectId)
    if project is None:
        raise NotFoundError("Project not found.", {"project_id": metadata.projectId})
    quote = quote_for_project(project)
    floor = max(quote.totalAmount, expected_total_for_units(metadata.premiumUnits))
    purchase_type = "premium" if quote.premiumUnits > 0 or metadata.premiumUnits > 0 else "export"
    return floor, purchase_type


def reconcile_charge(store: EntitlementStore, settings: Settings, charge: ConfirmedCharge) -> FinalizeResult:
    floor, purchase_type = expected_amount(store, charge.metadata)
    if charge.amount_minor < floor * MINOR_UNITS_PER_MAJOR:
        logger.warning(
            "reconcile: reference=%s paid=%s expected_minor=%s, rejecting",
            charge.reference,
            charge.amount_minor,
            floor * MINOR_UNITS_PER_MAJOR,
        )
        raise PaymentRejectedError(
            "Payment amount does not match project total.",
            {"reference": charge.reference},
        )
    return finalize(
        store,
        settings,
        charge.metadata.projectId,
        purchase_type,
        charge.reference,
        charge.amount_minor,
        charge.currency,
    )


def verify_reference(
    store: EntitlementStore,
    provider: PaystackClient,
    settings: Settings,
    reference: str,
) -> FinalizeResult:
    """Synchronous path. Every failure is raised so the buyer sees it."""
    verified = provider.verify_transaction(reference)
    if not verified.successful:
        raise PaymentRejectedError("Payment not successful yet.", {"status": verified.status})
    metadata = parse_metadata(verified.metadata)
    if metadata is None:
        raise PaymentRejectedError("Missing project metadata.")
    charge = ConfirmedCharge(
        reference=verified.reference,
        amount_minor=verified.amount,
        currency=verified.currency or settings.currency,
        metadata=metadata,
    )
    return reconcile_charge(store, settings, charge)


def handle_webhook(
    store: EntitlementStore,
    provider: PaystackClient,
    settings: Settings,
    raw_body: bytes,
    signature: str | None,
) -> WebhookOutcome:
    """
    Asynchronous path. Integrity failures are logged and ignored so Paystack stops retrying;
    only storage errors propagate (the route answers 500 and Paystack retries later).
    """
    if not provider.signature_matches(raw_body, signature):
        logger.warning("webhook: signature mismatch, ignoring (%d bytes)", len(raw_body))
        return WebhookOutcome.ignored
    try:
        body = json.loads(raw_body)
    except ValueError:
        logger.warning("webhook: body is not JSON, ignoring")
        return WebhookOutcome.ignored
    if not isinstance(body, dict) or body.get("event") != CHARGE_SUCCESS_EVENT:
        logger.info("webhook: event=%s ignored", body.get("event") if isinstance(body, dict) else None)
        return WebhookOutcome.ignored
    data = body.get("data")
    if not isinstance(data, dict) or not data.get("reference"):
        logger.warning("webhook: charge.success without reference, ignoring")
        return WebhookOutcome.ignored
    metadata = parse_metadata(data.get("metadata"))
    if metadata is None:
        logger.warning("webhook: reference=%s has no project metadata, ignoring", data.get("reference"))
        return WebhookOutcome.ignored
    try:
        amount_minor = int(data.get("amount") or 0)
    except (TypeError, ValueError):
        amount_minor = 0
    charge = ConfirmedCharge(
        reference=str(data["reference"]),
        amount_minor=amount_minor,
        currency=str(data.get("currency") or settings.currency),
        metadata=metadata,
    )
    try:
        reconcile_charge(store, settings, charge)
    except NotFoundError:
        logger.warning("webhook: reference=%s project_id=%s not found, ignoring", charge.reference, metadata.projectId)
        return WebhookOutcome.ignored
    except PaymentRejectedError:
        return WebhookOutcome.ignored
    return WebhookOutcome.finalized
