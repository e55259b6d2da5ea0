"""
Checkout pricing. Pure functions over project content; the web editor, checkout and
payment reconciliation all call the same code so their totals never disagree.
Amounts are whole naira; provider calls convert to kobo.
"""
from typing import Any, Iterable, Literal

from pydantic import BaseModel

from tales.core.catalog import is_premium_template, is_premium_vibe

BASE_EXPORT_AMOUNT = 1500
PREMIUM_EFFECT_AMOUNT = 500
FREE_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 20
MINOR_UNITS_PER_MAJOR = 100

PurchaseType = Literal["export", "premium"]


class PremiumEffect(BaseModel):
    key: Literal["premium-template", "premium-vibe", "extended-length", "secret-page"]
    label: str


class CheckoutQuote(BaseModel):
    baseAmount: int
    premiumUnits: int
    premiumEffects: list[PremiumEffect]
    addonsAmount: int
    totalAmount: int
    purchaseType: PurchaseType

    @property
    def total_minor(self) -> int:
        return self.totalAmount * MINOR_UNITS_PER_MAJOR

    @property
    def reasons(self) -> list[str]:
        return [e.label for e in self.premiumEffects]


def _is_secret(page: Any) -> bool:
    if isinstance(page, dict):
        return bool(page.get("secret"))
    return bool(getattr(page, "secret", False))


def get_premium_effects(template_id: str, vibe: str, pages: Iterable[Any] | None) -> list[PremiumEffect]:
    """Distinct premium effects triggered by this content, in a fixed order."""
    page_list = list(pages or [])
    effects: list[PremiumEffect] = []
    if is_premium_template(template_id):
        effects.append(PremiumEffect(key="premium-template", label="Premium template"))
    if is_premium_vibe(vibe):
        effects.append(PremiumEffect(key="premium-vibe", label="Premium vibe music"))
    if len(page_list) > FREE_PAGE_LIMIT:
        effects.append(PremiumEffect(key="extended-length", label=f"Extended story length ({FREE_PAGE_LIMIT}+ pages)"))
    if any(_is_secret(p) for p in page_list):
        effects.append(PremiumEffect(key="secret-page", label="Secret page unlock"))
    return effects


def get_checkout_quote(template_id: str, vibe: str, pages: Iterable[Any] | None) -> CheckoutQuote:
    effects = get_premium_effects(template_id, vibe, pages)
    premium_units = len(effects)
    addons = premium_units * PREMIUM_EFFECT_AMOUNT
    return CheckoutQuote(
        baseAmount=BASE_EXPORT_AMOUNT,
        premiumUnits=premium_units,
        premiumEffects=effects,
        addonsAmount=addons,
        totalAmount=BASE_EXPORT_AMOUNT + addons,
        purchaseType="premium" if premium_units > 0 else "export",
    )


def quote_for_project(project) -> CheckoutQuote:
    """Quote for a stored ProjectRecord (or anything with template_id / vibe / pages_json)."""
    return get_checkout_quote(project.template_id, project.vibe, project.pages_json)


def expected_total_for_units(premium_units: int) -> int:
    """Total implied by a premium-unit count, e.g. from checkout metadata. Negative counts are treated as zero."""
    return BASE_EXPORT_AMOUNT + max(0, int(premium_units)) * PREMIUM_EFFECT_AMOUNT
