import json
import math
from typing import Any
from pydantic import BaseModel, Field, ValidationError, field_validator


class InitializeRequest(BaseModel):
    email: str | None = None
    projectId: str | None = None
    discountCode: str | None = None


class CouponRequest(BaseModel):
    projectId: str | None = None
    code: str | None = None


class PaymentMetadata(BaseModel):
    """Metadata we attach at checkout and Paystack echoes back on verify / webhook."""
    projectId: str = Field(..., min_length=1)
    type: str | None = None
    premiumUnits: int = 0
    totalAmount: int | None = None

    @field_validator("projectId", mode="before")
    @classmethod
    def _project_id_str(cls, v):
        return str(v).strip() if v is not None else v

    @field_validator("premiumUnits", mode="before")
    @classmethod
    def _non_negative_units(cls, v):
        # Tampered or missing counts collapse to 0; the fresh quote still sets the floor.
        # A non-finite count implies an unpayable total, so the metadata is rejected outright.
        try:
            units = float(v)
        except (TypeError, ValueError):
            return 0
        if not math.isfinite(units):
            raise ValueError("premiumUnits must be finite")
        return max(0, int(units))

    @field_validator("totalAmount", mode="before")
    @classmethod
    def _optional_int(cls, v):
        try:
            return int(float(v)) if v is not None else None
        except (TypeError, ValueError, OverflowError):
            return None


def parse_metadata(raw: Any) -> PaymentMetadata | None:
    """Parse provider metadata (dict or JSON string). Returns None when unusable (no project id)."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return None
    if not isinstance(raw, dict):
        return None
    try:
        return PaymentMetadata.model_validate(raw)
    except ValidationError:
        return None


class InitializedTransaction(BaseModel):
    authorization_url: str
    reference: str


class VerifiedTransaction(BaseModel):
    status: str
    reference: str
    amount: int  # minor units (kobo)
    currency: str = "NGN"
    metadata: Any = None

    @property
    def successful(self) -> bool:
        return self.status == "success"
