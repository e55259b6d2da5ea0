import os
from pydantic import BaseModel

# Default discount codes for launch promos: CODE:limit[,CODE:limit...]
DEFAULT_DISCOUNT_CODES = "SHIROI:5"


def parse_discount_codes(raw: str) -> dict[str, int]:
    """Parse "CODE:limit,CODE2:limit" into {"CODE": limit}. Codes are upper-cased; bad entries are skipped."""
    codes: dict[str, int] = {}
    for part in (raw or "").split(","):
        code, _, limit = part.strip().partition(":")
        code = code.strip().upper()
        if not code:
            continue
        try:
            codes[code] = max(0, int(limit.strip() or "0"))
        except ValueError:
            continue
    return codes


class Settings(BaseModel):
    app_env: str = os.getenv("APP_ENV", "local")
    database_url: str = os.getenv("DATABASE_URL", "")
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:3000")
    app_base_url: str = os.getenv("APP_BASE_URL", "http://localhost:3000")

    # Paystack: one provider, one currency
    paystack_secret_key: str = os.getenv("PAYSTACK_SECRET_KEY", "")
    paystack_base_url: str = os.getenv("PAYSTACK_BASE_URL", "https://api.paystack.co")
    currency: str = os.getenv("CURRENCY", "NGN")
    discount_codes: str = os.getenv("DISCOUNT_CODES", DEFAULT_DISCOUNT_CODES)

    # ElevenLabs narration (premium only)
    elevenlabs_api_key: str = os.getenv("ELEVENLABS_API_KEY", "")
    elevenlabs_voice_id: str = os.getenv("ELEVENLABS_VOICE_ID", "EXAVITQu4vr4xnSDxMaL")

    azure_storage_account: str = os.getenv("AZURE_STORAGE_ACCOUNT", "")
    azure_storage_account_key: str = os.getenv("AZURE_STORAGE_ACCOUNT_KEY", "")
    narrations_container: str = os.getenv("AZURE_STORAGE_CONTAINER_NARRATIONS", "narrations")

    def discount_limits(self) -> dict[str, int]:
        return parse_discount_codes(self.discount_codes)

    def tale_url(self, slug: str) -> str:
        return f"{self.app_base_url.rstrip('/')}/tale/{slug}"


settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency; tests override it with their own Settings."""
    return settings
