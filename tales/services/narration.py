"""Premium narration: ElevenLabs text-to-speech for a tale, stored in blob storage and linked from the published tale."""
import logging
import time

import httpx

from tales.core.azure_storage import stub_blob_url, upload_blob
from tales.core.config import Settings
from tales.core.errors import ConfigurationError, NotFoundError, PaymentProviderError, PremiumRequiredError
from tales.db.store import EntitlementStore
from tales.schemas.project import ProjectRecord

logger = logging.getLogger(__name__)

ELEVENLABS_TTS_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"
ELEVENLABS_MODEL_ID = "eleven_turbo_v2_5"
NARRATION_MAX_CHARS = 5000
NARRATION_MAX_PAGES = 20
HTTP_TIMEOUT = 60.0


class NarrationError(PaymentProviderError):
    """ElevenLabs generation failed."""


def narration_text(project: ProjectRecord) -> str:
    """Default script: "title. body. signature" per page, first 20 pages."""
    lines = [
        f"{page.title}. {page.body}. {page.signature or ''}"
        for page in project.pages_json[:NARRATION_MAX_PAGES]
    ]
    return "\n".join(lines)


def generate_speech(text: str, api_key: str, voice_id: str, transport: httpx.BaseTransport | None = None) -> bytes:
    """Return MP3 bytes from ElevenLabs. Raises NarrationError."""
    try:
        with httpx.Client(timeout=HTTP_TIMEOUT, transport=transport) as client:
            r = client.post(
                ELEVENLABS_TTS_URL.format(voice_id=voice_id),
                headers={
                    "Content-Type": "application/json",
                    "xi-api-key": api_key,
                },
                json={"text": text[:NARRATION_MAX_CHARS], "model_id": ELEVENLABS_MODEL_ID},
            )
            r.raise_for_status()
            return r.content
    except httpx.HTTPStatusError as e:
        logger.warning("narration: ElevenLabs HTTP %s: %s", e.response.status_code, (e.response.text or "")[:300])
        raise NarrationError("ElevenLabs generation failed.") from e
    except httpx.HTTPError as e:
        logger.warning("narration: ElevenLabs request failed: %s", e)
        raise NarrationError("ElevenLabs generation failed.") from e


def store_narration_audio(settings: Settings, project_id: str, audio: bytes) -> str:
    blob_name = f"{project_id}/{int(time.time() * 1000)}-narration.mp3"
    if settings.azure_storage_account and settings.azure_storage_account_key:
        return upload_blob(
            settings.azure_storage_account,
            settings.azure_storage_account_key,
            settings.narrations_container,
            blob_name,
            audio,
            content_type="audio/mpeg",
        )
    logger.info("narration: no Azure storage, returning stub URL")
    return stub_blob_url(settings.narrations_container, blob_name)


def narrate_project(
    store: EntitlementStore,
    settings: Settings,
    project_id: str,
    text: str | None = None,
    transport: httpx.BaseTransport | None = None,
) -> str:
    """Generate narration for a premium project and attach it to its published tale. Returns the audio URL."""
    api_key = (settings.elevenlabs_api_key or "").strip()
    if not api_key:
        raise ConfigurationError("ELEVENLABS_API_KEY missing.")
    project = store.get_project(project_id)
    if project is None:
        raise NotFoundError("Project not found.", {"project_id": project_id})
    if not project.is_premium:
        raise PremiumRequiredError("Premium required for narration.")
    source = text if text is not None else narration_text(project)
    audio = generate_speech(source[:NARRATION_MAX_CHARS], api_key, settings.elevenlabs_voice_id, transport=transport)
    url = store_narration_audio(settings, project_id, audio)
    store.save_narration_url(project_id, url)
    logger.info("narration: project_id=%s chars=%d url=%s", project_id, len(source), url[:80])
    return url
