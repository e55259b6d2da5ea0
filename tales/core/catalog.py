"""Template and vibe registry. Only the ids and premium flags matter server-side; artwork lives in the web client."""
import enum


class TemplateId(str, enum.Enum):
    papyrus = "papyrus"
    love_card = "love-card"
    phone_texts = "phone-texts"
    door_reveal = "door-reveal"


TEMPLATE_REGISTRY = [
    {"id": TemplateId.papyrus, "label": "Papyrus Paper"},
    {"id": TemplateId.love_card, "label": "Love Card"},
    {"id": TemplateId.phone_texts, "label": "Phone Mockup Texts"},
    {"id": TemplateId.door_reveal, "label": "Door Reveal", "premium": True},
]

# Vibe ids are an open set; anything not listed here plays the default track and is free.
VIBE_REGISTRY = [
    {"id": "romantic", "label": "Romantic"},
    {"id": "soft", "label": "Soft"},
    {"id": "rain-dance", "label": "Rain Dance", "premium": True},
    {"id": "playful", "label": "Playful"},
    {"id": "heartbreak", "label": "Heartbreak", "premium": True},
    {"id": "nostalgia", "label": "Nostalgia", "premium": True},
    {"id": "african-queen", "label": "African Queen", "premium": True},
    {"id": "dave-raindance", "label": "Dave Raindance", "premium": True},
    {"id": "davido-assurance", "label": "Davido Assurance", "premium": True},
    {"id": "fola-you", "label": "FOLA You", "premium": True},
    {"id": "tems-me-u", "label": "Tems Me and U", "premium": True},
    {"id": "wizkid-true-love", "label": "Wizkid True Love", "premium": True},
]

DEFAULT_TEMPLATE_ID = TemplateId.papyrus
DEFAULT_VIBE_ID = "romantic"

_TEMPLATES_BY_ID = {t["id"].value: t for t in TEMPLATE_REGISTRY}
_VIBES_BY_ID = {v["id"]: v for v in VIBE_REGISTRY}


def is_premium_template(template_id: str) -> bool:
    key = template_id.value if isinstance(template_id, TemplateId) else str(template_id)
    entry = _TEMPLATES_BY_ID.get(key)
    return bool(entry and entry.get("premium"))


def is_premium_vibe(vibe_id: str) -> bool:
    entry = _VIBES_BY_ID.get(str(vibe_id))
    return bool(entry and entry.get("premium"))
