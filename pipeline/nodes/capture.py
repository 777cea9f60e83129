from typing import Any, Dict, Optional

from loguru import logger

from pipeline.state import LeadState, PLATFORMS

REQUIRED_FIELDS = ["email", "first_name"]

OPTIONAL_FIELDS = [
    "phone", "company", "location", "service_type", "event_date",
    "appointment_count", "message", "campaign_id", "ad_set_id", "ad_id",
]

# Landing-page forms post camelCase keys
CAMEL_ALIASES = {
    "firstName": "first_name",
    "lastName": "last_name",
    "fullName": "full_name",
    "serviceType": "service_type",
    "eventDate": "event_date",
    "appointmentCount": "appointment_count",
    "customAppointmentCount": "custom_appointment_count",
    "campaignId": "campaign_id",
    "adSetId": "ad_set_id",
    "adId": "ad_id",
    "visitorId": "visitor_id",
    "pageUrl": "page_url",
    "userAgent": "user_agent",
}

PLATFORM_ALIASES = {"facebook": "meta", "instagram": "meta"}


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def normalize_platform(value: Any) -> Optional[str]:
    platform = (_clean(value) or "").lower()
    platform = PLATFORM_ALIASES.get(platform, platform)
    return platform if platform in PLATFORMS else None


def capture(state: LeadState) -> LeadState:
    """Normalize the submitted form payload."""
    raw: Dict[str, Any] = dict(state.get("raw", {}))
    for alias, field in CAMEL_ALIASES.items():
        if alias in raw and field not in raw:
            raw[field] = raw[alias]

    logger.info(f"Starting capture for lead: {raw.get('email', 'unknown')}")

    first_name = _clean(raw.get("first_name"))
    last_name = _clean(raw.get("last_name"))
    full_name = _clean(raw.get("full_name"))
    if full_name:
        parts = full_name.split()
        first_name = parts[0]
        last_name = " ".join(parts[1:]) or None

    normalized: Dict[str, Any] = {
        "first_name": first_name,
        "last_name": last_name,
        "email": (_clean(raw.get("email")) or "").lower() or None,
        "platform": normalize_platform(raw.get("platform")),
    }
    for field in OPTIONAL_FIELDS:
        normalized[field] = _clean(raw.get(field))

    if normalized["appointment_count"] == "custom":
        normalized["appointment_count"] = _clean(raw.get("custom_appointment_count"))

    missing_fields = [field for field in REQUIRED_FIELDS if not normalized.get(field)]
    if missing_fields:
        state.setdefault("errors", []).append(f"Missing required fields: {missing_fields}")
    if raw.get("platform") and not normalized["platform"]:
        state.setdefault("errors", []).append(f"Unknown platform: {raw.get('platform')}")

    state["normalized"] = normalized
    state["tracking"] = {
        "visitor_id": _clean(raw.get("visitor_id")),
        "page_url": _clean(raw.get("page_url")),
        "referrer": _clean(raw.get("referrer")),
        "user_agent": _clean(raw.get("user_agent")),
    }

    logger.info(f"Capture completed for {normalized['email']}")
    return state
