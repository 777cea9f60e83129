from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from pipeline.nodes.attribute import referrer_host
from pipeline.state import AttributionRecord, LeadState

FIELD_POINTS = {
    "email": 5,
    "phone": 10,              # phone is high value
    "company": 5,
    "service_type": 5,
    "event_date": 10,         # a specific date is high intent
    "appointment_count": 5,
}

# source -> (score bonus, base conversion value)
SOURCE_BONUSES = {
    "linkedin": (15, 150),
    "facebook": (10, 100),
    "instagram": (10, 100),
    "google": (12, 120),
}

# campaign keyword -> (score bonus, extra conversion value)
CAMPAIGN_BONUSES = {
    "holiday": (5, 25),
    "enterprise": (10, 50),
}

BASE_POINTS = 10
NAME_POINTS = 5
MESSAGE_POINTS = 10
MESSAGE_MIN_LENGTH = 50
LINKEDIN_REFERRER_POINTS = 5
LINKEDIN_HOSTS = ("linkedin.com", "lnkd.in")

MAX_SCORE = 100


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _is_linkedin_host(host: str) -> bool:
    return any(host == domain or host.endswith(f".{domain}") for domain in LINKEDIN_HOSTS)


def score_components(fields: Dict[str, Any], attribution: AttributionRecord,
                     referrer: Optional[str] = None) -> List[Tuple[str, int, int]]:
    """Every signal that applies to a submission as (reason, score points, conversion value)."""
    components = [("Form submission", BASE_POINTS, 0)]

    if _present(fields.get("first_name")) and _present(fields.get("last_name")):
        components.append(("Full name provided", NAME_POINTS, 0))
    for field, points in FIELD_POINTS.items():
        if _present(fields.get(field)):
            components.append((f"{field} provided", points, 0))

    message = str(fields.get("message") or "")
    if len(message) > MESSAGE_MIN_LENGTH:
        components.append(("Detailed message", MESSAGE_POINTS, 0))

    source = attribution.get("source")
    if source in SOURCE_BONUSES:
        points, value = SOURCE_BONUSES[source]
        components.append((f"Source: {source}", points, value))

    campaign = attribution.get("campaign") or ""
    for keyword, (points, value) in CAMPAIGN_BONUSES.items():
        if keyword in campaign:
            components.append((f"Campaign: {keyword}", points, value))

    if _is_linkedin_host(referrer_host(referrer)):
        components.append(("Referred from LinkedIn", LINKEDIN_REFERRER_POINTS, 0))

    return components


def compute_lead_score(fields: Dict[str, Any], attribution: AttributionRecord,
                       referrer: Optional[str] = None) -> Tuple[int, int]:
    """Return (lead score clamped to 0-100, estimated conversion value)."""
    components = score_components(fields, attribution, referrer)
    total = sum(points for _, points, _ in components)
    conversion_value = sum(value for _, _, value in components)
    return max(0, min(MAX_SCORE, total)), max(0, conversion_value)


def score(state: LeadState) -> LeadState:
    """Score the submission from its form fields and attribution."""
    logger.info(f"Starting scoring for lead: {state.get('normalized', {}).get('email', 'unknown')}")

    fields = state.get("normalized", {})
    attribution = state.get("attribution", {})
    referrer = state.get("tracking", {}).get("referrer")

    components = score_components(fields, attribution, referrer)
    lead_score, conversion_value = compute_lead_score(fields, attribution, referrer)

    state["lead_score"] = lead_score
    state["conversion_value"] = conversion_value
    state["score_reasons"] = [f"{reason} (+{points})" for reason, points, _ in components]

    logger.info(f"Final score: {lead_score} (value {conversion_value})")
    return state
