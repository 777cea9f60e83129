from typing import Any, Dict

from loguru import logger

from pipeline.state import LeadState

CONTACT_FIELDS = [
    "first_name", "last_name", "email", "phone", "company", "location",
    "service_type", "event_date", "appointment_count", "message",
    "campaign_id", "ad_set_id", "ad_id",
]


def infer_platform(state: LeadState) -> str:
    platform = state.get("normalized", {}).get("platform")
    if platform:
        return platform
    source = state.get("attribution", {}).get("source")
    return "linkedin" if source == "linkedin" else "meta"


def build_row(state: LeadState) -> Dict[str, Any]:
    """Compose the lead row written to the sink."""
    normalized = state.get("normalized", {})
    attribution = state.get("attribution", {})
    tracking = state.get("tracking", {})

    row: Dict[str, Any] = {field: normalized.get(field) for field in CONTACT_FIELDS}
    row["first_name"] = row["first_name"] or ""
    row["last_name"] = row["last_name"] or ""
    row.update({
        "platform": infer_platform(state),
        "status": "new",
        "utm_source": attribution.get("source"),
        "utm_medium": attribution.get("medium"),
        "utm_campaign": attribution.get("campaign"),
        "utm_term": attribution.get("term"),
        "utm_content": attribution.get("content"),
        "referrer": tracking.get("referrer"),
        "user_agent": tracking.get("user_agent"),
        "lead_score": state.get("lead_score", 0),
        "conversion_value": state.get("conversion_value", 0),
    })
    return row


def persist(state: LeadState, ctx) -> LeadState:
    """Store the scored lead; sink errors propagate to the caller."""
    row = build_row(state)
    logger.info(f"Persisting lead for {row['email']} (score {row['lead_score']})")

    record = ctx.sink.insert(row)

    # Only an accepted submission starts the cool-down
    ctx.gate.record(row["email"], state["submitted_at"])

    state["record"] = record
    state["lead_id"] = str(record.get("id"))
    state["outcome"] = "accepted"

    logger.info(f"Lead persisted: {state['lead_id']}")
    return state
