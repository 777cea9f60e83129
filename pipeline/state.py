from typing import TypedDict, Optional, List, Dict, Any

LEAD_STATUSES = ("new", "contacted", "followed_up", "closed")
PLATFORMS = ("linkedin", "meta")


class AttributionRecord(TypedDict, total=False):
    """Best-known marketing channel tags for one visitor."""
    source: str
    medium: str
    campaign: str
    term: str
    content: str
    referrer_domain: str
    captured_at: int                 # epoch ms
    expires_at: int                  # epoch ms


class LeadState(TypedDict, total=False):
    """State shape for the lead submission workflow."""
    lead_id: str
    raw: Dict[str, Any]              # original form payload
    submitted_at: float              # epoch seconds, from the pipeline clock
    normalized: Dict[str, Any]       # contact, intent and campaign fields
    tracking: Dict[str, Any]         # visitor_id, page_url, referrer, user_agent
    attribution: AttributionRecord
    lead_score: int
    conversion_value: int
    score_reasons: List[str]
    record: Dict[str, Any]           # row as stored by the sink
    outcome: str                     # "accepted" | "bot_rejected" | "rate_limited"
    retry_after: Optional[int]       # seconds, when rate limited
    errors: List[str]
