import re
from typing import Optional

from loguru import logger

from pipeline.state import LeadState

BOT_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"bot", r"crawler", r"spider", r"scraper",
        r"facebookexternalhit", r"twitterbot", r"linkedinbot",
        r"googlebot", r"bingbot", r"yandexbot",
    )
]


def detect_bot(user_agent: Optional[str]) -> bool:
    """Best-effort check whether a user agent belongs to a crawler."""
    if not user_agent:
        return False
    return any(pattern.search(user_agent) for pattern in BOT_PATTERNS)


def screen(state: LeadState) -> LeadState:
    """Reject submissions coming from known crawlers."""
    user_agent = state.get("tracking", {}).get("user_agent")

    if detect_bot(user_agent):
        logger.warning(f"Bot detected, blocking submission: {user_agent}")
        state["outcome"] = "bot_rejected"
    return state
