import json
from typing import Any, Dict, Optional, Tuple
from urllib.parse import parse_qsl, urlsplit

from loguru import logger

from pipeline.state import AttributionRecord, LeadState

UTM_KEYS = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")

# One storage slot per visitor, last write wins
ATTRIBUTION_KEY = "shortcut_utms"

# Known referrer hosts (matched on the host or any parent domain)
REFERRER_SOURCES = {
    "linkedin.com": "linkedin",
    "lnkd.in": "linkedin",
    "facebook.com": "facebook",
    "fb.com": "facebook",
    "instagram.com": "instagram",
    "twitter.com": "twitter",
    "x.com": "twitter",
    "t.co": "twitter",
    "youtube.com": "youtube",
    "tiktok.com": "tiktok",
    "pinterest.com": "pinterest",
    "reddit.com": "reddit",
    "bing.com": "bing",
    "yahoo.com": "yahoo",
    "duckduckgo.com": "duckduckgo",
    "baidu.com": "baidu",
    "yandex.ru": "yandex",
    "yandex.com": "yandex",
}


def _field_name(utm_key: str) -> str:
    return utm_key[len("utm_"):]


def referrer_host(referrer: Optional[str]) -> str:
    """Hostname of a referrer URL, lower-cased and without a leading www."""
    if not referrer:
        return ""
    candidate = referrer.strip()
    if "//" not in candidate:
        candidate = f"//{candidate}"
    host = (urlsplit(candidate).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def source_for_host(host: str) -> str:
    """Map a referrer host onto a channel tag; unknown hosts keep their own name."""
    labels = host.split(".")
    # google.com, google.co.uk, news.google.de ...
    if "google" in labels[:-1]:
        return "google"
    for i in range(len(labels) - 1):
        parent = ".".join(labels[i:])
        if parent in REFERRER_SOURCES:
            return REFERRER_SOURCES[parent]
    return host


def extract_utm_params(page_url: Optional[str]) -> Dict[str, str]:
    """Recognised UTM keys present (and non-empty) in the page URL's query string."""
    if not page_url:
        return {}
    query = urlsplit(page_url).query
    params: Dict[str, str] = {}
    for key, value in parse_qsl(query, keep_blank_values=False):
        if key in UTM_KEYS and value and key not in params:
            params[key] = value
    return params


def load_stored_params(blob: Optional[str], now_ms: int) -> Optional[Dict[str, str]]:
    """Return the stored UTM params, or None when the blob is absent, unreadable or expired."""
    if not blob:
        return None
    try:
        parsed = json.loads(blob)
    except (TypeError, ValueError):
        logger.warning("Discarding unreadable attribution blob")
        return None
    if not isinstance(parsed, dict):
        return None

    expiration = parsed.get("expiration") or 0
    params = parsed.get("params")
    if not isinstance(params, dict) or now_ms >= int(expiration):
        return None
    return {key: str(params[key]) for key in UTM_KEYS if params.get(key)}


def record_from_params(params: Dict[str, str], captured_at: int, expires_at: int) -> AttributionRecord:
    record: AttributionRecord = {}
    for key in UTM_KEYS:
        if key in params:
            record[_field_name(key)] = params[key]
    record["captured_at"] = captured_at
    record["expires_at"] = expires_at
    return record


def resolve_attribution(
    page_url: Optional[str],
    stored_blob: Optional[str],
    referrer: Optional[str],
    now_ms: int,
    ttl_ms: int,
) -> Tuple[AttributionRecord, Optional[Dict[str, Any]]]:
    """
    Resolve the effective attribution for one page view.

    Args:
        page_url: Full URL of the current page (query string carries utm_* keys)
        stored_blob: Raw JSON previously persisted for this visitor, if any
        referrer: Referrer URL of the current page view
        now_ms: Current time in epoch milliseconds
        ttl_ms: Lifetime of a captured record

    Returns:
        Tuple of (effective record, blob to persist or None)
    """
    url_params = extract_utm_params(page_url)
    stored_params = load_stored_params(stored_blob, now_ms)

    if url_params:
        merged = dict(stored_params or {})
        merged.update(url_params)
        expires_at = now_ms + ttl_ms
        blob = {"params": merged, "expiration": expires_at}
        return record_from_params(merged, now_ms, expires_at), blob

    if stored_params is not None:
        expires_at = int(json.loads(stored_blob)["expiration"])
        return record_from_params(stored_params, expires_at - ttl_ms, expires_at), None

    host = referrer_host(referrer)
    if host:
        return {
            "source": source_for_host(host),
            "medium": "referral",
            "referrer_domain": host,
            "captured_at": now_ms,
            "expires_at": now_ms,
        }, None

    return {
        "source": "direct",
        "medium": "none",
        "captured_at": now_ms,
        "expires_at": now_ms,
    }, None


def track_visit(store, visitor_id: Optional[str], page_url: Optional[str], referrer: Optional[str],
                now_ms: int, ttl_ms: int) -> AttributionRecord:
    """Resolve attribution for a visitor and persist the merged blob when the URL carried UTM keys."""
    key = f"{ATTRIBUTION_KEY}:{visitor_id}" if visitor_id else None
    stored_blob = store.get(key) if key else None

    record, blob = resolve_attribution(page_url, stored_blob, referrer, now_ms, ttl_ms)

    if blob is not None and key:
        store.set(key, json.dumps(blob), ttl=ttl_ms // 1000)
        logger.info(f"Attribution captured for visitor {visitor_id}: {blob['params']}")

    return record


def attribute(state: LeadState, ctx) -> LeadState:
    """Resolve the attribution snapshot for a submission."""
    tracking = state.get("tracking", {})
    logger.info(f"Starting attribution for visitor: {tracking.get('visitor_id') or 'anonymous'}")

    now_ms = int(state["submitted_at"] * 1000)
    ttl_ms = ctx.settings.attribution_ttl_ms
    try:
        record = track_visit(
            ctx.store,
            tracking.get("visitor_id"),
            tracking.get("page_url"),
            tracking.get("referrer"),
            now_ms,
            ttl_ms,
        )
    except Exception as e:
        error_msg = f"Attribution store unavailable: {str(e)}"
        logger.error(error_msg)
        state.setdefault("errors", []).append(error_msg)
        # Resolve from the request alone
        record, _ = resolve_attribution(tracking.get("page_url"), None, tracking.get("referrer"), now_ms, ttl_ms)

    state["attribution"] = record

    logger.info(f"Attribution resolved: source={record.get('source')} medium={record.get('medium')}")
    return state
