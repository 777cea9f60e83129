"""
Notification kinds and the formatter shared by every delivery channel.

A notification is a dict tagged by ``kind``. ``summarize`` turns any kind
into a title, colour, field list and optional link; the Slack, Discord and
email renderers only ever consume that summary.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Tuple, TypedDict, Union

LINKEDIN_BLUE = 0x0077B5
META_BLUE = 0x1877F2


class LeadNotification(TypedDict, total=False):
    kind: Literal["lead"]
    lead_id: str
    first_name: str
    last_name: str
    email: str
    phone: str
    company: str
    platform: str
    lead_score: int
    service_type: str
    utm_campaign: str
    utm_source: str


class AgreementSignedNotification(TypedDict, total=False):
    kind: Literal["agreement_signed"]
    pro_name: str
    pro_email: str


class InvoicePaidNotification(TypedDict, total=False):
    kind: Literal["invoice_paid"]
    client_name: str
    amount: float
    currency: str
    invoice_url: str
    proposal_id: str


class ProposalEventNotification(TypedDict, total=False):
    kind: Literal["proposal_event"]
    event_type: str
    proposal_id: str
    client_name: str
    client_email: str
    proposal_type: str
    total_cost: float
    event_dates: List[str]
    locations: List[str]


Notification = Union[
    LeadNotification,
    AgreementSignedNotification,
    InvoicePaidNotification,
    ProposalEventNotification,
]

NOTIFICATION_KINDS = ("lead", "agreement_signed", "invoice_paid", "proposal_event")

# event type -> (emoji, header, colour)
PROPOSAL_EVENTS = {
    "view": ("👁️", "Client Viewed Proposal", 0x3B82F6),
    "edit": ("✏️", "Client Submitted Changes", 0xF59E0B),
    "changes_submitted": ("✏️", "Client Submitted Changes", 0xF59E0B),
    "approve": ("✅", "Proposal Approved!", 0x10B981),
    "approved": ("✅", "Proposal Approved!", 0x10B981),
    "survey_completed": ("📋", "Post-Event Survey Completed", 0x8B5CF6),
}
DEFAULT_PROPOSAL_EVENT = ("📄", "Proposal Event", 0x6B7280)


class Summary(TypedDict):
    title: str                       # header line, emoji included
    subject: str                     # one-line fallback text
    color: int
    fields: List[Tuple[str, str]]
    link: Optional[Tuple[str, str]]  # (button label, url)
    footer: Optional[str]


def format_money(amount: Any, currency: str = "USD") -> str:
    if amount is None or amount == "":
        return "N/A"
    symbol = "$" if currency.upper() == "USD" else f"{currency.upper()} "
    try:
        return f"{symbol}{float(amount):,.2f}"
    except (TypeError, ValueError):
        return str(amount)


def _truncate(items: Optional[List[str]], keep: int, empty: str) -> str:
    if not items:
        return empty
    text = ", ".join(items[:keep])
    if len(items) > keep:
        text += f" +{len(items) - keep} more"
    return text


def lead_notification(record: Dict[str, Any]) -> LeadNotification:
    """Build the lead notification for a persisted lead row."""
    notification: LeadNotification = {"kind": "lead", "lead_id": str(record.get("id", ""))}
    for field in ("first_name", "last_name", "email", "phone", "company", "platform",
                  "lead_score", "service_type", "utm_campaign", "utm_source"):
        if record.get(field) is not None:
            notification[field] = record[field]
    return notification


def summarize(notification: Notification, app_url: str) -> Summary:
    """Single formatter for every notification kind."""
    kind = notification.get("kind")

    if kind == "lead":
        name = f"{notification.get('first_name', '')} {notification.get('last_name', '')}".strip()
        platform = (notification.get("platform") or "unknown").upper()
        return {
            "title": "🎯 New Social Media Lead!",
            "subject": f"🎯 New Social Media Lead: {name or 'Unknown'}",
            "color": LINKEDIN_BLUE if notification.get("platform") == "linkedin" else META_BLUE,
            "fields": [
                ("Name", name or "Unknown"),
                ("Email", notification.get("email") or "N/A"),
                ("Platform", platform),
                ("Lead Score", f"{notification.get('lead_score', 0)}/100"),
                ("Company", notification.get("company") or "N/A"),
                ("Phone", notification.get("phone") or "N/A"),
                ("Campaign", notification.get("utm_campaign") or "Direct"),
                ("Source", notification.get("utm_source") or "Unknown"),
            ],
            "link": ("View in Admin", f"{app_url}/social-media-pages"),
            "footer": "Social Media Lead System",
        }

    if kind == "agreement_signed":
        pro = notification.get("pro_name") or "Unknown"
        return {
            "title": "✅ Pro Agreement Signed!",
            "subject": f"✅ Agreement Signed: {pro}",
            "color": 0x10B981,
            "fields": [
                ("Pro", pro),
                ("Email", notification.get("pro_email") or "N/A"),
                ("Status", "Completed"),
            ],
            "link": None,
            "footer": None,
        }

    if kind == "invoice_paid":
        client = notification.get("client_name") or "Unknown Client"
        fields = [
            ("Client", notification.get("client_name") or "Unknown"),
            ("Amount", format_money(notification.get("amount"), notification.get("currency") or "USD")),
        ]
        if notification.get("invoice_url"):
            fields.append(("Invoice", notification["invoice_url"]))
        link = None
        if notification.get("proposal_id"):
            link = ("View Proposal", f"{app_url}/proposal/{notification['proposal_id']}")
        return {
            "title": "💰 Invoice Paid!",
            "subject": f"💰 Invoice Paid: {client}",
            "color": 0x10B981,
            "fields": fields,
            "link": link,
            "footer": None,
        }

    if kind == "proposal_event":
        emoji, header, color = PROPOSAL_EVENTS.get(notification.get("event_type") or "", DEFAULT_PROPOSAL_EVENT)
        client = notification.get("client_name")
        proposal_type = ("Mindfulness Program"
                         if notification.get("proposal_type") == "mindfulness-program" else "Event Proposal")
        link = None
        if notification.get("proposal_id"):
            link = ("View Proposal", f"{app_url}/proposal/{notification['proposal_id']}")
        return {
            "title": f"{emoji} {header}",
            "subject": f"{emoji} {header}: {client or 'Unknown Client'}",
            "color": color,
            "fields": [
                ("Client", client or "Unknown"),
                ("Email", notification.get("client_email") or "N/A"),
                ("Proposal Type", proposal_type),
                ("Event", notification.get("event_type") or "unknown"),
                ("Total Cost", format_money(notification.get("total_cost"))),
                ("Dates", _truncate(notification.get("event_dates"), 3, "TBD")),
                ("Locations", _truncate(notification.get("locations"), 2, "TBD")),
            ],
            "link": link,
            "footer": None,
        }

    raise ValueError(f"Unknown notification kind: {kind}")


def to_slack(summary: Summary) -> Dict[str, Any]:
    """Slack incoming-webhook / chat.postMessage body."""
    blocks: List[Dict[str, Any]] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": summary["title"]}
        },
        {
            "type": "section",
            # Slack allows at most 10 fields per section
            "fields": [
                {"type": "mrkdwn", "text": f"*{label}:* {value}"}
                for label, value in summary["fields"][:10]
            ]
        },
    ]

    if summary["link"]:
        label, url = summary["link"]
        blocks.append({
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": label},
                    "url": url,
                    "style": "primary"
                }
            ]
        })

    return {"text": summary["subject"], "blocks": blocks}


def to_discord(summary: Summary) -> Dict[str, Any]:
    """Discord webhook body with a single embed."""
    embed: Dict[str, Any] = {
        "title": summary["title"],
        "color": summary["color"],
        "fields": [{"name": label, "value": str(value), "inline": True} for label, value in summary["fields"]],
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if summary["link"]:
        embed["url"] = summary["link"][1]
    if summary["footer"]:
        embed["footer"] = {"text": summary["footer"]}
    return {"embeds": [embed]}


def to_email(summary: Summary) -> Tuple[str, str]:
    """(subject, plain-text body)."""
    lines = [f"{label}: {value}" for label, value in summary["fields"]]
    if summary["link"]:
        lines.append("")
        lines.append(f"{summary['link'][0]}: {summary['link'][1]}")
    return summary["subject"], "\n".join(lines)
