from typing import Any, FrozenSet, Iterable, List

import httpx
from loguru import logger
from slack_sdk.web import WebClient
from slack_sdk.webhook import WebhookClient

from connectors.messages import (
    NOTIFICATION_KINDS,
    Notification,
    Summary,
    summarize,
    to_discord,
    to_email,
    to_slack,
)

LEAD_ONLY = frozenset({"lead"})
PROPOSAL_KINDS = frozenset({"agreement_signed", "invoice_paid", "proposal_event"})
ALL_KINDS = frozenset(NOTIFICATION_KINDS)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


class SlackWebhookChannel:
    """Slack incoming webhook."""

    def __init__(self, url: str, kinds: Iterable[str], name: str = "slack"):
        self.url = url
        self.kinds: FrozenSet[str] = frozenset(kinds)
        self.name = name

    def send(self, summary: Summary) -> None:
        message = to_slack(summary)
        response = WebhookClient(self.url).send(text=message["text"], blocks=message["blocks"])
        if response.status_code != 200:
            raise RuntimeError(f"Slack webhook failed: {response.status_code} {response.body}")


class SlackBotChannel:
    """Slack Web API, posting as the bot user to a fixed channel."""

    def __init__(self, token: str, channel: str, kinds: Iterable[str] = ALL_KINDS):
        self.token = token
        self.channel = channel
        self.kinds: FrozenSet[str] = frozenset(kinds)
        self.name = "slack_bot"

    def send(self, summary: Summary) -> None:
        message = to_slack(summary)
        response = WebClient(token=self.token).chat_postMessage(
            channel=self.channel,
            text=message["text"],
            blocks=message["blocks"]
        )
        logger.info(f"Slack notification sent to {self.channel}: {response['ts']}")


class DiscordChannel:
    """Discord webhook."""

    def __init__(self, url: str, kinds: Iterable[str] = LEAD_ONLY, timeout: float = 20.0):
        self.url = url
        self.kinds: FrozenSet[str] = frozenset(kinds)
        self.timeout = timeout
        self.name = "discord"

    def send(self, summary: Summary) -> None:
        response = httpx.post(self.url, json=to_discord(summary), timeout=self.timeout)
        response.raise_for_status()


class SendGridEmailChannel:
    """Plain-text email summary through the SendGrid v3 API."""

    def __init__(self, api_key: str, sender: str, recipients: List[str],
                 kinds: Iterable[str] = LEAD_ONLY, timeout: float = 20.0):
        self.api_key = api_key
        self.sender = sender
        self.recipients = recipients
        self.kinds: FrozenSet[str] = frozenset(kinds)
        self.timeout = timeout
        self.name = "email"

    def send(self, summary: Summary) -> None:
        subject, body = to_email(summary)
        response = httpx.post(
            SENDGRID_URL,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json"
            },
            json={
                "personalizations": [{"to": [{"email": r} for r in self.recipients]}],
                "from": {"email": self.sender},
                "subject": subject,
                "content": [{"type": "text/plain", "value": body}],
            },
            timeout=self.timeout,
        )
        response.raise_for_status()


class NotificationFanout:
    """Deliver a notification to every configured channel, best effort."""

    def __init__(self, channels: List[Any], app_url: str):
        self.channels = channels
        self.app_url = app_url

        if not self.channels:
            logger.warning("No notification endpoints configured, using mock mode")

    def dispatch(self, notification: Notification) -> List[str]:
        """
        Send a notification to all channels accepting its kind.

        Failures are logged per channel and dropped (no retry).

        Returns:
            Names of the channels that accepted the message
        """
        kind = notification.get("kind")
        try:
            summary = summarize(notification, self.app_url)
        except Exception as e:
            logger.error(f"Could not format {kind} notification: {e}")
            return []

        targets = [channel for channel in self.channels if kind in channel.kinds]
        if not targets:
            logger.info(f"Mock mode: would send {kind} notification: {summary['subject']}")
            return []

        delivered = []
        for channel in targets:
            try:
                channel.send(summary)
                delivered.append(channel.name)
                logger.info(f"{kind} notification sent via {channel.name}")
            except Exception as e:
                logger.error(f"{channel.name} notification failed: {e}")
        return delivered


def build_fanout(settings) -> NotificationFanout:
    """Channels for every endpoint present in the configuration."""
    channels: List[Any] = []
    timeout = settings.http_timeout_seconds

    if settings.slack_webhook_url:
        channels.append(SlackWebhookChannel(settings.slack_webhook_url, LEAD_ONLY))
    if settings.slack_proposals_webhook_url:
        channels.append(SlackWebhookChannel(settings.slack_proposals_webhook_url, PROPOSAL_KINDS,
                                            name="slack_proposals"))
    if settings.slack_bot_token:
        channels.append(SlackBotChannel(settings.slack_bot_token, settings.slack_default_channel))
    if settings.discord_webhook_url:
        channels.append(DiscordChannel(settings.discord_webhook_url, timeout=timeout))
    if settings.sendgrid_api_key and settings.email_recipients:
        channels.append(SendGridEmailChannel(
            settings.sendgrid_api_key, settings.email_from, settings.email_recipients, timeout=timeout
        ))

    return NotificationFanout(channels, settings.app_url)
