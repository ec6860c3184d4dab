"""
Delivery of "achievement unlocked" events to the notification collaborator.
"""
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import requests

from .exceptions import NotificationDeliveryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AchievementUnlockedEvent:
    user_id: int
    achievement_id: str
    xp_reward: int
    name: str
    description: str
    rarity: str

    def to_payload(self) -> Dict[str, Any]:
        return asdict(self)


class LoggingNotifier:
    """Default notifier: records the event in the application log."""

    def send(self, event: AchievementUnlockedEvent) -> None:
        logger.info(
            "Achievement unlocked: user=%s achievement=%s (+%d XP)",
            event.user_id, event.achievement_id, event.xp_reward
        )


class WebhookNotifier:
    """Posts the event as JSON to an HTTP endpoint owned by the email/notification service."""

    def __init__(self, url: str, timeout: int = 5):
        self.url = url
        self.timeout = timeout

    def send(self, event: AchievementUnlockedEvent) -> None:
        try:
            response = requests.post(self.url, json=event.to_payload(), timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise NotificationDeliveryError(
                f"Webhook delivery failed for {event.achievement_id}: {e}"
            ) from e


def build_notifier(webhook_url: Optional[str] = None, timeout: int = 5):
    """Pick the webhook notifier when a URL is configured, the logging one otherwise."""
    if webhook_url:
        logger.info("Achievement notifications will be posted to %s", webhook_url)
        return WebhookNotifier(webhook_url, timeout=timeout)
    return LoggingNotifier()
