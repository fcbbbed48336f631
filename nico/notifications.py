"""Message notifications."""

import logging

logger = logging.getLogger(__name__)


class NotificationSink:
    """Told about every inbound message, whether or not a UI is attached."""

    def notify_message(self, sender: str, body: str) -> None:
        pass


class LoggingNotifier(NotificationSink):
    """Stand-in for hosts without a notification service: log the banner."""

    def notify_message(self, sender: str, body: str) -> None:
        logger.info(f"[notification] {sender}: {body}")
