"""Default notifier."""

import logging

logger = logging.getLogger(__name__)


class LoggingNotifier:
    """Notifier that writes messages to the log instead of delivering them."""

    def send(self, recipients: list[str], message: str) -> None:
        logger.warning(f"Notification for {', '.join(recipients)}:\n{message}")
