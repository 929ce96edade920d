"""
Outgoing customer messages.

Mail delivery itself is not part of this service. Messages go through a
``Notifier``; the default one writes them to the log.
"""

import logging

from .config import Config
from .errors import NotificationError

logger = logging.getLogger(__name__)


class Notifier:
    def send(self, recipient: str, subject: str, body: str):
        raise NotImplementedError


class LoggingNotifier(Notifier):
    def __init__(self):
        self.sent = []

    def send(self, recipient: str, subject: str, body: str):
        self.sent.append((recipient, subject, body))
        logger.info(f"Notification to {recipient}: {subject}")


notifier: Notifier = LoggingNotifier()


def deliver(recipient: str, subject: str, body: str, via: Notifier = None):
    via = via or notifier
    try:
        via.send(recipient, subject, body)
    except Exception as e:
        logger.error(f"Delivery to {recipient} failed: {e}")
        raise NotificationError() from e


def send_password_reset_link(email: str, token: str, via: Notifier = None):
    body = (
        "We received a request to reset your password.\n\n"
        f"Use this token on the reset page: {token}\n\n"
        "If you did not ask for a reset, ignore this message."
    )
    deliver(email, "Password reset", body, via)


def send_subscription_confirmation(email: str, via: Notifier = None):
    body = "Thank you for subscribing! You will hear about new cars and offers first."
    deliver(email, "Subscription confirmed", body, via)


def send_contact_form_message(name: str, email: str, phone: str, message: str, via: Notifier = None):
    subject = f"Message from {email}"
    body = f"Message: {message}\n\nThis message was sent by {name} from {email}"
    if phone:
        body += f" (phone: {phone})"
    deliver(Config.CONTACT_EMAIL, subject, body, via)
