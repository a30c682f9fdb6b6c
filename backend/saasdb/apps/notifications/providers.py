from __future__ import annotations

import logging
import os
from typing import Dict, Optional, Tuple, Type

logger = logging.getLogger(__name__)

PROVIDER_ENV = "NOTIFICATIONS_EMAIL_PROVIDER"
_DISABLED_NAMES = {"", "none", "noop", "disabled"}


class EmailProvider:
    """Delivery backend for reminder emails.

    `send` receives keyword arguments only: template_key, recipient, subject,
    context and correlation_id. Raising marks the EmailLog row as failed.
    """

    delivers = True

    def send(self, **message) -> None:
        raise NotImplementedError


class NoopProvider(EmailProvider):
    delivers = False

    def send(self, **message) -> None:
        return None


class LogProvider(EmailProvider):
    """Writes reminders to the application log. Handy on staging."""

    def send(self, **message) -> None:
        fields = {k: message.get(k) for k in ("template_key", "recipient", "subject", "correlation_id")}
        logger.info("Reminder email (log provider)", extra=fields)


_REGISTRY: Dict[str, Type[EmailProvider]] = {
    "log": LogProvider,
}


def _configured_name(raw: Optional[str]) -> str:
    return (raw or "").strip().lower()


def get_email_provider() -> Tuple[EmailProvider, bool]:
    """Return the provider named by NOTIFICATIONS_EMAIL_PROVIDER and whether it delivers."""
    name = _configured_name(os.getenv(PROVIDER_ENV))
    if name in _DISABLED_NAMES:
        return NoopProvider(), False
    try:
        provider = _REGISTRY[name]()
    except KeyError:
        raise ValueError(f"Unsupported email provider: {name}") from None
    return provider, provider.delivers
