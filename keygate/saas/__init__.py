"""SaaS credential layer — key issuance, delivery, and quota enforcement."""

from keygate.saas.credential import Credential, generate_secret, looks_like_secret, mask_secret
from keygate.saas.notifier import ConsoleNotifier, NullNotifier, SmtpNotifier, build_notifier

__all__ = [
    "Credential",
    "generate_secret",
    "looks_like_secret",
    "mask_secret",
    "ConsoleNotifier",
    "NullNotifier",
    "SmtpNotifier",
    "build_notifier",
]
