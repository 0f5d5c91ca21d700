"""Structlog processors that enrich and redact notification log events.

Recipient contact data (phone numbers, e-mail addresses, device tokens)
flows through almost every delivery log line. The processors below make
sure it only ever reaches the log stream masked.

Usage:
    from infrastructure.logging.formatters import mask_phone, mask_email

    logger.info("sms_sent", phone=mask_phone("+15551234567"))
"""

from typing import Any, Callable, Optional

EventDict = dict[str, Any]
Processor = Callable[[Any, str, EventDict], EventDict]

REDACTED = "***REDACTED***"

# Keys containing any of these fragments never log their value
SECRET_KEY_PARTS = frozenset(
    {
        "token",
        "secret",
        "password",
        "api_key",
        "apikey",
        "authorization",
        "credential",
        "private_key",
        "cookie",
    }
)


def add_service_info(service: str, version: str = "unknown", environment: str = "") -> Processor:
    """Stamp every event with the service name, version and environment."""

    def processor(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service)
        event_dict.setdefault("version", version)
        if environment:
            event_dict.setdefault("environment", environment)
        return event_dict

    return processor


def redact_secrets(
    mask_value: str = REDACTED,
    extra_key_parts: Optional[frozenset[str]] = None,
) -> Processor:
    """Replace the value of any key that looks like a credential.

    Matching is a case-insensitive substring test on the key, so
    ``device_tokens`` and ``Authorization`` are both caught.
    """
    key_parts = SECRET_KEY_PARTS | (extra_key_parts or frozenset())

    def processor(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        for key in list(event_dict):
            if event_dict[key] is None:
                continue
            lowered = key.lower()
            if any(part in lowered for part in key_parts):
                event_dict[key] = mask_value
        return event_dict

    return processor


def mask_phone(phone: Optional[str], visible: int = 4) -> Optional[str]:
    """Keep only the last ``visible`` characters of a phone number.

    >>> mask_phone("+15551234567")
    '********4567'
    """
    if not phone:
        return phone
    hidden = max(len(phone) - visible, 0)
    if hidden == 0:
        return "*" * len(phone)
    return "*" * hidden + phone[hidden:]


def mask_email(address: Optional[str]) -> Optional[str]:
    """Keep the first character of the local part and the domain.

    >>> mask_email("user@example.com")
    'u***@example.com'
    """
    if not address or "@" not in address:
        return address
    local, _, domain = address.partition("@")
    return f"{local[:1]}***@{domain}"


def mask_contact_details(visible: int = 4) -> Processor:
    """Mask phone numbers and e-mail addresses logged under contact keys."""

    def processor(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        for key, value in event_dict.items():
            if not isinstance(value, str):
                continue
            lowered = key.lower()
            if "phone" in lowered:
                event_dict[key] = mask_phone(value, visible)
            elif ("email" in lowered or "address" in lowered) and "@" in value:
                event_dict[key] = mask_email(value)
        return event_dict

    return processor


def truncate_long_strings(max_length: int = 500) -> Processor:
    """Cut string values longer than ``max_length`` (rendered bodies mostly)."""

    def processor(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        for key, value in event_dict.items():
            if isinstance(value, str) and len(value) > max_length:
                event_dict[key] = f"{value[:max_length]}...[{len(value)} chars]"
        return event_dict

    return processor
