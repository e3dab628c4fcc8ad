import re
import html
from datetime import datetime, timezone
from typing import Optional

import phonenumbers
from email_validator import validate_email as _validate_email, EmailNotValidError


def utcnow() -> datetime:
    """Naive UTC timestamp; every persisted datetime uses this convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_email(email: str) -> Optional[str]:
    """Return the normalized address, or None if it is not syntactically valid."""
    try:
        result = _validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError:
        return None
    return normalize_email(result.normalized)


def normalize_phone_number(raw: str) -> Optional[str]:
    """Return the E.164 form of an international number, or None.

    Length and country calling code are checked against the numbering plan;
    unassigned ranges such as the North American 555 block are still accepted.
    """
    if not raw:
        return None
    candidate = raw.strip()
    # National formats are ambiguous without a region.
    if candidate.startswith("00"):
        candidate = "+" + candidate[2:]
    elif not candidate.startswith("+"):
        return None
    try:
        parsed = phonenumbers.parse(candidate, None)
    except phonenumbers.NumberParseException:
        return None
    if not phonenumbers.is_possible_number(parsed):
        return None
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


def mask_email(email: str) -> str:
    """a***e@example.com style masking for responses and logs."""
    local, _, domain = email.partition("@")
    if not domain:
        return "***"
    if len(local) <= 2:
        masked = local[:1] + "*" * max(len(local) - 1, 1)
    else:
        masked = local[0] + "*" * (len(local) - 2) + local[-1]
    return f"{masked}@{domain}"


def sanitize_input(text: str) -> str:
    """Sanitize text input to prevent XSS"""
    return html.escape(text)


def sanitize_filename(filename: str, max_length: int = 100) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9._-]", "_", filename)
    cleaned = re.sub(r"_{2,}", "_", cleaned)
    return cleaned[:max_length] or "file"


def truncate_string(text: str, max_length: int = 100) -> str:
    """Truncate string to specified length"""
    if len(text) <= max_length:
        return text
    return text[:max_length]
