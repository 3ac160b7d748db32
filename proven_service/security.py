"""
Security module for the proven service.

Caller identification, input validation and log sanitization.
"""

import hashlib
from typing import Any, Dict, List, Mapping, Optional

from proven import HASH_SIZE, parse_hash

ANONYMOUS = bytes(HASH_SIZE)

_CALLER_PERSON = b"proven-caller"


class ValidationError(Exception):
    """Raised when input validation fails."""
    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


# ============================================================
# Caller Identity
# ============================================================

def account_from_token(token: str) -> bytes:
    """Map an API token to the 32-byte account it authenticates."""
    return hashlib.blake2b(
        token.encode("utf-8"), digest_size=HASH_SIZE, person=_CALLER_PERSON
    ).digest()


def caller_account(headers: Mapping[str, str]) -> bytes:
    """
    Account of the caller making this request.

    Requests without an ``x-api-key`` header act as the anonymous account,
    which can never be the owner.
    """
    token = headers.get("x-api-key", "")
    if not token:
        return ANONYMOUS
    return account_from_token(token)


def extract_client_id(
    headers: Mapping[str, str],
    peer: Optional[str] = None,
    trust_forwarded: bool = False,
) -> str:
    """
    Extract a client identifier for rate limiting.

    ``x-forwarded-for`` is client-controlled, so it is only used when the
    service sits behind a proxy that overwrites it (``trust_forwarded``).
    Otherwise keyless callers are told apart by their socket peer address.
    """
    api_key = headers.get("x-api-key", "")
    if api_key:
        return f"api:{account_from_token(api_key).hex()[:16]}"

    if trust_forwarded:
        forwarded = headers.get("x-forwarded-for", "")
        if forwarded:
            return f"ip:{forwarded.split(',')[0].strip()}"

    if peer:
        return f"ip:{peer}"
    return "anonymous"


# ============================================================
# Input Validation
# ============================================================

def validate_hash(value: str, field_name: str) -> bytes:
    """
    Validate a 0x-prefixed 32-byte hash or account id.

    Raises:
        ValidationError: If validation fails
    """
    try:
        return parse_hash(value)
    except ValueError as e:
        raise ValidationError(field_name, str(e))


def validate_url(value: str, field_name: str = "url") -> str:
    if not isinstance(value, str) or not value.startswith(("http://", "https://")):
        raise ValidationError(field_name, "must be an http(s) URL")
    return value


# ============================================================
# Audit Logging Helpers
# ============================================================

SENSITIVE_FIELDS = ["secret", "secrets", "apiKey", "api_key", "x-api-key", "seed_b64", "password", "token"]


def sanitize_for_logging(data: Dict[str, Any], sensitive_fields: Optional[List[str]] = None) -> Dict[str, Any]:
    """
    Sanitize data for logging by masking sensitive fields.

    Args:
        data: The data to sanitize
        sensitive_fields: List of field names to mask

    Returns:
        Sanitized copy of the data
    """
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    result = {}
    for key, value in data.items():
        if key in sensitive_fields:
            result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = sanitize_for_logging(value, sensitive_fields)
        elif isinstance(value, list):
            result[key] = [
                sanitize_for_logging(item, sensitive_fields) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = value

    return result
