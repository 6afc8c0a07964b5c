"""PII masking and redaction helpers.

Keeps emails out of INFO-level logs and strips personal fields from
free-form audit metadata.
"""

# Keys removed from audit log metadata once the row leaves the 1-year window
PII_METADATA_KEYS = frozenset(
    {"email", "name", "phoneNumber", "phone_number", "address"}
)


def mask_email(email: str | None) -> str:
    """Mask an email address for logging: 'user@domain.com' -> 'u***@domain.com'."""
    if not email or "@" not in email:
        return "***"
    local, domain = email.rsplit("@", 1)
    return f"{local[:1]}***@{domain}"


def redact_metadata(metadata: dict | None) -> dict | None:
    """Return a copy of ``metadata`` without PII keys, or None if nothing changes."""
    if not isinstance(metadata, dict):
        return None
    if not PII_METADATA_KEYS.intersection(metadata):
        return None
    return {k: v for k, v in metadata.items() if k not in PII_METADATA_KEYS}
