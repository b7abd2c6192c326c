"""Security configuration constants for the DeckStream API.

Keys listed here are redacted from structured logs, and the error field sets
decide how much diagnostic detail an error response may carry per environment.
"""

# Substring matches (case-insensitive) against structured log keys
SENSITIVE_KEYS: set[str] = {
    # Provider credentials
    "api_key",
    "apikey",
    "secret",
    "token",
    "password",
    "authorization",
    "bearer",
    "connection_string",
    # Headers
    "cookie",
    "set-cookie",
    "x-api-key",
    "x-auth-token",
    # User identity
    "email",
    "phone",
}

# In production, error responses only contain these fields
PRODUCTION_ERROR_FIELDS: set[str] = {
    "correlation_id",
    "type",
}

DEVELOPMENT_ERROR_FIELDS: set[str] = PRODUCTION_ERROR_FIELDS | {
    "details",
    "traceback",
    "exception_type",
    "validation_errors",
}


def get_allowed_error_fields(environment: str) -> set[str]:
    """Get allowed error response fields based on environment.

    Args:
        environment: The application environment (production, development, etc.)

    Returns:
        Set of allowed field names for error responses
    """
    if environment == "production":
        return PRODUCTION_ERROR_FIELDS.copy()
    return DEVELOPMENT_ERROR_FIELDS.copy()


def is_sensitive_key(key: str) -> bool:
    """Return True if a log key should be redacted."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)
