"""
Credential format checks and masking.

Keys are never logged in full; anything that may end up in a log line or an
exception message goes through ``sanitize_for_logging`` first.
"""

import re
from typing import Iterable, Optional, Tuple


class APIKeyValidator:
    """Format checks for the Gemini API key and the Notion integration token."""

    # provider -> (regex, minimum length, required prefix)
    KEY_PATTERNS = {
        "gemini": (r"^AIza[\w\-]{35}$", 39, "AIza"),
        "notion": (r"^(secret_|ntn_)\w{20,}$", 30, ""),
    }

    @classmethod
    def validate_format(cls, provider: str, api_key: str) -> Tuple[bool, Optional[str]]:
        """
        Check a credential against the provider's known shape.

        Returns:
            ``(True, None)`` or ``(False, reason)``
        """
        if not api_key:
            return False, "API key is empty"
        if provider not in cls.KEY_PATTERNS:
            return False, f"Unknown provider: {provider}"

        pattern, min_length, prefix = cls.KEY_PATTERNS[provider]
        if len(api_key) < min_length:
            return False, f"API key too short (minimum {min_length} characters)"
        if prefix and not api_key.startswith(prefix):
            return False, f"API key should start with '{prefix}'"
        if not re.match(pattern, api_key):
            return False, "API key format is invalid"
        return True, None

    @staticmethod
    def sanitize_for_logging(api_key: str) -> str:
        """Keep the first six and last three characters of a key."""
        if not api_key or len(api_key) < 10:
            return "***"
        return f"{api_key[:6]}...{api_key[-3:]}"

    @classmethod
    def mask_in_error_message(cls, message: str, api_keys: Iterable[Optional[str]]) -> str:
        for key in api_keys:
            if key and key in message:
                message = message.replace(key, cls.sanitize_for_logging(key))
        return message
