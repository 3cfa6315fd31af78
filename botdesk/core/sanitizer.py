"""
Credential scrubbing for error text.

Vendor error bodies and exception messages can echo the API key that was
sent (Gemini puts it in the query string, for instance). Everything that is
logged, persisted to the interaction log or returned to a client passes
through CredentialSanitizer first.
"""

import re
from typing import Iterable, Optional


class CredentialSanitizer:
    """Removes known secrets and key-shaped tokens from text."""

    MASK = "***"

    # Known vendor key shapes
    KEY_PATTERNS = [
        re.compile(r'sk-ant-[A-Za-z0-9_\-]{8,}'),
        re.compile(r'sk-or-[A-Za-z0-9_\-]{8,}'),
        re.compile(r'sk-[A-Za-z0-9_\-]{20,}'),
        re.compile(r'AIza[0-9A-Za-z_\-]{20,}'),
        re.compile(r'(?i)([?&]key=)[^&\s"\']+'),
        re.compile(r'(?i)(bearer\s+)[A-Za-z0-9_\-\.]{8,}'),
    ]

    @classmethod
    def scrub(cls, text: Optional[str], secrets: Iterable[Optional[str]] = ()) -> str:
        """
        Scrub credentials from text.

        Args:
            text: Text that may contain credentials
            secrets: Exact secret values known to the caller (e.g. the key
                used for the failed call)

        Returns:
            Text with every known secret and key-shaped token masked
        """
        if not text:
            return ""

        clean = str(text)
        for secret in secrets:
            if secret:
                clean = clean.replace(secret, cls.MASK)

        for pattern in cls.KEY_PATTERNS:
            if pattern.groups:
                clean = pattern.sub(lambda m: m.group(1) + cls.MASK, clean)
            else:
                clean = pattern.sub(cls.MASK, clean)

        return clean
