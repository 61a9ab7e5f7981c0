"""
Security utilities: shared-secret checks, diagnostic redaction, input sanitization.
"""
import re

SNIPPET_LIMIT = 220

# ── Shared secrets ──

def secret_matches(expected: str, got: str | None) -> bool:
    """True when no secret is configured, or the header carries exactly that secret."""
    if not expected:
        return True
    return got == expected


def redact(text: str, *secrets: str) -> str:
    """Replace every configured secret in text with ***."""
    if not text:
        return ""
    for s in secrets:
        if s:
            text = text.replace(s, "***")
    return text


def snippet(text: str, *secrets: str, limit: int = SNIPPET_LIMIT) -> str:
    """Bounded, single-line, secret-free excerpt of an upstream response body."""
    if not text:
        return ""
    text = re.sub(r"\s+", " ", text).strip()
    return redact(text, *secrets)[:limit]


# ── Input sanitization ──

def sanitize_text(text, max_length: int = 5000) -> str:
    """Strip control characters and enforce length limit."""
    if text is None:
        return ""
    text = str(text)[:max_length]
    text = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f]", "", text)
    return text.strip()


def coerce_text(value, max_length: int = 5000) -> str:
    """Scalars (str, int, float) become sanitized strings; anything else is empty."""
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return ""
    return sanitize_text(value, max_length=max_length)


def coerce_id(value) -> str:
    """Chat ids arrive as ints from the platform and as strings from the mini-app."""
    return coerce_text(value, max_length=64)
