"""Input validation utilities for pipeline seeds and keywords."""

from urllib.parse import urlparse

MAX_KEYWORD_LENGTH = 100


def validate_url(url: str) -> tuple[bool, str]:
    """Validate a URL string.

    Args:
        url: The URL to validate.

    Returns:
        Tuple of (is_valid, error_message).  error_message is empty on success.
    """
    if not url or not isinstance(url, str):
        return False, "URL is empty or not a string."
    url = url.strip()
    try:
        parsed = urlparse(url)
    except ValueError as exc:
        return False, f"URL parse error: {exc}"
    if parsed.scheme not in ("http", "https"):
        return False, f"Invalid scheme: {parsed.scheme!r}. Must be http or https."
    if not parsed.netloc:
        return False, "URL has no network location (domain)."
    hostname = parsed.hostname or ""
    if not hostname or len(hostname) > 253:
        return False, "Invalid hostname length."
    return True, ""


def is_url(seed: str) -> bool:
    """Return True when *seed* looks like an http(s) URL rather than a phrase."""
    return isinstance(seed, str) and "://" in seed and validate_url(seed)[0]


def validate_keyword(keyword: str) -> tuple[bool, str]:
    """Validate a keyword phrase: non-empty and at most 100 characters."""
    if not isinstance(keyword, str) or not keyword.strip():
        return False, "Keyword is empty or not a string."
    if len(keyword.strip()) > MAX_KEYWORD_LENGTH:
        return False, f"Keyword exceeds {MAX_KEYWORD_LENGTH} characters."
    return True, ""


def validate_seed(seed: str) -> tuple[bool, str]:
    """Validate a pipeline seed, which may be a URL or a keyword phrase."""
    if isinstance(seed, str) and "://" in seed:
        return validate_url(seed)
    return validate_keyword(seed)
