"""General-purpose helper utilities for keyword handling."""

import re
from typing import Iterable
from urllib.parse import urlparse


def normalize_keyword(keyword: str) -> str:
    """Lower-case, trim and de-noise a keyword phrase.

    Characters other than word characters, whitespace and hyphens are
    removed and runs of whitespace collapse to a single space.

    Examples:
        >>> normalize_keyword("  Best CRM   Tools!! ")
        'best crm tools'
        >>> normalize_keyword("crm-software (2025)")
        'crm-software 2025'
    """
    text = keyword.lower().strip()
    text = re.sub(r"[^\w\s-]", "", text)
    return re.sub(r"\s+", " ", text).strip()


def tokenize(text: str) -> list[str]:
    """Split a phrase into lower-cased whitespace tokens."""
    return text.lower().split()


def unique_keywords(keywords: Iterable[str]) -> list[str]:
    """Normalize keywords and drop empties and duplicates, keeping first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for kw in keywords:
        norm = normalize_keyword(str(kw))
        if norm and norm not in seen:
            seen.add(norm)
            result.append(norm)
    return result


def extract_domain(url: str) -> str:
    """Extract the domain from a URL.

    Args:
        url: Full URL string.

    Returns:
        Domain name without protocol, path or a leading ``www.``.
    """
    parsed = urlparse(url if "://" in url else f"https://{url}")
    host = (parsed.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def seed_phrase(seed: str) -> str:
    """Turn a URL seed into a keyword-ish phrase; keyword seeds pass through.

    Examples:
        >>> seed_phrase("https://www.acme-crm.com/pricing")
        'acme crm'
        >>> seed_phrase("Project Management")
        'project management'
    """
    if "://" not in seed:
        return normalize_keyword(seed)
    domain = extract_domain(seed)
    label = domain.split(".")[0] if domain else seed
    return normalize_keyword(label.replace("-", " ").replace("_", " "))


def format_number(n: int | float) -> str:
    """Format a number with human-readable suffixes.

    Examples:
        >>> format_number(1500)
        '1.5K'
        >>> format_number(2500000)
        '2.5M'
        >>> format_number(999)
        '999'
    """
    abs_n = abs(n)
    sign = "-" if n < 0 else ""
    if abs_n >= 1_000_000_000:
        return f"{sign}{abs_n / 1_000_000_000:.1f}B"
    if abs_n >= 1_000_000:
        return f"{sign}{abs_n / 1_000_000:.1f}M"
    if abs_n >= 1_000:
        return f"{sign}{abs_n / 1_000:.1f}K"
    if isinstance(n, float):
        return f"{sign}{abs_n:.1f}"
    return f"{sign}{abs_n}"
