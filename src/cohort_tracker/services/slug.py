"""URL-safe slug generation for organizations and batches."""

import re
import uuid
from collections.abc import Iterable

MAX_SLUG_LENGTH = 64
# Room left for a "-NNN" disambiguator
_BASE_LENGTH = MAX_SLUG_LENGTH - 8


def slugify(value: str) -> str:
    """Lowercase, collapse non-alphanumerics to single hyphens, trim hyphens.

    Falls back to a short random token when nothing usable remains
    (e.g. a name written entirely in non-latin characters).
    """
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    slug = slug[:_BASE_LENGTH].rstrip("-")
    return slug or uuid.uuid4().hex[:8]


def generate_unique_slug(name: str, existing: Iterable[str]) -> str:
    """Slugify ``name`` and append -2, -3, ... until it is not in ``existing``."""
    base = slugify(name)
    taken = set(existing)
    if base not in taken:
        return base
    suffix = 2
    while f"{base}-{suffix}" in taken:
        suffix += 1
    return f"{base}-{suffix}"
