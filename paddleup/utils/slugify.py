"""URL-safe slug generation utilities."""

import re
import unicodedata

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


def slugify(text: str) -> str:
    """Convert text to a URL-safe slug (lowercase, hyphens, no special chars).

    Args:
        text: Text to slugify (e.g. "Spring Shootout 2026").

    Returns:
        Slugified text (e.g. "spring-shootout-2026").
    """
    text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    text = text.lower().strip()
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"[\s_]+", "-", text)
    text = re.sub(r"-+", "-", text)
    return text.strip("-")


async def unique_slug(session: AsyncSession, model, name: str) -> str:
    """Slugify ``name`` and append -2, -3, ... until ``model.slug`` is free.

    Args:
        session: Database session
        model: ORM class with a unique ``slug`` column
        name: Display name to derive the slug from

    Returns:
        A slug not yet used by any row of ``model``.
    """
    base = slugify(name)[:190] or "event"
    candidate = base
    suffix = 1
    while True:
        result = await session.execute(select(model.id).where(model.slug == candidate))
        if result.scalar_one_or_none() is None:
            return candidate
        suffix += 1
        candidate = f"{base}-{suffix}"
