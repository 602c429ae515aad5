"""Slug and date identity for new records."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, datetime

from visual_garden.errors import InvalidInputError

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class Identity:
    """Derived identity of a record.

    ``body`` is the bare slug derived from the title; ``slug`` is the
    dated identifier used for the directory name and the media path.
    """

    body: str
    date: str
    timestamp: str

    @property
    def slug(self) -> str:
        return f"{self.date}-{self.body}"


def slugify(title: str) -> str:
    """Lower-case, collapse non-alphanumeric runs to one hyphen, trim hyphens."""
    return _NON_ALNUM_RE.sub("-", title.lower()).strip("-")


def derive_identity(title: str, now: datetime) -> Identity:
    """Derive the slug body, calendar date, and timestamp for a title.

    Args:
        title: Free-text title.
        now: Creation instant. Naive values are treated as UTC.

    Returns:
        The derived Identity.

    Raises:
        InvalidInputError: If the title has no alphanumeric characters.
    """
    body = slugify(title)
    if not body:
        raise InvalidInputError(
            f"Title {title!r} does not contain any letters or digits to build a slug from"
        )

    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    else:
        now = now.astimezone(UTC)

    return Identity(
        body=body,
        date=now.date().isoformat(),
        timestamp=now.isoformat(),
    )
