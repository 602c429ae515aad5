"""Content domain models as Pydantic v2 data types.

A ContentRecord is one post directory: an image plus the frontmatter
in its metadata file. The models convert to and from the text-level
mapping the frontmatter codec produces.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from visual_garden.content.frontmatter import Unquoted
from visual_garden.errors import MetadataError

REQUIRED_KEYS = ("title", "date", "image", "image_alt")
KNOWN_KEYS = (
    "title",
    "date",
    "draft",
    "layout",
    "image",
    "image_alt",
    "image_ratio",
    "video_url",
    "tags",
)


def _as_text(value: str | list[str] | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, list):
        return ", ".join(value)
    return value


def _as_list(value: str | list[str] | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [v for v in value if v]
    return split_tags(value)


def _as_bool(value: str | list[str] | None) -> bool:
    return isinstance(value, str) and value.strip().lower() in ("true", "yes", "1")


def split_tags(raw: str) -> list[str]:
    """Split a comma-separated tag string, dropping blanks."""
    return [t.strip() for t in raw.split(",") if t.strip()]


def parse_timestamp(value: str) -> datetime | None:
    """Parse a frontmatter date; None when it is not ISO-8601.

    Date-only values are read as midnight UTC and naive values as UTC,
    so every result is comparable.
    """
    try:
        parsed = datetime.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _date_value(text: str) -> str:
    """Pick the frontmatter value that writes ``text`` back unchanged.

    Anything ISO-8601 is written bare, exactly as stored (``.000Z``
    included), so static site generators read it as a date. Anything
    else stays a quoted string.
    """
    try:
        datetime.fromisoformat(text)
    except ValueError:
        return text
    return Unquoted(text)


class PostSummary(BaseModel):
    """One row of the post listing."""

    slug: str
    title: str
    date: str
    image: str
    image_alt: str
    tags: list[str] = Field(default_factory=list)
    video_url: str | None = None
    image_ratio: str | None = None
    draft: bool = False


class PostUpdate(BaseModel):
    """Fields an update may overlay. Unset or empty fields keep prior values."""

    title: str | None = None
    image_alt: str | None = None
    tags: list[str] | None = None
    image_ratio: str | None = None
    video_url: str | None = None


class ContentRecord(BaseModel):
    """A post record as stored in its metadata file.

    ``date`` keeps the text written at creation so records with a
    hand-edited, unparsable date still round-trip unchanged.
    ``extra`` carries keys this package does not manage.
    """

    slug: str
    title: str
    date: str
    image: str
    image_alt: str
    tags: list[str] = Field(default_factory=list)
    image_ratio: str | None = None
    video_url: str | None = None
    draft: bool = False
    layout: str | None = None
    extra: dict[str, str | list[str]] = Field(default_factory=dict)

    @classmethod
    def from_frontmatter(
        cls, slug: str, fields: dict[str, str | list[str]]
    ) -> ContentRecord:
        """Build a record from parsed frontmatter.

        Raises:
            MetadataError: If a required key is missing or empty.
        """
        missing = [k for k in REQUIRED_KEYS if not _as_text(fields.get(k))]
        if missing:
            raise MetadataError(
                f"Metadata for '{slug}' is missing required keys: {', '.join(missing)}"
            )
        return cls(
            slug=slug,
            title=_as_text(fields["title"]) or "",
            date=_as_text(fields["date"]) or "",
            image=_as_text(fields["image"]) or "",
            image_alt=_as_text(fields["image_alt"]) or "",
            tags=_as_list(fields.get("tags")),
            image_ratio=_as_text(fields.get("image_ratio")) or None,
            video_url=_as_text(fields.get("video_url")) or None,
            draft=_as_bool(fields.get("draft")),
            layout=_as_text(fields.get("layout")) or None,
            extra={k: v for k, v in fields.items() if k not in KNOWN_KEYS},
        )

    def to_frontmatter(self) -> dict[str, object]:
        """Ordered mapping for the frontmatter codec.

        Optional fields that are empty are omitted, including ``tags``.
        """
        fields: dict[str, object] = {
            "title": self.title,
            "date": _date_value(self.date),
            "draft": self.draft,
            "layout": self.layout,
            "image": self.image,
            "image_alt": self.image_alt,
            "image_ratio": self.image_ratio or None,
            "video_url": self.video_url or None,
            "tags": list(self.tags) or None,
        }
        fields.update(self.extra)
        return fields

    def apply(self, update: PostUpdate) -> ContentRecord:
        """Return a copy with the supplied, non-empty update fields overlaid."""
        changes: dict[str, object] = {}
        for name in ("title", "image_alt", "image_ratio", "video_url"):
            value = getattr(update, name)
            if value:
                changes[name] = value
        if update.tags:
            changes["tags"] = [t for t in update.tags if t]
        return self.model_copy(update=changes)

    def summary(self) -> PostSummary:
        return PostSummary(
            slug=self.slug,
            title=self.title,
            date=self.date,
            image=self.image,
            image_alt=self.image_alt,
            tags=list(self.tags),
            video_url=self.video_url,
            image_ratio=self.image_ratio,
            draft=self.draft,
        )
