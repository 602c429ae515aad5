"""Content domain: record models, identity, frontmatter codec, and store."""

from visual_garden.content import frontmatter
from visual_garden.content.identity import Identity, derive_identity, slugify
from visual_garden.content.models import (
    ContentRecord,
    PostSummary,
    PostUpdate,
    parse_timestamp,
    split_tags,
)
from visual_garden.content.store import ContentRecordStore

__all__ = [
    "ContentRecord",
    "ContentRecordStore",
    "Identity",
    "PostSummary",
    "PostUpdate",
    "derive_identity",
    "frontmatter",
    "parse_timestamp",
    "slugify",
    "split_tags",
]
