"""Frontmatter codec for record metadata files.

The block format is the small YAML subset Hugo and Obsidian both read::

    ---
    title: "My First Post"
    draft: false
    tags:
      - "travel"
    ---

The codec owns quoting: strings are always written double-quoted with
escapes; booleans, numbers and ``Unquoted`` text are written bare.
Parsing is text-level, so ``parse(serialize(fields))`` gives back every
value as the text it was written as (``False`` comes back as
``"false"``). Only a line feed ends a line. Type coercion is the caller's job.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from datetime import date, datetime

DELIMITER = "---"

_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")
_FIELD_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_-]*):(?:\s+(.*))?$")
_ITEM_RE = re.compile(r"^\s*-(?:\s+(.*))?$")
_ESCAPE_RE = re.compile(r"\\(.)")

_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r", "\t": "\\t"}
_UNESCAPES = {"\\": "\\", '"': '"', "n": "\n", "r": "\r", "t": "\t"}


class Unquoted(str):
    """Text written verbatim without quotes, such as an ISO date kept as typed."""


Value = str | bool | int | float | date | datetime | Sequence[str] | None


def _quote(value: str) -> str:
    return '"' + "".join(_ESCAPES.get(ch, ch) for ch in value) + '"'


def _format_scalar(value: object) -> str:
    if isinstance(value, Unquoted) and value and value.strip() == value and "\n" not in value:
        return str(value)
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, str):
        return _quote(value)
    raise TypeError(f"Unsupported frontmatter value type: {type(value).__name__}")


def serialize(fields: Mapping[str, Value]) -> str:
    """Render a mapping as a delimiter-bounded frontmatter block.

    Keys are written in insertion order. ``None`` values are skipped.
    Lists and tuples become ``key:`` followed by ``  - item`` lines.

    Raises:
        ValueError: If a key is not a plain identifier.
        TypeError: If a value has an unsupported type.
    """
    lines: list[str] = [DELIMITER]
    for key, value in fields.items():
        if not _KEY_RE.match(key):
            raise ValueError(f"Invalid frontmatter key: {key!r}")
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            lines.append(f"{key}:")
            for item in value:
                lines.append(f"  - {_format_scalar(str(item))}")
        else:
            lines.append(f"{key}: {_format_scalar(value)}")
    lines.append(DELIMITER)
    return "\n".join(lines) + "\n\n"


def _unquote(raw: str) -> str:
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        inner = value[1:-1]
        if value[0] == '"':
            return _ESCAPE_RE.sub(
                lambda m: _UNESCAPES.get(m.group(1), m.group(0)), inner
            )
        return inner
    return value


def _parse_inline_list(raw: str) -> list[str]:
    """Handle hand-edited ``tags: [a, b, c]`` values."""
    return [_unquote(t) for t in raw.strip()[1:-1].split(",") if t.strip()]


def split(text: str) -> tuple[dict[str, str | list[str]], str]:
    """Split a metadata file into its parsed frontmatter and body.

    Returns:
        ``(fields, body)``. When no delimiter-bounded block exists the
        fields are empty and the body is the full text.
    """
    lines = text.lstrip("\ufeff").replace("\r\n", "\n").split("\n")
    if not lines or lines[0].strip() != DELIMITER:
        return {}, text

    try:
        end = next(
            i for i in range(1, len(lines)) if lines[i].strip() == DELIMITER
        )
    except StopIteration:
        return {}, text

    result: dict[str, str | list[str]] = {}
    list_key: str | None = None

    for line in lines[1:end]:
        item = _ITEM_RE.match(line)
        if item:
            if list_key is not None:
                result[list_key].append(_unquote(item.group(1) or ""))  # type: ignore[union-attr]
            continue

        field = _FIELD_RE.match(line)
        if not field:
            continue

        key, raw = field.group(1), (field.group(2) or "").strip()
        if not raw:
            result[key] = []
            list_key = key
            continue

        list_key = None
        if raw.startswith("[") and raw.endswith("]"):
            result[key] = _parse_inline_list(raw)
        else:
            result[key] = _unquote(raw)

    body_lines = lines[end + 1 :]
    if body_lines and not body_lines[0].strip():
        body_lines = body_lines[1:]
    body = "\n".join(body_lines)
    return result, body


def parse(text: str) -> dict[str, str | list[str]]:
    """Parse the frontmatter block of a metadata file.

    Returns an empty dict when no delimiter-bounded block is found.
    """
    fields, _ = split(text)
    return fields


def render(fields: Mapping[str, Value], body: str = "") -> str:
    """Serialize fields and append a markdown body."""
    return serialize(fields) + body
