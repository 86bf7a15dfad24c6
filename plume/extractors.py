"""Front-matter parsing and metadata extractors for Plume.

Each extractor handles a single type of metadata and returns a dictionary
that is merged into the post's metadata.

Key objects:
- split_frontmatter / join_frontmatter: Lossless split of the ``---`` block.
- parse_frontmatter: Strict parse of the block into validated metadata.
- FrontmatterExtractor: Extracts title, date, draft flag and the body.
- SummaryExtractor: Extracts the summary shown on list pages.
- ReadingTimeExtractor: Estimates reading time from the body.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timezone
from pathlib import Path
from typing import Any

import yaml

from .errors import ParseError
from .utils import first_paragraph, reading_time

FRONTMATTER_RE = re.compile(
    r"\A---[ \t]*\r?\n(?P<meta>.*?)^---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL | re.MULTILINE,
)

REQUIRED_FIELDS = ("title", "date")


def split_frontmatter(text: str, path: Path | None = None) -> tuple[str, str]:
    """Split a leading front-matter block from the body.

    The returned block keeps both delimiter lines, so
    ``block + body == text`` for any accepted input (minus a leading BOM).

    Args:
        text: Raw file content.
        path: Source path, used in error messages.

    Returns:
        Tuple of (front-matter block, body).

    Raises:
        ParseError: If the opening or closing ``---`` delimiter is missing.
    """
    text = text.lstrip("\ufeff")
    if not text.startswith("---"):
        raise ParseError("missing front-matter: file must start with '---'", path)
    match = FRONTMATTER_RE.match(text)
    if not match:
        raise ParseError("unterminated front-matter: no closing '---' line", path)
    return text[: match.end()], text[match.end() :]


def join_frontmatter(block: str, body: str) -> str:
    """Re-attach a front-matter block produced by split_frontmatter."""
    if block and not block.endswith("\n"):
        block += "\n"
    return f"{block}{body}"


def coerce_date(value: Any, path: Path | None = None) -> datetime:
    """Convert a front-matter date value into a timezone-aware datetime.

    YAML may already have produced a datetime or date; quoted values are
    parsed as ISO-8601. Naive values are taken to be UTC.

    Raises:
        ParseError: If the value is not a date or ISO-8601 timestamp.
    """
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime.combine(value, time())
    elif isinstance(value, str):
        raw = value.strip()
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        try:
            result = datetime.fromisoformat(raw)
        except ValueError:
            raise ParseError(
                f"invalid date {value!r}: expected an ISO-8601 timestamp", path
            ) from None
    else:
        raise ParseError(f"invalid date {value!r}: expected an ISO-8601 timestamp", path)
    if result.tzinfo is None:
        result = result.replace(tzinfo=timezone.utc)
    return result


def normalize_tags(value: Any, path: Path | None = None) -> list[str]:
    """Normalize a front-matter 'tags' value into a list of unique strings.

    Accepts a YAML list or a comma-separated string.

    Raises:
        ParseError: If the value is neither.
    """
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list):
        raise ParseError("field 'tags' must be a list", path)
    tags: list[str] = []
    for tag in value:
        name = str(tag).strip()
        if name and name not in tags:
            tags.append(name)
    return tags


def parse_frontmatter(
    text: str, path: Path | None = None
) -> tuple[dict[str, Any], str]:
    """Parse and validate the front-matter of a post.

    Args:
        text: Raw file content.
        path: Source path, used in error messages.

    Returns:
        Tuple of (metadata, body). ``metadata`` is the full YAML mapping with
        ``title`` as str, ``date`` as an aware datetime and ``draft`` as bool.

    Raises:
        ParseError: If the block is missing, is not valid YAML, is not a
            mapping, lacks a required field or has a mistyped field.
    """
    block, body = split_frontmatter(text, path)
    match = FRONTMATTER_RE.match(block)
    try:
        data = yaml.safe_load(match.group("meta")) if match else None
    except yaml.YAMLError as exc:
        raise ParseError(f"invalid YAML in front-matter: {exc}", path) from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ParseError("front-matter must be a mapping of keys to values", path)

    for name in REQUIRED_FIELDS:
        if data.get(name) is None:
            raise ParseError(f"missing required field '{name}'", path)

    title = data["title"]
    if isinstance(title, (dict, list)) or not str(title).strip():
        raise ParseError("field 'title' must be a non-empty string", path)

    draft = data.get("draft", False)
    if not isinstance(draft, bool):
        raise ParseError(f"field 'draft' must be true or false, got {draft!r}", path)

    metadata = dict(data)
    metadata["title"] = str(title).strip()
    metadata["date"] = coerce_date(data["date"], path)
    metadata["draft"] = draft
    return metadata, body


class FrontmatterExtractor:
    """Extracts validated front-matter fields and the post body."""

    def extract(self, content: str, path: Path) -> dict[str, Any]:
        """Extract frontmatter from content.

        Returns:
            Dictionary with 'title', 'date', 'draft', 'frontmatter' and 'body'.
        """
        metadata, body = parse_frontmatter(content, path)
        return {
            "title": metadata["title"],
            "date": metadata["date"],
            "draft": metadata["draft"],
            "frontmatter": metadata,
            "body": body,
        }


class SummaryExtractor:
    """Extracts the summary shown on list pages and in feeds.

    An explicit ``description`` in front-matter wins; otherwise the first
    prose paragraph of the body is used.
    """

    def __init__(self, limit: int = 160):
        self.limit = limit

    def extract(self, content: str, path: Path) -> dict[str, Any]:
        return {"summary": first_paragraph(content, self.limit)}


class ReadingTimeExtractor:
    """Estimates reading time in minutes from the body."""

    def extract(self, content: str, path: Path) -> dict[str, Any]:
        return {"reading_time": reading_time(content)}


class CompositeMetadataExtractor:
    """Combines multiple metadata extractors.

    Extractors run in order and their results are merged. Once an extractor
    yields a ``body``, the following extractors see the body instead of the
    raw file, so summaries never include front-matter.
    """

    def __init__(self, extractors: list | None = None, summary_length: int = 160):
        """Initialize with a list of extractors.

        Args:
            extractors: List of extractor implementations.
                       If None, uses default extractors.
            summary_length: Maximum summary length for the default extractors.
        """
        if extractors is None:
            self._extractors = [
                FrontmatterExtractor(),
                SummaryExtractor(summary_length),
                ReadingTimeExtractor(),
            ]
        else:
            self._extractors = list(extractors)

    def add_extractor(self, extractor) -> None:
        self._extractors.append(extractor)

    def extract(self, content: str, path: Path) -> dict[str, Any]:
        """Extract all metadata from content.

        Args:
            content: Raw file content.
            path: Path to the source file.

        Returns:
            Dictionary with all extracted metadata.

        Raises:
            ParseError: If any extractor rejects the content.
        """
        result: dict[str, Any] = {}
        source = content
        for extractor in self._extractors:
            extracted = extractor.extract(source, path)
            result.update(extracted)
            if "body" in extracted:
                source = extracted["body"]
        frontmatter = result.get("frontmatter", {})
        result["tags"] = normalize_tags(frontmatter.get("tags"), path)
        description = frontmatter.get("description")
        if description:
            result["summary"] = str(description).strip()
        return result
