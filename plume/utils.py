"""String and filesystem helpers shared by the Plume modules."""

from __future__ import annotations

import math
import re
import shutil
from collections.abc import Iterable
from pathlib import Path

WORDS_PER_MINUTE = 200

_DATE_PREFIX_RE = re.compile(r"^\d+-\d+-\d+-(?=.)")
_FENCE_RE = re.compile(r"^(`{3,}|~{3,}).*?^\1[ \t]*$", re.DOTALL | re.MULTILINE)
_MD_LINK_RE = re.compile(r"!?\[([^\]]*)\]\([^)]*\)")
_MD_EMPHASIS_RE = re.compile(r"[*_`]+")
_NON_PROSE_STARTS = ("#", "![", ">", "---", "***", "|", "<")


def _drop_date_prefix(name: str) -> str:
    return _DATE_PREFIX_RE.sub("", name, count=1)


def slugify(name: str) -> str:
    """Lowercase URL slug for a file stem or tag.

    Letters and digits from any script are kept, so ``Привет, мир`` becomes
    ``привет-мир``. A leading ``YYYY-MM-DD-`` is dropped, so
    ``2024-01-15-hello-world`` becomes ``hello-world``. Text with no letters
    or digits gives ``index``.
    """
    slug = re.sub(r"[\W_]+", "-", _drop_date_prefix(name))
    return slug.strip("-").lower() or "index"


def titleize(filename: str) -> str:
    """Title for a new post derived from its filename.

    >>> titleize("2024-01-15-hello-world.md")
    'Hello World'
    """
    stem = Path(filename).stem if filename.endswith((".md", ".html")) else filename
    words = [w for w in re.split(r"[\s\-_]+", _drop_date_prefix(stem)) if w]
    return " ".join(w.capitalize() for w in words) or "Untitled"


def _plain_text(paragraph: str) -> str:
    paragraph = _MD_LINK_RE.sub(r"\1", paragraph)
    paragraph = re.sub(r"<[^>]+>", "", paragraph)
    return " ".join(_MD_EMPHASIS_RE.sub("", paragraph).split())


def first_paragraph(text: str, limit: int = 160) -> str:
    """Plain-text summary taken from the first prose paragraph of Markdown.

    Headings, code fences, images, quotes, tables, rules and raw HTML
    blocks are passed over. Text longer than ``limit`` is cut at a word
    boundary and ends with an ellipsis.
    """
    for block in _FENCE_RE.sub("", text).split("\n\n"):
        block = block.strip()
        if not block or block.startswith(_NON_PROSE_STARTS):
            continue
        summary = _plain_text(block)
        if len(summary) > limit:
            summary = summary[:limit].rsplit(" ", 1)[0] + "…"
        return summary
    return ""


def reading_time(text: str) -> int:
    """Minutes to read ``text`` at 200 words a minute, code excluded; at least 1."""
    words = len(_FENCE_RE.sub("", text).split())
    return max(1, math.ceil(words / WORDS_PER_MINUTE))


def ensure_clean_dir(path: Path) -> None:
    """Create ``path``, deleting whatever was there first."""
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True, exist_ok=True)


def is_internal_path(path: Path) -> bool:
    """True when any component starts with ``_`` (layouts, partials)."""
    return any(part.startswith("_") for part in path.parts)


def build_tags_index(posts: Iterable) -> dict[str, list]:
    """Group posts by tag, tags sorted case-insensitively."""
    by_tag: dict[str, list] = {}
    for post in posts:
        for tag in post.tags:
            by_tag.setdefault(tag, []).append(post)
    return dict(sorted(by_tag.items(), key=lambda item: item[0].lower()))
