"""Body renderers for Plume.

A renderer turns the body of a post (everything after the front-matter)
into an HTML fragment plus the headings found in it.

- MarkdownRenderer: mistune with heading anchors and Pygments highlighting.
- HTMLRenderer: posts written directly in HTML are used as-is.
- RendererRegistry: maps file suffixes to renderers.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

import mistune
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .html_utils import escape_html

_TAG_RE = re.compile(r"<[^>]+>")
_ENTITY_RE = re.compile(r"&(?:[a-z]+|#\d+);")

MARKDOWN_PLUGINS = ["strikethrough", "footnotes", "table", "url"]


@dataclass
class Heading:
    """A heading in a rendered post, used for the table of contents.

    Attributes:
        id: Anchor of the heading within the page.
        text: Heading text with markup removed.
        level: 1 for ``#``, 2 for ``##`` and so on.
    """

    id: str
    text: str
    level: int


def _generate_heading_id(text: str) -> str:
    """Turn heading HTML into an anchor: ``Property <code>x</code>`` -> ``property-x``."""
    plain = _ENTITY_RE.sub("", _TAG_RE.sub("", text)).lower()
    words = re.findall(r"[\w-]+", plain)
    anchor = re.sub(r"-{2,}", "-", "-".join(words))
    return anchor.strip("-") or "section"


class _AnchorAllocator:
    """Hands out anchors unique within one page: ``setup``, ``setup-1``, ..."""

    def __init__(self):
        self._seen: dict[str, int] = {}

    def allocate(self, base: str) -> str:
        count = self._seen.get(base)
        if count is None:
            self._seen[base] = 0
            return base
        self._seen[base] = count + 1
        return f"{base}-{count + 1}"


def highlight_block(code: str, lang: str) -> str:
    """Render a fenced code block.

    Known languages go through Pygments. Anything else (ASCII diagrams,
    console output, unknown languages) is emitted as escaped
    preformatted text so the layout survives.
    """
    if lang:
        try:
            lexer = get_lexer_by_name(lang, stripall=True)
        except ClassNotFound:
            pass
        else:
            return highlight(code, lexer, HtmlFormatter(cssclass="highlight"))
    attr = f' class="language-{escape_html(lang)}"' if lang else ""
    return f"<pre><code{attr}>{escape_html(code)}</code></pre>\n"


class _PostHTMLRenderer(mistune.HTMLRenderer):
    """mistune HTML renderer that anchors headings and highlights code.

    Raw HTML in the Markdown source is passed through.
    """

    def __init__(self):
        super().__init__(escape=False)
        self.headings: list[Heading] = []
        self._anchors = _AnchorAllocator()

    def heading(self, text: str, level: int, **attrs) -> str:
        anchor = self._anchors.allocate(_generate_heading_id(text))
        self.headings.append(Heading(id=anchor, text=_TAG_RE.sub("", text), level=level))
        return f'<h{level} id="{anchor}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        lang = info.split()[0] if info and info.strip() else ""
        return highlight_block(code, lang)


class MarkdownRenderer:
    """Renders Markdown post bodies.

    Each call builds its own mistune parser, so heading anchors are unique
    per post and never carry over from the previous one.
    """

    source_type = "markdown"
    suffixes = (".md", ".markdown")

    def render(self, content: str) -> tuple[str, list[Heading]]:
        """Return ``(html, headings)`` for a Markdown body."""
        renderer = _PostHTMLRenderer()
        parse = mistune.create_markdown(renderer=renderer, plugins=MARKDOWN_PLUGINS)
        return parse(content), renderer.headings


class HTMLRenderer:
    """Uses HTML post bodies unchanged."""

    source_type = "html"
    suffixes = (".html",)

    def render(self, content: str) -> tuple[str, list[Heading]]:
        return content, []


class RendererRegistry:
    """Chooses a renderer from a file's suffix (case-insensitive).

    Registering a renderer for a suffix that is already taken replaces
    the earlier one.
    """

    def __init__(self):
        self._by_suffix: dict = {}
        self.register(MarkdownRenderer())
        self.register(HTMLRenderer())

    def register(self, renderer) -> None:
        for suffix in renderer.suffixes:
            self._by_suffix[suffix.lower()] = renderer

    def get_renderer(self, path: Path):
        return self._by_suffix.get(path.suffix.lower())

    def can_render(self, path: Path) -> bool:
        return self.get_renderer(path) is not None


default_renderer_registry = RendererRegistry()
