"""Jinja2 layouts for posts and generated pages.

Layouts and partials are searched in the project's ``content/_layouts`` and
``content/_partials`` before the built-in theme, so overriding one partial
does not mean copying the rest of the theme.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, Template, select_autoescape
from markupsafe import Markup
from pygments.formatters import HtmlFormatter
from pygments.util import ClassNotFound

from .collections import ListPage, PostCollection, TagCollection
from .content import LAYOUT_SUFFIXES, Post
from .html_utils import escape_html, join_root_url
from .themes import DEFAULT_THEME

logger = logging.getLogger(__name__)

__all__ = ["TemplateEngine", "format_date", "render_toc"]

DEFAULT_DATE_FORMAT = "%b %d, %Y"


def format_date(value: datetime, fmt: str | None = None) -> str:
    """Format a post date for display.

    The date is shown in its own timezone, so a post dated
    ``2023-09-25T00:32:39+05:00`` reads "Sep 25, 2023".
    """
    return value.strftime(fmt or DEFAULT_DATE_FORMAT)


def isodate(value: datetime) -> str:
    return value.isoformat()


def render_toc(page: Post) -> Markup:
    """Nested ``<ul>`` of links to the post's headings; empty without headings."""
    parts: list[str] = []
    open_levels: list[int] = []
    for heading in page.toc:
        while open_levels and open_levels[-1] > heading.level:
            open_levels.pop()
            parts.append("</li></ul>")
        if open_levels and open_levels[-1] == heading.level:
            parts.append("</li>")
        else:
            open_levels.append(heading.level)
            parts.append("<ul>")
        parts.append(f'<li><a href="#{escape_html(heading.id)}">{escape_html(heading.text)}</a>')
    parts.append("</li></ul>" * len(open_levels))
    return Markup("".join(parts))


class TemplateEngine:
    """Renders posts, list pages and the 404 page through Jinja2.

    Every template sees ``site`` (the config), ``posts`` (newest first),
    ``tags``, ``url_for``, ``pygments_css`` and ``render_toc``, plus the
    ``date`` and ``isodate`` filters.
    """

    def __init__(
        self,
        content_dir: Path,
        config: dict[str, Any],
        root_url: str | None = None,
        theme_dir: Path | None = None,
    ):
        self.content_dir = content_dir
        self.config = config
        self.root_url = root_url if root_url is not None else str(config.get("root_url") or "")
        self.theme_dir = theme_dir or DEFAULT_THEME
        self.env = Environment(
            loader=FileSystemLoader([str(p) for p in self.layout_dirs + self.partial_dirs]),
            autoescape=select_autoescape(["html", "xml", "jinja"]),
            keep_trailing_newline=True,
        )
        self.posts = PostCollection([])
        self.tags = TagCollection({})
        self._install_globals()

    @property
    def layout_dirs(self) -> list[Path]:
        return [self.content_dir / "_layouts", self.theme_dir / "_layouts"]

    @property
    def partial_dirs(self) -> list[Path]:
        return [self.content_dir / "_partials", self.theme_dir / "_partials"]

    def _install_globals(self) -> None:
        self.env.globals["site"] = self.config
        self.env.globals["posts"] = self.posts
        self.env.globals["tags"] = self.tags
        self.env.globals["url_for"] = self._url_for
        self.env.globals["pygments_css"] = self._pygments_css
        self.env.globals["render_toc"] = render_toc
        self.env.filters["date"] = self._format_date
        self.env.filters["isodate"] = isodate

    def _format_date(self, value: datetime, fmt: str | None = None) -> str:
        return format_date(value, fmt or self.config.get("date_format"))

    def _pygments_css(self) -> Markup:
        style = str(self.config.get("pygments_style") or "default")
        try:
            formatter = HtmlFormatter(style=style)
        except ClassNotFound:
            logger.warning("Unknown pygments_style %r; using 'default'", style)
            formatter = HtmlFormatter()
        return Markup(formatter.get_style_defs(".highlight"))

    def update_collections(self, posts: Iterable[Post], tags: dict[str, list[Post]]) -> None:
        """Expose the published posts and tag index to templates."""
        self.posts = PostCollection(posts).sorted()
        self.tags = TagCollection(tags)
        self.env.globals["posts"] = self.posts
        self.env.globals["tags"] = self.tags

    def _url_for(self, path: str) -> str:
        """Site path for templates, prefixed with ``root_url`` when one is set."""
        if path.startswith(("http://", "https://", "//")):
            return path
        path = path if path.startswith("/") else f"/{path}"
        return join_root_url(self.root_url, path) if self.root_url else path

    def render_post(self, post: Post) -> str:
        """Wrap the rendered body in the post's layout, or ``post`` when it has none."""
        template = self._resolve_layout_template([post.layout, "post"])
        return template.render(page=post, page_content=Markup(post.content))

    def render_list(self, page: ListPage) -> str:
        template = self._resolve_layout_template([page.layout, page.kind, "list"])
        return template.render(page=page, page_content=Markup(""))

    def render_not_found(self) -> str:
        page = ListPage(title="Page not found", url="/404.html", kind="404", layout="404")
        template = self._resolve_layout_template(["404"])
        return template.render(page=page, page_content=Markup(""))

    def _resolve_layout_template(self, layouts: list[str]) -> Template:
        names = [f"{layout}{suffix}" for layout in layouts for suffix in LAYOUT_SUFFIXES]
        return self.env.select_template(names)
