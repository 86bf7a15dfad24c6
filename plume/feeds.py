"""sitemap.xml and rss.xml for the published posts.

Each output file has its own generator; ``build_site`` runs the ones in a
``FeedRegistry`` after the pages are written. Both formats need absolute
URLs and are skipped when ``base_url`` is not configured.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from email.utils import format_datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .html_utils import escape_html

if TYPE_CHECKING:
    from .content import Post


class FeedGenerator(ABC):
    """One XML file written to the root of the output directory.

    Output depends only on the posts and the config, never on the clock.
    """

    @property
    @abstractmethod
    def filename(self) -> str:
        ...

    @abstractmethod
    def generate(
        self,
        posts: list[Post],
        config: dict[str, Any],
        extra_urls: Iterable[str] = (),
    ) -> str | None:
        """Return the file's content, or None to skip writing it.

        ``extra_urls`` are site paths of list pages; formats that only
        describe posts ignore them.
        """
        ...

    def write(
        self,
        output_dir: Path,
        posts: list[Post],
        config: dict[str, Any],
        extra_urls: Iterable[str] = (),
    ) -> bool:
        content = self.generate(posts, config, extra_urls)
        if content is None:
            return False
        (output_dir / self.filename).write_text(content, encoding="utf-8")
        return True


def _base_url(config: dict[str, Any]) -> str:
    return str(config.get("base_url") or "").rstrip("/")


class SitemapGenerator(FeedGenerator):
    """sitemaps.org urlset of every post and list page, sorted by URL.

    Posts carry their date as ``lastmod``.
    """

    @property
    def filename(self) -> str:
        return "sitemap.xml"

    def generate(
        self,
        posts: list[Post],
        config: dict[str, Any],
        extra_urls: Iterable[str] = (),
    ) -> str | None:
        base_url = _base_url(config)
        if not base_url:
            return None

        entries: dict[str, str | None] = {url: None for url in extra_urls}
        for post in posts:
            entries[post.url] = post.date.strftime("%Y-%m-%d")

        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
        ]
        for url in sorted(entries):
            loc = escape_html(f"{base_url}{url}")
            lastmod = entries[url]
            if lastmod:
                lines.append(f"  <url><loc>{loc}</loc><lastmod>{lastmod}</lastmod></url>")
            else:
                lines.append(f"  <url><loc>{loc}</loc></url>")
        lines.append("</urlset>")
        return "\n".join(lines) + "\n"


class RSSGenerator(FeedGenerator):
    """RSS 2.0 channel of the newest posts.

    Items are sorted newest first and capped at ``rss_limit``. The channel's
    ``lastBuildDate`` is the newest post date rather than the wall clock.
    """

    @property
    def filename(self) -> str:
        return "rss.xml"

    def generate(
        self,
        posts: list[Post],
        config: dict[str, Any],
        extra_urls: Iterable[str] = (),
    ) -> str | None:
        base_url = _base_url(config)
        if not base_url:
            return None
        title = config.get("title") or "Plume Feed"
        limit = int(config.get("rss_limit") or 0)

        ordered = sorted(posts, key=lambda p: (p.date, p.url), reverse=True)
        if limit > 0:
            ordered = ordered[:limit]

        items = []
        for post in ordered:
            link = escape_html(f"{base_url}{post.url}")
            description = escape_html(post.summary or post.title)
            items.append(
                f"<item><title>{escape_html(post.title)}</title><link>{link}</link>"
                f"<guid>{link}</guid>"
                f"<description>{description}</description>"
                f"<pubDate>{format_datetime(post.date)}</pubDate></item>"
            )

        rss = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<rss version="2.0"><channel>',
            f"<title>{escape_html(str(title))}</title>",
            f"<link>{escape_html(base_url)}/</link>",
            f"<description>{escape_html(str(config.get('description') or title))}</description>",
        ]
        if ordered:
            rss.append(f"<lastBuildDate>{format_datetime(ordered[0].date)}</lastBuildDate>")
        rss.extend(items)
        rss.append("</channel></rss>")
        return "\n".join(rss) + "\n"


class FeedRegistry:
    """Ordered set of generators run at the end of a build.

    Drafts are filtered out here, so no generator ever sees one.
    """

    def __init__(self) -> None:
        self._generators: list[FeedGenerator] = []

    def register(self, generator: FeedGenerator) -> None:
        self._generators.append(generator)

    def generate_all(
        self,
        output_dir: Path,
        posts: Iterable[Post],
        config: dict[str, Any],
        extra_urls: Iterable[str] = (),
    ) -> list[str]:
        """Write every feed that applies and return the filenames written."""
        published = [p for p in posts if not p.draft]
        urls = list(extra_urls)
        return [
            generator.filename
            for generator in self._generators
            if generator.write(output_dir, published, config, urls)
        ]


def create_default_feed_registry() -> FeedRegistry:
    """Create a registry with sitemap and RSS generators."""
    registry = FeedRegistry()
    registry.register(SitemapGenerator())
    registry.register(RSSGenerator())
    return registry
