"""Internal link checking for Plume.

After a build has written its output, every rendered page is scanned for
``href``/``src`` references that point inside the site. References whose
target does not exist in the output directory are reported as warnings;
a partially linked site is still worth publishing.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urljoin, urlsplit

from .html_utils import is_external_url, iter_urls

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinkWarning:
    """An internal reference that does not resolve to a built file.

    Attributes:
        source_path: Source file of the page containing the reference.
        page_url: URL of the page containing the reference.
        target: The reference as written in the HTML.
    """

    source_path: Path | None
    page_url: str
    target: str

    def __str__(self) -> str:
        origin = self.source_path or self.page_url
        return f"{origin}: unresolved link {self.target}"


class LinkChecker:
    """Resolves internal references against a built output directory.

    Attributes:
        output_dir: Directory holding the built site.
    """

    def __init__(self, output_dir: Path):
        self.output_dir = output_dir

    def resolve(self, page_url: str, target: str) -> str | None:
        """Return the site path a reference points to, or None if external.

        Relative references are resolved against the page URL; query strings
        and fragments are dropped.
        """
        if is_external_url(target) or ":" in target.split("/", 1)[0]:
            return None
        absolute = urljoin(page_url, target)
        path = unquote(urlsplit(absolute).path)
        return path or "/"

    def exists(self, site_path: str) -> bool:
        """Check whether a site path maps to a file in the output directory."""
        rel = site_path.lstrip("/")
        candidate = self.output_dir / rel
        try:
            candidate.resolve().relative_to(self.output_dir.resolve())
        except ValueError:
            return False
        if site_path.endswith("/") or candidate.is_dir():
            return (candidate / "index.html").is_file()
        return candidate.is_file()

    def check_page(self, page_url: str, html: str, source_path: Path | None = None) -> list[LinkWarning]:
        warnings: list[LinkWarning] = []
        seen: set[str] = set()
        for target in iter_urls(html):
            if target in seen:
                continue
            seen.add(target)
            site_path = self.resolve(page_url, target)
            if site_path is None or self.exists(site_path):
                continue
            warning = LinkWarning(source_path, page_url, target)
            logger.debug("%s", warning)
            warnings.append(warning)
        return warnings

    def check(self, pages: Iterable[tuple[str, str, Path | None]]) -> list[LinkWarning]:
        """Check every page given as (page_url, html, source_path)."""
        warnings: list[LinkWarning] = []
        for page_url, html, source_path in pages:
            warnings.extend(self.check_page(page_url, html, source_path))
        return warnings
