"""Small helpers for working with rendered HTML strings.

Plume never parses its own output into a DOM. Links are found with a
regex over ``href``, ``src`` and ``action`` attributes, which is enough for
HTML produced by mistune and the theme templates.
"""

from __future__ import annotations

import re
from collections.abc import Iterator

_LINK_ATTR_RE = re.compile(
    r'(?P<prefix>\b(?:href|src|action)=["\'])(?P<url>[^"\']+)(?P<suffix>["\'])'
)

# Targets that never point at a file in the output directory.
_OFFSITE_PREFIXES = (
    "http://",
    "https://",
    "//",
    "mailto:",
    "tel:",
    "#",
    "javascript:",
    "data:",
)

_ESCAPES = str.maketrans({"&": "&amp;", "<": "&lt;", ">": "&gt;", '"': "&quot;"})


def escape_html(text: str) -> str:
    """Escape ``& < > "`` for use in element text or a quoted attribute.

    >>> escape_html('Tom & "Jerry" <3')
    'Tom &amp; &quot;Jerry&quot; &lt;3'
    """
    return text.translate(_ESCAPES)


def is_external_url(url: str) -> bool:
    """True for empty, absolute, protocol-relative, fragment and scheme URLs."""
    return not url or url.startswith(_OFFSITE_PREFIXES)


def iter_urls(html: str) -> Iterator[str]:
    """Yield link targets from href, src and action attributes in document order."""
    for match in _LINK_ATTR_RE.finditer(html):
        yield match.group("url")


def join_root_url(root_url: str, path: str) -> str:
    """Prefix a site path with the site's root URL.

    >>> join_root_url('http://localhost:4000/', 'posts/hello/')
    'http://localhost:4000/posts/hello/'
    """
    if not root_url:
        return path
    return f"{root_url.rstrip('/')}/{path.lstrip('/')}"


def absolutize_html_urls(html: str, root_url: str) -> str:
    """Prefix every root-relative link in ``html`` with ``root_url``.

    Only targets starting with a single ``/`` change; document-relative
    targets and off-site links are kept as written.

    >>> absolutize_html_urls('<a href="/about/">About</a>', 'https://example.com')
    '<a href="https://example.com/about/">About</a>'
    """
    if not root_url:
        return html

    def rewrite(match: re.Match) -> str:
        url = match.group("url")
        if is_external_url(url) or not url.startswith("/"):
            return match.group(0)
        return f"{match.group('prefix')}{join_root_url(root_url, url)}{match.group('suffix')}"

    return _LINK_ATTR_RE.sub(rewrite, html)
