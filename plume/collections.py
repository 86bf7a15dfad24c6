from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field

from .content import Post
from .utils import slugify


def tag_url(tag: str) -> str:
    """Site path of a tag's list page."""
    return f"/tags/{slugify(tag)}/"


class PostCollection(Sequence[Post]):
    """Lightweight helper for working with lists of Posts in templates and code."""

    def __init__(self, posts: Iterable[Post]):
        self._posts = list(posts)

    def __iter__(self) -> Iterator[Post]:
        return iter(self._posts)

    def __len__(self) -> int:
        return len(self._posts)

    def __getitem__(self, item):
        return self._posts[item]

    def section(self, name: str) -> PostCollection:
        return PostCollection(p for p in self._posts if p.section == name)

    def with_tag(self, tag: str) -> PostCollection:
        return PostCollection(p for p in self._posts if tag in p.tags)

    def drafts(self) -> PostCollection:
        return PostCollection(p for p in self._posts if p.draft)

    def published(self) -> PostCollection:
        return PostCollection(p for p in self._posts if not p.draft)

    def sorted(self, reverse: bool = True) -> PostCollection:
        """Sort posts by date, then by URL.

        Args:
            reverse: If True (default), newest first.

        Returns:
            A new PostCollection with sorted posts.
        """
        return PostCollection(
            sorted(self._posts, key=lambda p: (p.date, p.url), reverse=reverse)
        )

    def latest(self, count: int = 5) -> PostCollection:
        return PostCollection(self.sorted()[:count])

    def sections(self) -> list[str]:
        return sorted({p.section for p in self._posts if p.section})

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"PostCollection({len(self._posts)} posts)"


class TagCollection(Mapping[str, PostCollection]):
    """Mapping of tag name to PostCollection with convenience helpers."""

    def __init__(self, mapping: dict[str, Iterable[Post]]):
        self._mapping = {k: PostCollection(v).sorted() for k, v in mapping.items()}

    def __getitem__(self, key: str) -> PostCollection:
        return self._mapping[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._mapping)

    def __len__(self) -> int:
        return len(self._mapping)

    def url_for(self, tag: str) -> str:
        return tag_url(tag)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"TagCollection({len(self._mapping)} tags)"


@dataclass
class ListPage:
    """A generated page that lists posts: home, section, tag index or tag.

    Attributes:
        title: Page title.
        url: URL path of the page.
        kind: One of 'home', 'section', 'tags', 'tag'.
        posts: Posts listed, newest first.
        layout: Layout template to use.
    """

    title: str
    url: str
    kind: str
    posts: PostCollection = field(default_factory=lambda: PostCollection([]))
    layout: str = "list"
    summary: str = ""
    draft: bool = False
    tags: list[str] = field(default_factory=list)
    toc: list = field(default_factory=list)
