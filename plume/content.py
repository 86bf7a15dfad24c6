"""Content processing for Plume.

This module discovers post files, extracts their metadata, renders their
bodies and creates Post objects.

Key classes:
- Post: Dataclass representing one source post with its rendered body.
- FileContentLoader: Discovers content files in sorted order.
- LayoutResolver: Chooses the layout template for a post.
- UrlDeriver: Maps source paths to output URLs.
- DefaultPostBuilder: Builds a Post from one file.
- ContentProcessor: Loads every post, collecting per-file errors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from .errors import BuildError, format_error_message
from .extractors import CompositeMetadataExtractor
from .renderers import Heading, RendererRegistry, default_renderer_registry
from .utils import is_internal_path, slugify

logger = logging.getLogger(__name__)

__all__ = [
    "ContentProcessor",
    "DefaultPostBuilder",
    "FileContentLoader",
    "Heading",
    "LayoutResolver",
    "LoadResult",
    "Post",
    "UrlDeriver",
]

LAYOUT_SUFFIXES = (".html.jinja", ".jinja", ".html")


@dataclass
class Post:
    """Represents a source post with all its metadata and content.

    Attributes:
        title: Title from front-matter.
        date: Publication date, timezone-aware.
        draft: Whether the post is a draft.
        body: Raw Markdown after the front-matter block.
        content: Rendered HTML body.
        summary: Short plain-text summary.
        url: URL path for the post.
        slug: URL-friendly slug.
        section: First directory under the content dir (e.g. 'posts').
        tags: Tags from front-matter.
        reading_time: Estimated reading time in minutes.
        layout: Layout template to use.
        path: Path to the source file.
        filename: Name of the source file.
        source_type: "markdown" or "html".
    """

    title: str
    date: datetime
    draft: bool
    body: str
    content: str
    summary: str
    url: str
    slug: str
    section: str
    tags: list[str]
    reading_time: int
    layout: str
    path: Path
    filename: str
    source_type: str
    frontmatter: dict[str, Any] = field(default_factory=dict)
    toc: list[Heading] = field(default_factory=list)

    kind = "post"


@dataclass
class LoadResult:
    """Outcome of loading the content directory.

    Attributes:
        posts: Successfully built posts, in source path order.
        errors: One BuildError per file that could not be built.
        skipped_drafts: Paths of drafts left out of the build.
    """

    posts: list[Post] = field(default_factory=list)
    errors: list[BuildError] = field(default_factory=list)
    skipped_drafts: list[Path] = field(default_factory=list)


class FileContentLoader:
    """Discovers content files in a directory.

    Files under directories whose name starts with ``_`` are layout and
    partial overrides, never content.

    Attributes:
        content_dir: Directory containing posts.
        renderer_registry: Used to decide which files are content.
    """

    def __init__(self, content_dir: Path, renderer_registry: RendererRegistry | None = None):
        self.content_dir = content_dir
        self.renderer_registry = renderer_registry or default_renderer_registry

    def iter_files(self) -> list[Path]:
        """Return all content files, sorted by their relative path."""
        files: list[Path] = []
        for path in self.content_dir.rglob("*"):
            if path.is_dir():
                continue
            rel = path.relative_to(self.content_dir)
            if is_internal_path(rel.parent) or rel.name.startswith("."):
                continue
            if self.renderer_registry.can_render(path):
                files.append(path)
        return sorted(files, key=lambda p: p.relative_to(self.content_dir).as_posix())


class LayoutResolver:
    """Resolves layout templates for posts.

    Attributes:
        layout_dirs: Directories searched for layouts, highest priority first.
    """

    def __init__(self, layout_dirs: list[Path]):
        self.layout_dirs = list(layout_dirs)

    def resolve(self, slug: str, section: str, explicit: str | None = None) -> str:
        """Resolve the layout for a post.

        Searches for layouts in order:
        1. explicit ``layout`` from front-matter
        2. {section}/{slug} - Most specific
        3. {section} - Section-level layout
        4. post - Fallback

        Returns:
            Layout name to use.
        """
        candidates: list[str] = []
        if explicit:
            candidates.append(str(explicit))
        if section:
            candidates.append(f"{section}/{slug}")
            candidates.append(section)
        candidates.append("post")

        for candidate in candidates:
            if self.exists(candidate):
                return candidate
        return "post"

    def exists(self, name: str) -> bool:
        for layout_dir in self.layout_dirs:
            for suffix in LAYOUT_SUFFIXES:
                if (layout_dir / f"{name}{suffix}").is_file():
                    return True
        return False


class UrlDeriver:
    """Derives URLs for posts from their location in the content tree."""

    def derive(self, rel: Path, slug: str) -> str:
        """Derive the URL for a post.

        Args:
            rel: Relative path from the content directory.
            slug: URL-friendly slug.

        Returns:
            URL path such as ``/posts/hello/``.
        """
        segments = [slugify(p) for p in rel.parent.parts if p]
        url_parts = segments if slug == "index" else segments + [slug]
        path = "/".join(url_parts)
        return f"/{path}/" if path else "/"


class DefaultPostBuilder:
    """Builds Post objects from source files.

    Attributes:
        content_dir: Directory containing posts.
        renderer_registry: Registry of content renderers.
        metadata_extractor: Composite metadata extractor.
        layout_resolver: Layout resolver instance.
        url_deriver: URL deriver instance.
    """

    def __init__(
        self,
        content_dir: Path,
        layout_dirs: list[Path] | None = None,
        renderer_registry: RendererRegistry | None = None,
        metadata_extractor: CompositeMetadataExtractor | None = None,
    ):
        self.content_dir = content_dir
        self.renderer_registry = renderer_registry or default_renderer_registry
        self.metadata_extractor = metadata_extractor or CompositeMetadataExtractor()
        self.layout_resolver = LayoutResolver(layout_dirs or [content_dir / "_layouts"])
        self.url_deriver = UrlDeriver()

    def build(self, path: Path) -> Post:
        """Build a Post object from a source file.

        Raises:
            ParseError: If the front-matter is missing or invalid.
            OSError: If the file cannot be read.
        """
        text = path.read_text(encoding="utf-8")
        return self.build_from_text(path, text)

    def build_from_text(self, path: Path, text: str) -> Post:
        """Build a Post from already-read file text."""
        rel = path.relative_to(self.content_dir)
        metadata = self.metadata_extractor.extract(text, path)
        frontmatter = metadata["frontmatter"]
        body = metadata["body"]

        renderer = self.renderer_registry.get_renderer(path)
        if renderer is None:
            raise BuildError(path, f"no renderer for {path.suffix or path.name} files")
        content, toc = renderer.render(body)

        slug = slugify(str(frontmatter["slug"])) if frontmatter.get("slug") else slugify(path.stem)
        section = slugify(rel.parts[0]) if len(rel.parts) > 1 else ""
        layout = self.layout_resolver.resolve(slug, section, frontmatter.get("layout"))

        return Post(
            title=metadata["title"],
            date=metadata["date"],
            draft=metadata["draft"],
            body=body,
            content=content,
            summary=metadata.get("summary", ""),
            url=self.url_deriver.derive(rel, slug),
            slug=slug,
            section=section,
            tags=metadata.get("tags", []),
            reading_time=metadata.get("reading_time", 1),
            layout=layout,
            path=path,
            filename=path.name,
            source_type=renderer.source_type,
            frontmatter=frontmatter,
            toc=toc,
        )


class ContentProcessor:
    """Loads every post in the content directory.

    A file that fails to parse or render is recorded as a BuildError and
    does not stop the other files from loading.

    Attributes:
        content_dir: Directory containing posts.
    """

    def __init__(
        self,
        content_dir: Path,
        content_loader: FileContentLoader | None = None,
        post_builder: DefaultPostBuilder | None = None,
    ):
        self.content_dir = content_dir
        self._content_loader = content_loader or FileContentLoader(content_dir)
        self._post_builder = post_builder or DefaultPostBuilder(content_dir)

    def load(self, include_drafts: bool = False) -> LoadResult:
        """Load all content files and create Post objects.

        Args:
            include_drafts: Whether to keep posts marked ``draft: true``.

        Returns:
            LoadResult with posts, per-file errors and skipped drafts.
        """
        result = LoadResult()
        claimed: dict[str, Path] = {}
        for path in self._content_loader.iter_files():
            logger.debug("Loading %s", path)
            try:
                post = self._post_builder.build(path)
            except BuildError as exc:
                result.errors.append(exc)
                continue
            except Exception as exc:
                result.errors.append(BuildError(path, format_error_message(exc), exc))
                continue

            if post.draft and not include_drafts:
                logger.info("Skipping draft %s", path)
                result.skipped_drafts.append(path)
                continue

            if post.url in claimed:
                other = claimed[post.url].relative_to(self.content_dir)
                result.errors.append(
                    BuildError(path, f"URL {post.url} is already used by {other.as_posix()}")
                )
                continue
            claimed[post.url] = path
            result.posts.append(post)
        return result
