"""Site building functionality for Plume.

This module contains the core logic for building a static site from posts.
It loads configuration, processes content, renders templates and writes
output files. A build is a pure batch transform: the output directory is
wiped and regenerated, and identical inputs give byte-identical output.

Key functions:
- build_site: Build the entire site, collecting per-post errors.
- render_post: Render a single post, raising on any problem.
- load_config: Load site configuration from plume.yaml.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .assets import StaticCopier
from .collections import ListPage, PostCollection, tag_url
from .content import ContentProcessor, DefaultPostBuilder, Post
from .errors import BuildError, ConfigError, format_error_message
from .extractors import CompositeMetadataExtractor
from .feeds import create_default_feed_registry
from .html_utils import absolutize_html_urls
from .links import LinkChecker, LinkWarning
from .templates import TemplateEngine
from .utils import build_tags_index, ensure_clean_dir, titleize

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "plume.yaml"

CDN_STYLESHEET = "https://cdn.jsdelivr.net/npm/modern-normalize@2.0.0/modern-normalize.min.css"

DEFAULT_CONFIG: dict[str, Any] = {
    "title": "My Blog",
    "description": "",
    "author": "",
    "copyright": "",
    "language_code": "en",
    "base_url": "",
    "root_url": "",
    "content_dir": "content",
    "static_dir": "static",
    "output_dir": "public",
    "date_format": "%b %d, %Y",
    "summary_length": 160,
    "rss_limit": 20,
    "port": 4000,
    "pygments_style": "default",
    "stylesheets": [CDN_STYLESHEET],
    "menu": [],
    "params": {},
}


@dataclass
class BuildResult:
    """Result of a site build operation.

    Attributes:
        posts: Posts that were rendered and written.
        output_dir: Directory where the site was built.
        config: Effective configuration.
        errors: One BuildError per post that could not be built.
        warnings: Unresolved internal links.
        skipped_drafts: Drafts left out of the build.
    """

    posts: list[Post]
    output_dir: Path
    config: dict[str, Any]
    errors: list[BuildError] = field(default_factory=list)
    warnings: list[LinkWarning] = field(default_factory=list)
    skipped_drafts: list[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def load_config(project_root: Path) -> dict[str, Any]:
    """Load site configuration from plume.yaml.

    Args:
        project_root: Root directory of the project.

    Returns:
        Dictionary containing configuration values, with defaults applied.

    Raises:
        ConfigError: If the file is not valid YAML or not a mapping.
    """
    config_path = project_root / CONFIG_FILENAME
    config = copy.deepcopy(DEFAULT_CONFIG)
    if not config_path.exists():
        return config
    try:
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"{config_path}: invalid YAML: {exc}") from exc
    if loaded is None:
        return config
    if not isinstance(loaded, dict):
        raise ConfigError(f"{config_path}: expected a mapping of settings")
    config.update(loaded)
    return config


def _content_dir(project_root: Path, config: dict[str, Any]) -> Path:
    content_dir = project_root / str(config.get("content_dir") or "content")
    if not content_dir.is_dir():
        raise FileNotFoundError(f"Expected content directory at {content_dir}")
    return content_dir


def _post_builder(content_dir: Path, engine: TemplateEngine, config: dict[str, Any]) -> DefaultPostBuilder:
    return DefaultPostBuilder(
        content_dir,
        layout_dirs=engine.layout_dirs,
        metadata_extractor=CompositeMetadataExtractor(
            summary_length=int(config.get("summary_length") or 160)
        ),
    )


def build_site(
    project_root: Path,
    include_drafts: bool = False,
    root_url: str | None = None,
    clean_output: bool = True,
    output_dir_override: Path | None = None,
) -> BuildResult:
    """Build the entire static site.

    A post that fails to parse or render is reported in
    ``BuildResult.errors`` and nothing is written for it; every other page
    is still built.

    Args:
        project_root: Root directory of the project.
        include_drafts: Whether to include posts marked ``draft: true``.
        root_url: Optional base URL to absolutize links with.
        clean_output: Whether to wipe the output directory before building.
        output_dir_override: Optional path to write the build output instead
            of the configured output_dir.

    Returns:
        BuildResult describing what was built.

    Raises:
        ConfigError: If plume.yaml is invalid.
        FileNotFoundError: If the content directory does not exist.
    """
    config = load_config(project_root)
    if root_url is not None:
        config["root_url"] = root_url
    resolved_root = str(config.get("root_url") or "")
    content_dir = _content_dir(project_root, config)
    output_dir = output_dir_override or (project_root / str(config.get("output_dir") or "public"))
    if clean_output:
        ensure_clean_dir(output_dir)
    else:
        output_dir.mkdir(parents=True, exist_ok=True)

    engine = TemplateEngine(content_dir, config, root_url=resolved_root)
    processor = ContentProcessor(content_dir, post_builder=_post_builder(content_dir, engine, config))
    loaded = processor.load(include_drafts=include_drafts)
    errors = list(loaded.errors)

    published = [p for p in loaded.posts if not p.draft]
    tags, tag_errors = _claim_tag_urls(build_tags_index(published))
    errors.extend(tag_errors)
    engine.update_collections(published, tags)

    rendered: list[tuple[str, str, Path | None]] = []
    written: list[Post] = []
    for post in loaded.posts:
        try:
            html = engine.render_post(post)
        except Exception as exc:
            errors.append(BuildError(post.path, format_error_message(exc), exc))
            continue
        _write_page(output_dir, post.url, html, resolved_root)
        rendered.append((post.url, html, post.path))
        written.append(post)
        logger.debug("Wrote %s", post.url)

    claimed = {post.url for post in written}
    for page in _list_pages(engine, config, written, claimed):
        try:
            html = engine.render_list(page)
        except Exception as exc:
            errors.append(BuildError(content_dir, f"{page.url}: {format_error_message(exc)}", exc))
            continue
        _write_page(output_dir, page.url, html, resolved_root)
        rendered.append((page.url, html, None))

    try:
        not_found = engine.render_not_found()
    except Exception as exc:
        errors.append(BuildError(content_dir, f"404 page: {format_error_message(exc)}", exc))
    else:
        (output_dir / "404.html").write_text(_absolutize(not_found, resolved_root), encoding="utf-8")
        rendered.append(("/404.html", not_found, None))

    static_dirs = [engine.theme_dir / "static", project_root / str(config.get("static_dir") or "static")]
    StaticCopier(static_dirs, output_dir).run()

    feeds = create_default_feed_registry()
    feeds.generate_all(output_dir, written, config, extra_urls=sorted(_list_urls(rendered)))

    warnings = LinkChecker(output_dir).check(rendered)
    errors.sort(key=lambda e: str(e.source_path))
    return BuildResult(
        posts=written,
        output_dir=output_dir,
        config=config,
        errors=errors,
        warnings=warnings,
        skipped_drafts=loaded.skipped_drafts,
    )


def render_post(project_root: Path, path: Path, root_url: str | None = None) -> str:
    """Render one post with its layout (single-file mode).

    Unlike build_site, any problem aborts with an exception. List pages,
    feeds and static files are not produced; the aside sees only this post.

    Args:
        project_root: Root directory of the project.
        path: Path to the post, absolute or relative to the project root.
        root_url: Optional base URL to absolutize links with.

    Returns:
        Rendered HTML.

    Raises:
        BuildError: If the post cannot be read, parsed or rendered.
        ConfigError: If plume.yaml is invalid.
    """
    config = load_config(project_root)
    if root_url is not None:
        config["root_url"] = root_url
    resolved_root = str(config.get("root_url") or "")
    content_dir = _content_dir(project_root, config)
    source = path if path.is_absolute() else project_root / path
    source = source.resolve()
    try:
        source.relative_to(content_dir.resolve())
    except ValueError:
        raise BuildError(source, f"not inside the content directory {content_dir}") from None

    engine = TemplateEngine(content_dir.resolve(), config, root_url=resolved_root)
    builder = _post_builder(content_dir.resolve(), engine, config)
    try:
        post = builder.build(source)
        engine.update_collections([post], build_tags_index([post]))
        html = engine.render_post(post)
    except BuildError:
        raise
    except Exception as exc:
        raise BuildError(source, format_error_message(exc), exc) from exc
    return _absolutize(html, resolved_root)


def _claim_tag_urls(tags: dict[str, list[Post]]) -> tuple[dict[str, list[Post]], list[BuildError]]:
    """Drop tags whose page URL is already taken by an earlier tag.

    ``C`` and ``C++`` both slug to ``c``; the first in index order keeps
    ``/tags/c/`` and every later one is reported against the first post
    that uses it.
    """
    owners: dict[str, str] = {}
    kept: dict[str, list[Post]] = {}
    errors: list[BuildError] = []
    for tag, tagged in tags.items():
        url = tag_url(tag)
        if url in owners:
            errors.append(
                BuildError(tagged[0].path, f"tag {tag!r} has the same URL {url} as tag {owners[url]!r}")
            )
            continue
        owners[url] = tag
        kept[tag] = tagged
    return kept, errors


def _list_pages(
    engine: TemplateEngine,
    config: dict[str, Any],
    posts: list[Post],
    claimed: set[str],
) -> list[ListPage]:
    """Build the home, section, tag index and tag list pages.

    A list page is skipped when a post already owns its URL.
    """
    visible = PostCollection(posts).sorted()
    pages = [ListPage(title=str(config.get("title") or ""), url="/", kind="home", posts=visible, layout="home")]
    for section in visible.sections():
        pages.append(
            ListPage(
                title=titleize(section),
                url=f"/{section}/",
                kind="section",
                posts=visible.section(section),
                layout=f"{section}/list",
            )
        )
    if len(engine.tags):
        pages.append(ListPage(title="Tags", url="/tags/", kind="tags", layout="tags"))
        for tag, tagged in engine.tags.items():
            pages.append(
                ListPage(
                    title=f"Tag: {tag}",
                    url=engine.tags.url_for(tag),
                    kind="tag",
                    posts=tagged,
                    layout="tag",
                )
            )
    return [page for page in pages if page.url not in claimed]


def _list_urls(rendered: list[tuple[str, str, Path | None]]) -> set[str]:
    return {url for url, _, source in rendered if source is None and url.endswith("/")}


def _absolutize(html: str, root_url: str) -> str:
    if not root_url:
        return html
    return absolutize_html_urls(html, root_url)


def _write_page(output_dir: Path, url: str, rendered: str, root_url: str = "") -> None:
    """Write a rendered page to ``<output>/<url>/index.html``."""
    url_path = url.strip("/")
    target_dir = output_dir / url_path
    target_dir.mkdir(parents=True, exist_ok=True)
    html_path = target_dir / "index.html"
    with open(html_path, "w", encoding="utf-8", newline="\n") as f:
        f.write(_absolutize(rendered, root_url))
