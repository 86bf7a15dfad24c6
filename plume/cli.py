"""The ``plume`` command.

``plume build`` and ``plume serve`` cover the everyday loop; ``new``,
``post`` and ``render`` scaffold a site, start a draft and preview one file.
Exit status is 1 whenever a post fails to build.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

import click
import questionary
import yaml

from . import __version__
from .build import CDN_STYLESHEET, CONFIG_FILENAME, load_config
from .errors import BuildError, PlumeError
from .utils import slugify

SAMPLE_POST = """\
---
title: "Hello, Plume"
date: {date}
draft: false
tags: [meta]
---

# Hello

This is your first post. Edit `content/posts/hello-plume.md` and run
`plume serve` to watch the page update.

```python
print("hello")
```
"""


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s" if not verbose else "%(levelname)s %(name)s: %(message)s",
    )


@click.group()
@click.version_option(version=__version__, prog_name="plume")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose: bool):
    """Plume static blog generator."""
    _configure_logging(verbose)


@cli.command()
@click.argument("name")
def new(name: str):
    """Scaffold a new Plume project."""
    target = Path(name).resolve()
    if target.exists() and any(target.iterdir()):
        raise click.ClickException(
            f"Refusing to initialize into non-empty directory: {target}"
        )
    _scaffold(target)
    click.echo(f"New Plume site created at {target}")


@cli.command()
@click.option("--drafts", is_flag=True, help="Include draft content")
@click.option("--root-url", default=None, help="Absolutize site links with this URL")
@click.option(
    "--output",
    "output_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Write the site here instead of the configured output_dir",
)
def build(drafts: bool, root_url: str | None, output_dir: Path | None):
    """Build the site into the output directory."""
    project_root = Path.cwd()
    from .build import build_site

    try:
        result = build_site(
            project_root,
            include_drafts=drafts,
            root_url=root_url,
            output_dir_override=output_dir,
        )
    except (PlumeError, FileNotFoundError) as exc:
        raise click.ClickException(str(exc)) from None

    for warning in result.warnings:
        origin = _relative(warning.source_path, project_root) or warning.page_url
        click.echo(
            click.style(f"Warning: {origin}: unresolved link {warning.target}", fg="yellow"),
            err=True,
        )
    for error in result.errors:
        _echo_build_error(error, project_root)

    summary = f"Built {len(result.posts)} posts into {result.output_dir}"
    if result.skipped_drafts:
        summary += f" ({len(result.skipped_drafts)} drafts skipped)"
    click.echo(summary)
    if result.errors:
        click.echo(click.style(f"{len(result.errors)} post(s) failed", fg="red", bold=True), err=True)
        raise SystemExit(1)


@cli.command()
@click.option("--drafts", is_flag=True, help="Include draft content")
@click.option(
    "--port",
    type=int,
    required=False,
    help="Port to run the dev server (overrides plume.yaml)",
)
@click.option(
    "--ws-port",
    type=int,
    required=False,
    help="Port for the live reload websocket server (overrides plume.yaml ws_port)",
)
def serve(drafts: bool, port: int | None, ws_port: int | None):
    """Run dev server with live reload."""
    project_root = Path.cwd()
    from .server import DevServer

    try:
        server = DevServer(project_root, http_port=port, ws_port=ws_port)
        server.start(include_drafts=drafts)
    except PlumeError as exc:
        raise click.ClickException(str(exc)) from None


@cli.command()
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write HTML to this file instead of stdout",
)
def render(path: Path, output: Path | None):
    """Render a single post with its layout."""
    project_root = Path.cwd()
    from .build import render_post

    try:
        html = render_post(project_root, path)
    except BuildError as exc:
        _echo_build_error(exc, project_root)
        raise SystemExit(1) from None
    except (PlumeError, FileNotFoundError) as exc:
        raise click.ClickException(str(exc)) from None

    if output is None:
        click.echo(html, nl=False)
    else:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(html, encoding="utf-8")
        click.echo(f"Wrote {output}", err=True)


@cli.command()
def post():
    """Create a new post interactively."""
    project_root = Path.cwd()
    try:
        config = load_config(project_root)
    except PlumeError as exc:
        raise click.ClickException(str(exc)) from None
    content_dir = project_root / str(config.get("content_dir") or "content")

    if not content_dir.exists():
        raise click.ClickException(
            f"No {content_dir.name}/ directory found. Run this command from a Plume project root."
        )

    folder = questionary.select(
        "Select folder:",
        choices=_get_content_folders(content_dir),
        style=_questionary_style(),
    ).ask()
    if folder is None:
        raise click.Abort()

    title = questionary.text(
        "Title:",
        validate=lambda x: len(x.strip()) > 0 or "Title cannot be empty",
        style=_questionary_style(),
    ).ask()
    if title is None:
        raise click.Abort()
    title = title.strip()

    tags = questionary.text("Tags (comma separated):", style=_questionary_style()).ask()
    if tags is None:
        raise click.Abort()

    target_dir = content_dir if folder == ". (root)" else content_dir / folder
    slug = slugify(title)
    if slug == "index":
        raise click.ClickException(
            f"Title {title!r} would create index.md, which replaces the folder's list page; "
            "choose another title."
        )
    target_path = target_dir / f"{slug}.md"
    if target_path.exists():
        raise click.ClickException(
            f"File already exists: {target_path.relative_to(project_root)}"
        )

    target_dir.mkdir(parents=True, exist_ok=True)
    target_path.write_text(
        _post_skeleton(title, [t.strip() for t in tags.split(",") if t.strip()]),
        encoding="utf-8",
    )
    click.echo(f"Created {target_path.relative_to(project_root)}")


def _post_skeleton(title: str, tags: list[str], now: datetime | None = None) -> str:
    """Return the text of a new draft post."""
    stamp = (now or datetime.now(timezone.utc).astimezone()).replace(microsecond=0)
    frontmatter = {"title": title, "date": stamp.isoformat(), "draft": True}
    if tags:
        frontmatter["tags"] = tags
    block = yaml.safe_dump(frontmatter, sort_keys=False, allow_unicode=True)
    return f"---\n{block}---\n\n"


def _get_content_folders(content_dir: Path) -> list[str]:
    """Folders a new post can go in; layout and partial overrides are hidden."""
    folders = sorted(
        path.name
        for path in content_dir.iterdir()
        if path.is_dir() and not path.name.startswith(("_", "."))
    )
    folders.insert(0, ". (root)")
    return folders


def _questionary_style():
    return questionary.Style(
        [
            ("qmark", "fg:cyan bold"),
            ("question", "bold"),
            ("answer", "fg:cyan"),
            ("pointer", "fg:cyan bold"),
            ("highlighted", "fg:cyan bold"),
            ("selected", "fg:cyan"),
        ]
    )


def _relative(path: Path | None, root: Path) -> str:
    if path is None:
        return ""
    try:
        return str(path.resolve().relative_to(root.resolve()))
    except ValueError:
        return str(path)


def _echo_build_error(exc: BuildError, project_root: Path) -> None:
    click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
    click.echo(click.style(f"  File: {_relative(exc.source_path, project_root)}", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)


def main():
    cli()


def _scaffold(root: Path) -> None:
    """Lay out content/, static/, plume.yaml and a first post under ``root``."""
    (root / "content" / "posts").mkdir(parents=True, exist_ok=True)
    (root / "content" / "_layouts").mkdir(exist_ok=True)
    (root / "content" / "_partials").mkdir(exist_ok=True)
    (root / "static").mkdir(exist_ok=True)

    config = {
        "title": root.name,
        "description": "",
        "author": "",
        "base_url": "",
        "stylesheets": [CDN_STYLESHEET],
        "menu": [
            {"name": "Posts", "url": "/posts/"},
            {"name": "Tags", "url": "/tags/"},
        ],
        "params": {"about": "A blog built with Plume."},
    }
    (root / CONFIG_FILENAME).write_text(
        yaml.safe_dump(config, sort_keys=False), encoding="utf-8"
    )
    now = datetime.now(timezone.utc).replace(microsecond=0)
    (root / "content" / "posts" / "hello-plume.md").write_text(
        SAMPLE_POST.format(date=now.isoformat()), encoding="utf-8"
    )
