"""Plume static blog generator.

This package turns a directory of Markdown posts with YAML front-matter into a
static HTML site, using mistune for Markdown and Jinja2 for layouts.

The main entry point is the CLI module, which provides commands for scaffolding
new projects, building sites, rendering a single post and running a preview
server with live reload.

Build pipeline:
- extractors: front-matter parsing and metadata extraction.
- renderers: Markdown to HTML.
- content: discovery of source files and Post construction.
- templates: layout rendering.
- build: orchestration, output writing and error collection.
"""

__all__ = ["__version__"]
__version__ = "0.3.0"
