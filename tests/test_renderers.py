from pathlib import Path

from plume.renderers import (
    HTMLRenderer,
    MarkdownRenderer,
    RendererRegistry,
    _generate_heading_id,
)


def test_heading_gets_id_and_toc_entry():
    html, headings = MarkdownRenderer().render("# Hi")
    assert '<h1 id="hi">Hi</h1>' in html
    assert headings[0].id == "hi"
    assert headings[0].level == 1
    assert headings[0].text == "Hi"


def test_duplicate_headings_get_suffixes():
    html, headings = MarkdownRenderer().render("## Setup\n\n## Setup\n\n## Setup\n")
    assert [h.id for h in headings] == ["setup", "setup-1", "setup-2"]
    assert '<h2 id="setup-2">Setup</h2>' in html


def test_heading_ids_do_not_leak_between_renders():
    renderer = MarkdownRenderer()
    renderer.render("# Intro")
    html, _ = renderer.render("# Intro")
    assert '<h1 id="intro">' in html


def test_generate_heading_id_strips_markup():
    assert _generate_heading_id("Property <code>factories</code> &amp; you") == "property-factories-you"
    assert _generate_heading_id("!!!") == "section"


def test_known_language_is_highlighted():
    html, _ = MarkdownRenderer().render("```python\nclass Door:\n    pass\n```\n")
    assert '<div class="highlight">' in html
    assert "Door" in html


def test_ascii_diagram_is_preformatted_and_escaped():
    source = "```\n+-------+   +------+\n| idle  |-->| open |\n+-------+   +------+\na < b\n```\n"
    html, _ = MarkdownRenderer().render(source)
    assert "<pre><code>+-------+" in html
    assert "a &lt; b" in html


def test_unknown_language_falls_back_to_plain_block():
    html, _ = MarkdownRenderer().render("```notalanguage\nx = 1\n```\n")
    assert '<pre><code class="language-notalanguage">x = 1' in html


def test_standard_markdown_blocks():
    source = (
        "> quoted\n\n"
        "- one\n- two\n\n"
        "[link](https://example.com)\n\n"
        "| a | b |\n|---|---|\n| 1 | 2 |\n"
    )
    html, _ = MarkdownRenderer().render(source)
    assert "<blockquote>" in html
    assert "<li>one</li>" in html
    assert '<a href="https://example.com">link</a>' in html
    assert "<table>" in html


def test_raw_html_passes_through():
    html, _ = MarkdownRenderer().render('<div class="aside">kept</div>\n')
    assert '<div class="aside">kept</div>' in html


def test_html_renderer_passthrough():
    assert HTMLRenderer().render("<p>x</p>") == ("<p>x</p>", [])


def test_registry_picks_by_suffix():
    registry = RendererRegistry()
    assert registry.get_renderer(Path("a.md")).source_type == "markdown"
    assert registry.get_renderer(Path("a.MARKDOWN")).source_type == "markdown"
    assert registry.get_renderer(Path("a.html")).source_type == "html"
    assert registry.get_renderer(Path("a.txt")) is None
    assert not registry.can_render(Path("a.txt"))
