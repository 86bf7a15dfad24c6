import asyncio
import io
import logging
from http import HTTPStatus
from pathlib import Path

from plume.build import BuildResult
from plume.errors import BuildError, ConfigError
from plume.server import (
    DevServer,
    PreviewRequestHandler,
    ReloadHub,
    _SourceChangeHandler,
    inject_reload,
    source_snapshot,
)


class DummyEvent:
    def __init__(self, path, is_directory=False):
        self.src_path = str(path)
        self.is_directory = is_directory


def staged_build(calls=None, errors=None):
    def fake_build(root, include_drafts=False, root_url=None, clean_output=True, output_dir_override=None):
        if calls is not None:
            calls.append(("build", include_drafts, root_url, output_dir_override))
        (output_dir_override / "index.html").write_text("new", encoding="utf-8")
        return BuildResult(posts=[], output_dir=output_dir_override, config={}, errors=errors or [])

    return fake_build


def make_request(directory: Path, path: str):
    """Build a handler without a socket; responses land in ``wfile``."""
    handler = PreviewRequestHandler.__new__(PreviewRequestHandler)
    handler.path = path
    handler.directory = str(directory)
    handler.command = "GET"
    handler.request_version = "HTTP/1.1"
    handler.headers = {}
    handler.rfile = io.BytesIO(b"")
    handler.wfile = io.BytesIO()
    handler.statuses = []
    handler.send_response = lambda code, message=None: handler.statuses.append(code)
    handler.send_header = lambda *args, **kwargs: None
    handler.end_headers = lambda: None
    handler.send_error = lambda code, message=None: handler.statuses.append(("error", code))
    return handler


def test_inject_reload():
    assert inject_reload("<html><body>x</body></html>", "<s/>") == "<html><body>x<s/></body></html>"
    assert inject_reload("<p>no body</p>", "<s/>") == "<p>no body</p><s/>"


def test_ports(tmp_path):
    server = DevServer(tmp_path)
    assert (server.http_port, server.ws_port) == (4000, 4001)

    assert DevServer(tmp_path, http_port=5055).ws_port == 5056

    explicit = DevServer(tmp_path, http_port=5055, ws_port=6000)
    assert explicit.ws_port == 6000
    assert ":6000`" in explicit.reload_snippet

    (tmp_path / "plume.yaml").write_text("port: 8000\nws_port: 9000\n", encoding="utf-8")
    configured = DevServer(tmp_path)
    assert (configured.http_port, configured.ws_port) == (8000, 9000)
    assert configured.root_url == "http://localhost:8000"


def test_change_handler_filters_events(tmp_path):
    server = DevServer(tmp_path)
    called = []
    server.rebuild = lambda include_drafts: called.append(include_drafts)
    handler = _SourceChangeHandler(server, include_drafts=True)

    handler.on_any_event(DummyEvent(server.output_dir / "index.html"))
    handler.on_any_event(DummyEvent(server.staging_dir / "index.html"))
    handler.on_any_event(DummyEvent(tmp_path / "public.old" / "index.html"))
    handler.on_any_event(DummyEvent(tmp_path / "README.md"))
    handler.on_any_event(DummyEvent(tmp_path / "content", is_directory=True))
    assert called == []

    handler.on_any_event(DummyEvent(tmp_path / "content" / "posts" / "a.md"))
    handler.on_any_event(DummyEvent(tmp_path / "plume.yaml"))
    assert called == [True, True]


def test_rebuild_publishes_then_reloads(monkeypatch, tmp_path):
    server = DevServer(tmp_path)
    server.settle = 0.01
    calls = []
    monkeypatch.setattr("plume.server.build_site", staged_build(calls))
    server.hub.reload = lambda: calls.append("reload")
    slept = []
    monkeypatch.setattr("plume.server.time.sleep", lambda secs: slept.append(secs))

    server.rebuild(include_drafts=True)

    assert calls == [("build", True, "http://localhost:4000", server.staging_dir), "reload"]
    assert slept == [0.01]
    assert (server.output_dir / "index.html").read_text(encoding="utf-8") == "new"
    assert not server.staging_dir.exists()


def test_publish_replaces_previous_output(monkeypatch, tmp_path):
    server = DevServer(tmp_path)
    server.output_dir.mkdir()
    (server.output_dir / "stale.html").write_text("old", encoding="utf-8")
    monkeypatch.setattr("plume.server.build_site", staged_build())

    assert server.publish(include_drafts=False)

    assert sorted(p.name for p in server.output_dir.iterdir()) == ["index.html"]
    assert not (tmp_path / "public.old").exists()


def test_failed_build_keeps_served_output(monkeypatch, tmp_path, caplog):
    server = DevServer(tmp_path)
    server.output_dir.mkdir()
    (server.output_dir / "index.html").write_text("current", encoding="utf-8")
    reloads = []
    server.hub.reload = lambda: reloads.append(True)

    def broken_build(*args, **kwargs):
        raise ConfigError("plume.yaml: invalid YAML")

    monkeypatch.setattr("plume.server.build_site", broken_build)
    with caplog.at_level(logging.ERROR, logger="plume.server"):
        server.rebuild(include_drafts=False)

    assert "invalid YAML" in caplog.text
    assert reloads == []
    assert (server.output_dir / "index.html").read_text(encoding="utf-8") == "current"
    assert not server.staging_dir.exists()


def test_post_errors_are_logged_and_site_still_published(monkeypatch, tmp_path, caplog):
    server = DevServer(tmp_path)
    error = BuildError(tmp_path / "content" / "bad.md", "missing required field 'title'")
    monkeypatch.setattr("plume.server.build_site", staged_build(errors=[error]))

    with caplog.at_level(logging.ERROR, logger="plume.server"):
        assert server.publish(include_drafts=False)

    assert "missing required field 'title'" in caplog.text
    assert (server.output_dir / "index.html").exists()


def test_rebuild_guard(monkeypatch, tmp_path):
    server = DevServer(tmp_path)
    server.debounce = 0.0
    server.settle = 0
    calls = []
    build = staged_build()

    def counting_build(root, **kwargs):
        calls.append("built")
        return build(root, **kwargs)

    monkeypatch.setattr("plume.server.build_site", counting_build)
    server.hub.reload = lambda: calls.append("reloaded")

    snapshots = [("a",), ("a",), ("b",)]
    server._snapshot = lambda: snapshots.pop(0) if snapshots else ("b",)

    server.rebuild(include_drafts=False)
    server._busy = True
    server.rebuild(include_drafts=False)  # skipped while building
    server._busy = False
    server.rebuild(include_drafts=False)  # skipped, nothing changed
    server.rebuild(include_drafts=False)  # snapshot changed
    assert calls == ["built", "reloaded", "built", "reloaded"]


def test_source_snapshot(tmp_path):
    assert source_snapshot(tmp_path, [tmp_path / "content"]) is None

    (tmp_path / "content" / "posts").mkdir(parents=True)
    (tmp_path / "content" / "posts" / "a.md").write_text("hi", encoding="utf-8")
    (tmp_path / "plume.yaml").write_text("title: t", encoding="utf-8")
    (tmp_path / "content" / "dangling.md").symlink_to(tmp_path / "nope.md")

    snapshot = source_snapshot(tmp_path, [tmp_path / "content", tmp_path / "plume.yaml"])
    assert [entry[0] for entry in snapshot] == ["content/posts/a.md", "plume.yaml"]
    assert snapshot[0][2] == 2


def test_watch_schedules_existing_dirs(monkeypatch, tmp_path):
    (tmp_path / "content").mkdir()
    server = DevServer(tmp_path)
    scheduled = []

    class DummyObserver:
        def schedule(self, handler, path, recursive):
            scheduled.append((path, recursive))

        def start(self):
            scheduled.append(("started", True))

    monkeypatch.setattr("plume.server.Observer", DummyObserver)
    server.watch(include_drafts=False)
    assert scheduled == [
        (str(tmp_path / "content"), True),
        (str(tmp_path), False),
        ("started", True),
    ]


def test_stop_joins_observer(tmp_path):
    server = DevServer(tmp_path)
    calls = []

    class DummyObserver:
        def stop(self):
            calls.append("stop")

        def join(self):
            calls.append("join")

    server._observer = DummyObserver()
    server.stop()
    assert calls == ["stop", "join"]
    assert server._observer is None


def test_hub_broadcast_drops_broken_clients():
    hub = ReloadHub(4001)

    class GoodWS:
        def __init__(self):
            self.messages = []

        async def send(self, msg):
            self.messages.append(msg)

    class BadWS:
        async def send(self, msg):
            raise ConnectionError("gone")

    good, bad = GoodWS(), BadWS()
    hub.clients = {good, bad}
    asyncio.run(hub.broadcast('{"type": "reload"}'))
    assert good.messages == ['{"type": "reload"}']
    assert hub.clients == {good}


def test_hub_register_tracks_connection():
    hub = ReloadHub(4001)

    class DummyWS:
        def __init__(self):
            self.seen_registered = None

        async def wait_closed(self):
            self.seen_registered = self in hub.clients

    ws = DummyWS()
    asyncio.run(hub.register(ws))
    assert ws.seen_registered is True
    assert ws not in hub.clients


def test_directory_url_serves_index_with_snippet(tmp_path):
    (tmp_path / "posts").mkdir()
    (tmp_path / "posts" / "index.html").write_text("<html><body>index</body></html>", encoding="utf-8")
    handler = make_request(tmp_path, "/posts/")

    assert PreviewRequestHandler.send_head(handler) is None
    assert handler.statuses == [HTTPStatus.OK]
    body = handler.wfile.getvalue()
    assert b"WebSocket" in body
    assert body.index(b"WebSocket") < body.index(b"</body>")


def test_static_file_is_passed_through(tmp_path):
    (tmp_path / "style.css").write_text("body{}", encoding="utf-8")
    handler = make_request(tmp_path, "/style.css")

    result = PreviewRequestHandler.send_head(handler)
    assert result is not None
    assert result.read() == b"body{}"
    result.close()


def test_missing_path_serves_404_page(tmp_path):
    (tmp_path / "404.html").write_text("<html><body>oops</body></html>", encoding="utf-8")
    handler = make_request(tmp_path, "/missing/")

    assert PreviewRequestHandler.send_head(handler) is None
    assert handler.statuses == [HTTPStatus.NOT_FOUND]
    body = handler.wfile.getvalue().decode()
    assert "oops" in body
    assert "WebSocket" in body


def test_directory_without_index_is_404(tmp_path):
    (tmp_path / "posts").mkdir()
    (tmp_path / "posts" / "note.txt").write_text("hi", encoding="utf-8")
    handler = make_request(tmp_path, "/posts/")

    assert PreviewRequestHandler.send_head(handler) is None
    assert handler.statuses == [("error", HTTPStatus.NOT_FOUND)]
