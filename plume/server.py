"""Live preview server for Plume.

``plume serve`` builds the site, serves the output directory over HTTP and
rebuilds whenever a post, a static file or ``plume.yaml`` changes. Browsers
are told to reload over a websocket once the new build is in place.

Key pieces:
- PreviewRequestHandler: static file handler that adds the reload snippet
  to HTML and answers missing paths with the site's 404 page.
- ReloadHub: websocket endpoint that broadcasts reload messages.
- DevServer: ties building, serving and watching together.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import shutil
import threading
import time
from collections.abc import Iterable
from http import HTTPStatus
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib.parse import urlsplit

import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .build import CONFIG_FILENAME, build_site, load_config
from .errors import PlumeError
from .utils import ensure_clean_dir

logger = logging.getLogger(__name__)

RELOAD_SNIPPET = """<script>
(() => {{
  const socket = new WebSocket(`ws://${{location.hostname}}:{port}`);
  socket.addEventListener("message", (event) => {{
    if (JSON.parse(event.data).type === "reload") window.location.reload();
  }});
}})();
</script>
"""


def inject_reload(html: str, snippet: str) -> str:
    """Insert the reload snippet before the last ``</body>``, or append it."""
    head, tag, tail = html.rpartition("</body>")
    if not tag:
        return html + snippet
    return f"{head}{snippet}{tag}{tail}"


def source_snapshot(root: Path, sources: Iterable[Path]) -> tuple | None:
    """Return ``(path, mtime_ns, size)`` for every file under ``sources``.

    Used to skip rebuilds when an editor touches a file without changing
    it. Returns None when there are no files at all.
    """
    files: list[Path] = []
    for source in sources:
        if source.is_file():
            files.append(source)
        elif source.is_dir():
            files.extend(p for p in source.rglob("*") if not p.is_dir())
    entries = []
    for path in sorted(files):
        try:
            info = path.stat()
        except OSError:
            continue
        entries.append((path.relative_to(root).as_posix(), info.st_mtime_ns, info.st_size))
    return tuple(entries) or None


class PreviewRequestHandler(SimpleHTTPRequestHandler):
    """Serves the build output the way a static host would.

    Directory URLs map to their ``index.html``. Directory listings are never
    shown; missing paths get ``404.html`` when the site has one.
    """

    snippet = RELOAD_SNIPPET.format(port=4001)

    def end_headers(self):
        self.send_header("Cache-Control", "no-store")
        super().end_headers()

    def log_message(self, format, *args):  # noqa: A002 - signature from base class
        logger.debug("%s %s", self.address_string(), format % args)

    def list_directory(self, path):
        return self.send_not_found()

    def send_head(self):
        target = Path(self.translate_path(self.path))
        if target.is_dir():
            if not urlsplit(self.path).path.endswith("/"):
                # base class answers with a trailing-slash redirect
                return super().send_head()
            target = target / "index.html"
        if not target.is_file():
            return self.send_not_found()
        if target.suffix == ".html":
            self.send_page(HTTPStatus.OK, target)
            return None
        return super().send_head()

    def send_not_found(self):
        page = Path(self.directory) / "404.html"
        if page.is_file():
            self.send_page(HTTPStatus.NOT_FOUND, page)
        else:
            self.send_error(HTTPStatus.NOT_FOUND, "File not found")
        return None

    def send_page(self, status: HTTPStatus, page: Path) -> None:
        body = inject_reload(page.read_text(encoding="utf-8"), self.snippet).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)


class ReloadHub:
    """Websocket endpoint that tells connected browsers to reload.

    The server runs on its own event loop, driven from a daemon thread;
    ``reload`` may be called from any thread.

    Attributes:
        port: Port the websocket server listens on.
        clients: Currently connected websockets.
    """

    def __init__(self, port: int):
        self.port = port
        self.clients: set = set()
        self.loop = asyncio.new_event_loop()

    def run(self) -> None:  # pragma: no cover - integration path
        asyncio.set_event_loop(self.loop)
        try:
            self.loop.run_until_complete(self._serve())
        except OSError as exc:
            logger.error("Live reload disabled, cannot listen on port %s: %s", self.port, exc)

    async def _serve(self) -> None:  # pragma: no cover - integration path
        async with websockets.serve(self.register, "0.0.0.0", self.port):
            await asyncio.Future()

    async def register(self, websocket) -> None:
        self.clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self.clients.discard(websocket)

    async def broadcast(self, message: str) -> None:
        clients = list(self.clients)
        outcomes = await asyncio.gather(
            *(client.send(message) for client in clients), return_exceptions=True
        )
        for client, outcome in zip(clients, outcomes):
            if isinstance(outcome, Exception):
                logger.debug("Dropping live reload client: %s", outcome)
                self.clients.discard(client)

    def reload(self) -> None:
        message = json.dumps({"type": "reload"})
        asyncio.run_coroutine_threadsafe(self.broadcast(message), self.loop)

    def close(self) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)


class DevServer:
    """Builds the site, serves it, and rebuilds it when sources change.

    Every build goes into a sibling ``.staging`` directory that replaces the
    served output only after the build has run, so a browser never sees a
    half-written site. Pages are built with ``http://localhost:<port>`` as
    their root URL.

    Attributes:
        project_root: Root directory of the project.
        config: Site configuration, reloaded before each build.
        output_dir: Directory being served.
        http_port: Port of the HTTP server.
        hub: Live reload websocket endpoint.
    """

    debounce = 0.05
    settle = 0.05

    def __init__(self, project_root: Path, http_port: int | None = None, ws_port: int | None = None):
        """Initialize the server.

        Args:
            project_root: Root directory of the project.
            http_port: HTTP port; defaults to ``port`` from plume.yaml.
            ws_port: Websocket port; defaults to ``ws_port`` from plume.yaml,
                or the HTTP port plus one.
        """
        self.project_root = project_root
        self.config = load_config(project_root)
        self.http_port = int(http_port or self.config.get("port") or 4000)
        if ws_port is None:
            configured = self.config.get("ws_port") if http_port is None else None
            ws_port = int(configured or self.http_port + 1)
        self.hub = ReloadHub(ws_port)
        self.output_dir = project_root / str(self.config.get("output_dir") or "public")
        self.staging_dir = self.output_dir.with_name(f"{self.output_dir.name}.staging")
        self.root_url = f"http://localhost:{self.http_port}"
        self._observer: Observer | None = None
        self._busy = False
        self._last_build = float("-inf")
        self._last_snapshot: tuple | None = None

    @property
    def ws_port(self) -> int:
        return self.hub.port

    @property
    def reload_snippet(self) -> str:
        return RELOAD_SNIPPET.format(port=self.ws_port)

    @property
    def watched_dirs(self) -> list[Path]:
        return [
            self.project_root / str(self.config.get("content_dir") or "content"),
            self.project_root / str(self.config.get("static_dir") or "static"),
        ]

    @property
    def ignored_dirs(self) -> list[Path]:
        name = self.output_dir.name
        return [self.output_dir, self.staging_dir, self.output_dir.with_name(f"{name}.old")]

    def start(self, include_drafts: bool = False) -> None:  # pragma: no cover - integration path
        if not self.publish(include_drafts):
            raise PlumeError("Initial build failed; fix the errors above and retry.")
        self._last_snapshot = self._snapshot()
        threading.Thread(target=self._serve_http, daemon=True).start()
        threading.Thread(target=self.hub.run, daemon=True).start()
        self.watch(include_drafts)
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        self.hub.close()

    def _serve_http(self) -> None:  # pragma: no cover - integration path
        handler_cls = type("BoundPreviewHandler", (PreviewRequestHandler,), {"snippet": self.reload_snippet})
        handler = functools.partial(handler_cls, directory=str(self.output_dir))
        with ThreadingHTTPServer(("", self.http_port), handler) as httpd:
            logger.info("Serving %s at %s/", self.output_dir, self.root_url)
            httpd.serve_forever()

    def watch(self, include_drafts: bool) -> None:
        handler = _SourceChangeHandler(self, include_drafts)
        observer = Observer()
        for directory in self.watched_dirs:
            if directory.is_dir():
                observer.schedule(handler, str(directory), recursive=True)
        # plume.yaml lives in the project root
        observer.schedule(handler, str(self.project_root), recursive=False)
        observer.start()
        self._observer = observer

    def rebuild(self, include_drafts: bool) -> None:
        """Rebuild and reload browsers, unless a build is running or nothing changed."""
        if self._busy or time.monotonic() - self._last_build < self.debounce:
            return
        snapshot = self._snapshot()
        if snapshot is not None and snapshot == self._last_snapshot:
            return
        self._busy = True
        try:
            logger.info("Change detected, rebuilding")
            if self.publish(include_drafts):
                self._last_snapshot = snapshot
                if self.settle:
                    time.sleep(self.settle)
                self.hub.reload()
        finally:
            self._busy = False
            self._last_build = time.monotonic()

    def publish(self, include_drafts: bool) -> bool:
        """Build into the staging directory and swap it in.

        Per-post errors and link warnings are logged and the rest of the
        site is still published. Returns False, leaving the served output
        untouched, when the build cannot run at all.
        """
        ensure_clean_dir(self.staging_dir)
        try:
            self.config = load_config(self.project_root)
            result = build_site(
                self.project_root,
                include_drafts=include_drafts,
                root_url=self.root_url,
                clean_output=False,
                output_dir_override=self.staging_dir,
            )
        except (PlumeError, OSError) as exc:
            logger.error("Build failed: %s", exc)
            shutil.rmtree(self.staging_dir, ignore_errors=True)
            return False
        for error in result.errors:
            logger.error("%s", error)
        for warning in result.warnings:
            logger.warning("%s", warning)
        self._swap_in(self.staging_dir)
        logger.info("Published %d posts", len(result.posts))
        return True

    def _swap_in(self, staging: Path) -> None:
        # os.replace cannot overwrite a non-empty directory
        retired = self.output_dir.with_name(f"{self.output_dir.name}.old")
        shutil.rmtree(retired, ignore_errors=True)
        if self.output_dir.exists():
            self.output_dir.rename(retired)
        staging.rename(self.output_dir)
        shutil.rmtree(retired, ignore_errors=True)

    def _snapshot(self) -> tuple | None:
        return source_snapshot(
            self.project_root, [*self.watched_dirs, self.project_root / CONFIG_FILENAME]
        )

    def is_ignored(self, path: Path) -> bool:
        """True for build output and for root files other than plume.yaml."""
        if any(path.is_relative_to(directory) for directory in self.ignored_dirs):
            return True
        return path.parent == self.project_root and path.name != CONFIG_FILENAME


class _SourceChangeHandler(FileSystemEventHandler):
    def __init__(self, server: DevServer, include_drafts: bool):
        super().__init__()
        self.server = server
        self.include_drafts = include_drafts

    def on_any_event(self, event):
        if event.is_directory or self.server.is_ignored(Path(event.src_path)):
            return
        self.server.rebuild(self.include_drafts)
