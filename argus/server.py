"""Development server for Argus.

Serves the compiled site with live reload:
- Injects a reload script into HTML responses.
- Rejects directory listings and missing paths with a 404 (serving 404.html when present).
- Watches the site sources and recompiles, then tells connected browsers to reload.

Recompilation is incremental: only outdated reps are rewritten, so the output
directory is updated in place.

Key classes:
- DevServer: Main class for running the development server.
- _ReloadHandler: HTTP request handler that injects reload script and enforces 404s.
- _ChangeHandler: File system event handler for triggering recompiles.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import threading
import time
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import click
import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .errors import ArgusError
from .site import LIB_DIR, Site, load_config

logger = logging.getLogger(__name__)

WATCHED_DIRS = ("content", "layouts", LIB_DIR)


class _ReloadHandler(SimpleHTTPRequestHandler):
    """HTTP request handler that injects live reload script into HTML pages.

    Attributes:
        reload_script: JavaScript code for WebSocket connection to trigger reloads.
    """

    reload_script_template = """
    <script>
    (() => {{
      const ws = new WebSocket('ws://' + location.hostname + ':{ws_port}');
      ws.onmessage = (event) => {{
        const data = JSON.parse(event.data || '{{}}');
        if (data.type === 'reload') location.reload();
      }};
    }})();
    </script>
    """
    reload_script = reload_script_template.format(ws_port=3001)

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def list_directory(self, path):  # pragma: no cover - exercised via send_head
        return self._serve_404()

    def _inject(self, content: str) -> bytes:
        if "</body>" in content:
            content = content.replace("</body>", f"{self.reload_script}</body>")
        else:
            content += self.reload_script
        return content.encode("utf-8")

    def _send_html(self, status: int, content: str) -> None:
        encoded = self._inject(content)
        self.send_response(status)
        self.send_header("Content-type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def _serve_404(self):
        """Serve 404.html (when present) with injected reload script and a 404 status."""
        error_page = Path(self.directory) / "404.html"
        if error_page.exists():
            self._send_html(404, error_page.read_text(encoding="utf-8"))
            return None
        self.send_error(404, "File not found")
        return None

    def send_head(self):
        path_obj = Path(self.translate_path(self.path))
        if path_obj.is_dir():
            index_path = path_obj / "index.html"
            if not index_path.exists():
                return self._serve_404()
            path_obj = index_path
        elif not path_obj.exists():
            return self._serve_404()

        if path_obj.suffix == ".html":
            self._send_html(200, path_obj.read_text(encoding="utf-8"))
            return None
        return super().send_head()


class DevServer:
    """Development server with live reload functionality.

    Attributes:
        site_dir: Root directory of the site.
        config: Site configuration.
        output_dir: Directory the compiled site is served from.
        http_port: Port for the HTTP server.
        ws_port: Port for WebSocket connections.
    """

    def __init__(self, site_dir: Path, http_port: int | None = None, ws_port: int | None = None):
        self.site_dir = site_dir
        self.config = load_config(site_dir)
        self.output_dir = site_dir / self.config["output_dir"]
        self.tmp_dir = (site_dir / self.config["checksums_file"]).parent
        self.http_port = int(http_port or self.config["port"])
        if ws_port is not None:
            self.ws_port = ws_port
        elif http_port is not None:
            self.ws_port = self.http_port + 1
        else:
            self.ws_port = int(self.config["ws_port"])
        self._reload_script = _ReloadHandler.reload_script_template.format(ws_port=self.ws_port)
        self._observer: Observer | None = None
        self._ws_clients: set = set()
        self._loop = asyncio.new_event_loop()
        self._rebuilding = False
        self._last_rebuild_at = 0.0
        self._last_signature: tuple | None = None
        self._debounce_seconds = 0.05

    def start(self) -> None:  # pragma: no cover - integration path
        self.compile()
        self._last_signature = self._compute_signature()
        threading.Thread(target=self._start_http, daemon=True).start()
        threading.Thread(target=self._start_ws, daemon=True).start()
        self._start_watcher()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
        self._loop.call_soon_threadsafe(self._loop.stop)

    def compile(self) -> bool:
        """Compile the site with a fresh Site; return whether it succeeded.

        Errors are reported on stderr and the previous output stays in place.
        """
        try:
            site = Site(self.site_dir)
            reps = site.compile()
            site.store_checksums()
        except ArgusError as exc:
            click.echo(click.style(f"Compilation failed: {exc}", fg="red"), err=True)
            return False
        written = sum(1 for rep in reps if rep.flagged_modified)
        click.echo(f"Compiled {len(reps)} reps ({written} written)")
        return True

    def _start_http(self) -> None:  # pragma: no cover - integration path
        handler_cls = type(
            "_ReloadHandlerWithPort",
            (_ReloadHandler,),
            {"reload_script": self._reload_script},
        )
        handler = functools.partial(handler_cls, directory=str(self.output_dir))
        httpd = ThreadingHTTPServer(("", self.http_port), handler)
        click.echo(f"Serving {self.output_dir} at http://localhost:{self.http_port}")
        httpd.serve_forever()

    def _start_ws(self) -> None:  # pragma: no cover - integration path
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._run_ws_server())
        except OSError as exc:
            click.echo(f"WebSocket server failed to start (port {self.ws_port}): {exc}", err=True)

    async def _run_ws_server(self) -> None:  # pragma: no cover - integration path
        async with websockets.serve(self._ws_handler, "0.0.0.0", self.ws_port):
            await asyncio.Future()

    async def _ws_handler(self, websocket):
        self._ws_clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self._ws_clients.discard(websocket)

    def _broadcast_reload(self):
        message = json.dumps({"type": "reload"})
        asyncio.run_coroutine_threadsafe(self._async_broadcast(message), self._loop)

    async def _async_broadcast(self, message: str):
        stale = set()
        for ws in self._ws_clients:
            try:
                await ws.send(message)
            except websockets.ConnectionClosed:
                stale.add(ws)
        for ws in stale:
            self._ws_clients.discard(ws)

    def _start_watcher(self) -> None:
        handler = _ChangeHandler(self)
        observer = Observer()
        for folder in WATCHED_DIRS:
            watch_path = self.site_dir / folder
            if watch_path.exists():
                observer.schedule(handler, str(watch_path), recursive=True)
        # config.yaml, defaults.yaml and the rules file live at the root
        observer.schedule(handler, str(self.site_dir), recursive=False)
        observer.start()
        self._observer = observer

    def rebuild(self) -> None:
        now = time.time()
        if self._rebuilding or (now - self._last_rebuild_at) < self._debounce_seconds:
            return
        signature = self._compute_signature()
        if signature is not None and signature == self._last_signature:
            return
        self._rebuilding = True
        try:
            click.echo("Change detected; recompiling...")
            if self.compile():
                self._last_signature = signature
                self._broadcast_reload()
        finally:
            self._rebuilding = False
            self._last_rebuild_at = time.time()

    def _compute_signature(self) -> tuple | None:
        entries: list[tuple] = []
        paths = [p for p in sorted(self.site_dir.iterdir()) if p.is_file()]
        for folder in WATCHED_DIRS:
            root = self.site_dir / folder
            if root.exists():
                paths.extend(p for p in sorted(root.rglob("*")) if p.is_file())
        for path in paths:
            try:
                stat = path.stat()
            except OSError:
                continue
            rel = path.relative_to(self.site_dir)
            entries.append((str(rel), stat.st_mtime_ns, stat.st_size))
        return tuple(entries) if entries else None


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, server: DevServer):
        super().__init__()
        self.server = server

    def on_any_event(self, event):
        if event.is_directory:
            return
        path = Path(event.src_path)
        # Our own writes must not retrigger a compile
        for ignored in (self.server.output_dir, self.server.tmp_dir):
            try:
                path.relative_to(ignored)
                return
            except ValueError:
                pass
        logger.debug("Source changed: %s", path)
        self.server.rebuild()
