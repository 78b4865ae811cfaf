"""HTTP server for the browser client: open-file buffers, health probe and event stream."""

from __future__ import annotations

import argparse
import json
import select
import signal
import socket
import sys
import threading
from enum import Enum
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Optional, Tuple
from urllib.parse import SplitResult, parse_qs, urlsplit

from simpanan.eventbus import Event, EventBus, EventType
from simpanan.openfile import (
    AlreadyOpenError,
    BufferStore,
    BufferStoreError,
    EmptyPathError,
    FileNotOpenError,
    NotSimpFileError,
    PathNotFoundError,
)

# S=7 I=4 M=6 P=7 on a phone keypad.
DEFAULT_PORT = 7467
DEFAULT_HOST = "127.0.0.1"
SERVER_NAME = "simpanan-webui"

_POLL_INTERVAL = 0.2
_SHUTDOWN_GRACE = 5.0

_Response = Optional[Tuple[int, Any]]


class ServerStatus(str, Enum):
    """Lifecycle of the web UI server."""

    STARTING = "starting"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


class LaunchAbortedError(RuntimeError):
    """The server could not bind its port."""


class _BadRequest(Exception):
    """The request body was not the JSON object the endpoint expects."""


def _status_for(exc: BufferStoreError) -> int:
    if isinstance(exc, (NotSimpFileError, EmptyPathError)):
        return 400
    if isinstance(exc, (PathNotFoundError, FileNotOpenError)):
        return 404
    if isinstance(exc, AlreadyOpenError):
        return 409
    return 500


def _field(data: dict[str, Any], name: str, kind: type, default: Any) -> Any:
    value = data.get(name)
    if value is None:
        return default
    if kind is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise _BadRequest(name)
    elif not isinstance(value, kind):
        raise _BadRequest(name)
    return value


class _HTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    allow_reuse_address = sys.platform != "win32"

    def __init__(self, address: tuple[str, int], app: Server) -> None:
        self.app = app
        super().__init__(address, _Handler)


class _Handler(BaseHTTPRequestHandler):
    server: _HTTPServer
    server_version = SERVER_NAME

    def log_message(self, format: str, *args: Any) -> None:
        pass

    @property
    def app(self) -> Server:
        return self.server.app

    def do_GET(self) -> None:
        self._dispatch("GET")

    def do_POST(self) -> None:
        self._dispatch("POST")

    def do_PUT(self) -> None:
        self._dispatch("PUT")

    def do_DELETE(self) -> None:
        self._dispatch("DELETE")

    def do_PATCH(self) -> None:
        self._dispatch("PATCH")

    def _dispatch(self, method: str) -> None:
        url = urlsplit(self.path)
        route = _ROUTES.get(url.path)
        try:
            if route is None:
                self._send_text(404, "404 page not found\n")
                return
            allowed, action = route
            if allowed is not None and method != allowed:
                self._send_empty(405)
                return
            try:
                result = action(self, url)
            except _BadRequest:
                result = (400, {"error": "invalid JSON body"})
            except BufferStoreError as exc:
                result = (_status_for(exc), {"error": str(exc)})
            except OSError as exc:
                result = (500, {"error": str(exc)})
            if result is not None:
                self._send_json(*result)
        except (BrokenPipeError, ConnectionResetError):
            self.close_connection = True

    def _send_empty(self, status: int) -> None:
        self.send_response(status)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def _send_text(self, status: int, text: str) -> None:
        body = text.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("X-Content-Type-Options", "nosniff")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_json(self, status: int, value: Any) -> None:
        body = (json.dumps(value) + "\n").encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _read_json(self) -> dict[str, Any]:
        length = int(self.headers.get("Content-Length") or 0)
        raw = self.rfile.read(length) if length > 0 else b""
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise _BadRequest("body") from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise _BadRequest("body")
        return data

    def _read_path(self) -> str:
        return _field(self._read_json(), "path", str, "")

    def _health(self, url: SplitResult) -> _Response:
        return 200, {
            "server": SERVER_NAME,
            "status": self.app.status().value,
            "port": self.app.port,
        }

    def _list_files(self, url: SplitResult) -> _Response:
        store = self.app.buffers
        return 200, {
            "files": [f.to_dict() for f in store.list_files()],
            "active": store.active,
        }

    def _get_file(self, url: SplitResult) -> _Response:
        path = parse_qs(url.query).get("path", [""])[0]
        open_file = self.app.buffers.get(path)
        if open_file is None:
            raise FileNotOpenError()
        return 200, open_file.to_dict()

    def _open(self, url: SplitResult) -> _Response:
        path = self._read_path()
        payload = self.app.buffers.open(path).to_dict()
        self.app.events.publish(Event(EventType.FILE_OPENED, payload))
        return 200, payload

    def _close(self, url: SplitResult) -> _Response:
        path = self._read_path()
        self.app.buffers.close(path)
        self.app.events.publish(Event(EventType.FILE_CLOSED, {"path": path}))
        return 200, {"status": "closed"}

    def _save(self, url: SplitResult) -> _Response:
        path = self._read_path()
        self.app.buffers.save(path)
        open_file = self.app.buffers.get(path)
        payload = None if open_file is None else open_file.to_dict()
        self.app.events.publish(Event(EventType.FILE_SAVED, payload))
        return 200, payload

    def _edit(self, url: SplitResult) -> _Response:
        data = self._read_json()
        path = _field(data, "path", str, "")
        contents = _field(data, "buffer_contents", str, "")
        cursor = _field(data, "cursor_byte_offset", int, 0)
        payload = self.app.buffers.edit(path, contents, cursor).to_dict()
        self.app.events.publish(Event(EventType.BUFFER_UPDATED, payload))
        return 200, payload

    def _switch_active(self, url: SplitResult) -> _Response:
        path = self._read_path()
        self.app.buffers.switch_active(path)
        self.app.events.publish(Event(EventType.ACTIVE_SWITCHED, {"path": path}))
        return 200, {"active": path}

    def _client_gone(self) -> bool:
        try:
            readable, _, _ = select.select([self.connection], [], [], 0)
            if not readable:
                return False
            return self.connection.recv(1, socket.MSG_PEEK) == b""
        except OSError:
            return True

    def _events(self, url: SplitResult) -> _Response:
        """Stream every bus event to the client as server-sent events."""
        app = self.app
        self.close_connection = True
        with app.events.subscribe() as subscription:
            try:
                self.send_response(200)
                self.send_header("Content-Type", "text/event-stream")
                self.send_header("Cache-Control", "no-cache")
                self.end_headers()
                self.wfile.write(b": connected\n\n")
                self.wfile.flush()
                while not app._stopping.is_set():
                    try:
                        event = subscription.get(timeout=_POLL_INTERVAL)
                    except TimeoutError:
                        if self._client_gone():
                            break
                        continue
                    if event is None:
                        break
                    data = json.dumps(event.to_dict())
                    self.wfile.write(f"data: {data}\n\n".encode("utf-8"))
                    self.wfile.flush()
            except OSError:
                pass
        return None


_ROUTES: dict[str, tuple[Optional[str], Callable[[_Handler, SplitResult], _Response]]] = {
    "/health": (None, _Handler._health),
    "/api/files": ("GET", _Handler._list_files),
    "/api/files/get": ("GET", _Handler._get_file),
    "/api/files/open": ("POST", _Handler._open),
    "/api/files/close": ("POST", _Handler._close),
    "/api/files/save": ("POST", _Handler._save),
    "/api/files/edit": ("POST", _Handler._edit),
    "/api/files/switch-active": ("POST", _Handler._switch_active),
    "/api/events": ("GET", _Handler._events),
}


class Server:
    """The long-lived web UI process bound to one local port."""

    def __init__(self, port: int = DEFAULT_PORT, host: str = DEFAULT_HOST) -> None:
        self.port = port
        self.host = host
        self.buffers = BufferStore()
        self.events = EventBus()
        self._status = ServerStatus.STARTING
        self._status_lock = threading.Lock()
        self._shutdown_lock = threading.Lock()
        self._httpd: _HTTPServer | None = None
        self._serve_thread: threading.Thread | None = None
        self._serve_error: BaseException | None = None
        self._wake = threading.Event()
        self._stopping = threading.Event()
        self._signalled = False

    def status(self) -> ServerStatus:
        with self._status_lock:
            return self._status

    def _set_status(self, status: ServerStatus) -> None:
        with self._status_lock:
            self._status = status

    def start(self) -> None:
        """Bind the port and serve until SIGINT, SIGTERM or shutdown().

        Raises LaunchAbortedError when the port cannot be bound.
        """
        address = f"{self.host}:{self.port}"
        try:
            httpd = _HTTPServer((self.host, self.port), self)
        except OSError as exc:
            raise LaunchAbortedError(f"LaunchAborted: cannot bind {address}: {exc}") from exc
        self._httpd = httpd
        self.port = httpd.server_address[1]

        try:
            self.buffers.load_recovery()
        except (OSError, ValueError) as exc:
            print(f"warning: could not restore previous session: {exc}", file=sys.stderr)

        self._serve_thread = threading.Thread(
            target=self._serve, name="simpanan-webui-serve", daemon=True
        )
        self._serve_thread.start()
        self._set_status(ServerStatus.RUNNING)
        print(f"simpanan webui running at http://localhost:{self.port}", file=sys.stderr)
        print("press Ctrl-C to stop.", file=sys.stderr)

        restore = self._install_signal_handlers()
        try:
            while not self._wake.wait(_POLL_INTERVAL):
                pass
        finally:
            restore()

        if self._serve_error is not None and not self._stopping.is_set():
            raise self._serve_error
        if self._signalled:
            self.shutdown()

    def _serve(self) -> None:
        assert self._httpd is not None
        try:
            self._httpd.serve_forever(poll_interval=_POLL_INTERVAL)
        except Exception as exc:
            self._serve_error = exc
        finally:
            self._wake.set()

    def _install_signal_handlers(self) -> Callable[[], None]:
        if threading.current_thread() is not threading.main_thread():
            return lambda: None

        def handle(signum: int, frame: object) -> None:
            self._signalled = True
            self._wake.set()

        previous = {
            sig: signal.signal(sig, handle) for sig in (signal.SIGINT, signal.SIGTERM)
        }

        def restore() -> None:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

        return restore

    def shutdown(self) -> None:
        """Flush the recovery file and stop serving. Later calls do nothing."""
        with self._shutdown_lock:
            if self._httpd is None or self._stopping.is_set():
                return
            self._set_status(ServerStatus.SHUTTING_DOWN)
            self._stopping.set()
            print("\nshutting down…", file=sys.stderr)
            try:
                self.buffers.flush_recovery()
            except OSError as exc:
                print(f"warning: could not flush recovery file: {exc}", file=sys.stderr)
            if self._serve_thread is not None:
                self._httpd.shutdown()
                self._serve_thread.join(_SHUTDOWN_GRACE)
            self._httpd.server_close()
            self._wake.set()


def main(argv: list[str] | None = None) -> int:
    """Run the web UI server until interrupted."""
    parser = argparse.ArgumentParser(
        prog="simpanan-webui", description="Browser client for simpanan query files."
    )
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="port to listen on")
    args = parser.parse_args(argv)
    server = Server(args.port)
    try:
        server.start()
    except LaunchAbortedError as exc:
        print(exc, file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"server failed: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())