import re
import traceback
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple
from urllib.parse import urlparse

from . import __version__
from .metrics import exposition
from .runtime import Candidate, FunctionRegistry, build_event, invoke_function, wants_body, write_log
from .types import Context, DEFAULT_PORT, UserFunction
from .utils import BodyReadError, ConfigError, DEFAULT_HOST, load_config


MAX_CHUNK_LINE = 65537
CHUNK_SIZE = re.compile(rb"[0-9a-fA-F]+")
CRLF = (b"\r\n", b"\n")


class KubelessRequestHandler(BaseHTTPRequestHandler):
    server_version = f"kubeless/{__version__}"

    def log_message(self, format: str, *args) -> None:
        # Suppress access logs when server.quiet is True
        if getattr(self.server, "quiet", False):
            return
        return super().log_message(format, *args)

    def log_error(self, format: str, *args) -> None:
        # Errors are always written, even when access logs are quiet
        BaseHTTPRequestHandler.log_message(self, format, *args)

    def _read_body(self) -> bytes:
        try:
            if "chunked" in self.headers.get("Transfer-Encoding", "").lower():
                return self._read_chunked()
            raw_length = self.headers.get("Content-Length")
            if raw_length is None:
                return b""
            try:
                length = int(raw_length)
            except ValueError:
                raise BodyReadError(f"invalid Content-Length {raw_length!r}") from None
            if length < 0:
                raise BodyReadError(f"invalid Content-Length {raw_length!r}")
            data = self.rfile.read(length)
            if len(data) != length:
                raise BodyReadError(f"connection closed after {len(data)} of {length} body bytes")
            return data
        except OSError as e:
            raise BodyReadError(str(e)) from e

    def _read_chunked(self) -> bytes:
        chunks = []
        while True:
            line = self.rfile.readline(MAX_CHUNK_LINE)
            if not line:
                raise BodyReadError("connection closed inside chunked body")
            size_field = line.split(b";", 1)[0].strip()
            if not CHUNK_SIZE.fullmatch(size_field):
                raise BodyReadError(f"invalid chunk size {size_field!r}")
            size = int(size_field, 16)
            if size == 0:
                # discard trailers
                while self.rfile.readline(MAX_CHUNK_LINE) not in CRLF + (b"",):
                    pass
                return b"".join(chunks)
            chunk = self.rfile.read(size)
            if len(chunk) != size:
                raise BodyReadError("connection closed inside chunk")
            chunks.append(chunk)
            if self.rfile.readline(MAX_CHUNK_LINE) not in CRLF:
                raise BodyReadError("chunk data not followed by CRLF")

    def _send(self, status: int, headers: Mapping[str, str], body: bytes) -> None:
        self.send_response(status)
        for k, v in headers.items():
            self.send_header(k, v)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if body and self.command != "HEAD":
            self.wfile.write(body)

    def _dispatch(self) -> None:
        server: KubelessServer = self.server  # type: ignore[assignment]
        body = None
        if wants_body(self.command):
            try:
                body = self._read_body()
            except BodyReadError as e:
                self.close_connection = True
                self.log_error("could not read request body: %s", e)
                self._send(500, {"Content-Type": "text/plain"}, b"Internal Server Error")
                return

        event = build_event(self.command, self.headers, body)
        headers: Dict[str, str] = {}
        try:
            status, out_body = 200, invoke_function(server.function, event, server.context)
        except Exception as e:
            self.log_error(
                "function %s raised an exception:\n%s",
                server.context.function_name,
                traceback.format_exc().rstrip(),
            )
            status, out_body = 500, f"Error: {e}".encode()
            headers["Content-Type"] = "text/plain"

        if server.log_path is not None:
            try:
                write_log(server.log_path, event, server.context, status, out_body)
            except OSError as e:
                self.log_error("could not write invocation log %s: %s", server.log_path, e)

        self._send(status, headers, out_body)

    def _healthz(self) -> None:
        if self.command in ("GET", "HEAD"):
            self._send(200, {"Content-Type": "text/plain"}, b"OK")
        else:
            self._send(400, {"Content-Type": "text/plain"}, b"Bad Request")

    def _metrics(self) -> None:
        if self.command in ("GET", "HEAD"):
            content_type, body = exposition()
            self._send(200, {"Content-Type": content_type}, body)
        else:
            self._send(400, {"Content-Type": "text/plain"}, b"Bad Request")

    def _handle(self) -> None:
        path = urlparse(self.path).path
        if path == "/":
            self._dispatch()
        elif path == "/healthz":
            self._healthz()
        elif path == "/metrics":
            self._metrics()
        else:
            self._send(404, {"Content-Type": "text/plain"}, b"Not Found")

    def do_GET(self):
        self._handle()

    def do_HEAD(self):
        self._handle()

    def do_POST(self):
        self._handle()

    def do_PUT(self):
        self._handle()

    def do_PATCH(self):
        self._handle()

    def do_DELETE(self):
        self._handle()

    def do_OPTIONS(self):
        self._handle()


class KubelessServer(ThreadingHTTPServer):
    """HTTP server bound to a single user function.

    Each request is handled on its own thread. The function, its context and
    the log path are fixed for the lifetime of the server.
    """

    daemon_threads = True

    def __init__(
        self,
        address: Tuple[str, int],
        function: UserFunction,
        context: Context,
        quiet: bool = False,
        log_path: Optional[Path] = None,
    ):
        self.function = function
        self.context = context
        self.quiet = bool(quiet)
        self.log_path = log_path
        super().__init__(address, KubelessRequestHandler)


def make_server(
    function: UserFunction,
    context: Context,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    quiet: bool = False,
    log_path: Optional[Path] = None,
) -> KubelessServer:
    try:
        return KubelessServer((host, port), function, context, quiet=quiet, log_path=log_path)
    except OSError as e:
        raise SystemExit(f"Can not bind to port {port}: {e}") from e


def serve(
    function: UserFunction,
    context: Context,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    quiet: bool = False,
    log_path: Optional[Path] = None,
) -> None:
    httpd = make_server(function, context, host=host, port=port, quiet=quiet, log_path=log_path)
    print(f"kubeless function {context.function_name} listening on http://{host}:{httpd.server_port}", flush=True)
    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        httpd.server_close()


def start(*candidates: Candidate, environ: Optional[Mapping[str, str]] = None) -> None:
    """Expose the candidate selected by ``FUNC_HANDLER`` over HTTP.

    This is the entry point for programs embedding the runtime::

        if __name__ == "__main__":
            kubeless.start(say_hello, say_goodbye)

    Configuration problems terminate the process with a message naming the
    problem, including every available function when the handler is unknown.
    """
    try:
        config = load_config(environ)
        function = FunctionRegistry(candidates).select(config.handler)
    except ConfigError as e:
        raise SystemExit(str(e)) from e
    serve(function, config.context(), host=config.host, port=config.port, log_path=config.log_path)
