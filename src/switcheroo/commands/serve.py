"""serve — sample HTTP server that restarts without dropping connections.

Each new ``switcheroo serve`` process binds a private port, answers
``GET /?s=<ms>`` (sleeps, then replies ``OK``), checks that it is serving,
takes over the incoming port, and terminates the previous generation.
On SIGTERM it stops accepting and lets in-flight requests finish.
"""

from __future__ import annotations

import logging
import signal
import threading
import time
import urllib.error
import urllib.request
from collections.abc import Callable
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlparse

import click

from switcheroo.domain.errors import SwitcherooError
from switcheroo.services.result import ServiceError, ServiceResult

if TYPE_CHECKING:
    import socket

    from switcheroo.commands._context import AppContext
    from switcheroo.config.models import ServeConfig
    from switcheroo.services.handover import Handover

logger = logging.getLogger(__name__)


class SleepHandler(BaseHTTPRequestHandler):
    """Sleep for ``s`` milliseconds, then answer ``OK``."""

    server: SampleServer

    def do_GET(self) -> None:  # noqa: N802
        self.server.count_request()
        delay = parse_qs(urlparse(self.path).query).get("s", [""])[0]
        if delay:
            if not delay.isdecimal():
                self.send_error(400, f"invalid s={delay!r}")
                return
            time.sleep(int(delay) / 1000)
        body = b"OK"
        self.send_response(200)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        logger.debug(format, *args)


class SampleServer(ThreadingHTTPServer):
    """ThreadingHTTPServer on an already-bound listener.

    Request threads are joined on close, so in-flight requests complete.
    """

    daemon_threads = False
    block_on_close = True

    def __init__(self, listener: socket.socket) -> None:
        super().__init__(listener.getsockname()[:2], SleepHandler, bind_and_activate=False)
        self.socket.close()
        self.socket = listener
        self.requests_served = 0
        self._lock = threading.Lock()

    def count_request(self) -> None:
        with self._lock:
            self.requests_served += 1


def wait_until_serving(url: str, *, attempts: int, interval: float) -> bool:
    """Poll *url* until it answers 200, at most *attempts* times."""
    for i in range(attempts):
        if i > 0:
            time.sleep(interval)
        try:
            with urllib.request.urlopen(url, timeout=1) as resp:
                if resp.status == 200:
                    return True
        except (urllib.error.URLError, OSError):
            continue
    return False


def run_sample_server(
    handover: Handover,
    config: ServeConfig,
    stop: threading.Event,
    *,
    on_ready: Callable[[ServiceResult], None] | None = None,
) -> ServiceResult:
    """Serve on the handover listener, finalize, and block until *stop* is set."""
    op = "serve"
    server = SampleServer(handover.listener)
    thread = threading.Thread(target=server.serve_forever, name="switcheroo-serve", daemon=True)
    thread.start()
    logger.info("now accepting HTTP requests on port %d", handover.port)

    host = config.host or "127.0.0.1"
    if not wait_until_serving(
        f"http://{host}:{handover.port}/",
        attempts=config.self_check_attempts,
        interval=config.self_check_interval,
    ):
        server.shutdown()
        server.server_close()
        return ServiceResult(
            ok=False,
            op=op,
            error=ServiceError(
                code="SELF_CHECK_FAILED",
                message=f"server on port {handover.port} did not answer; not finalizing",
                detail={"port": handover.port},
            ),
        )

    result = handover.finalize()
    if not result.ok:
        server.shutdown()
        server.server_close()
        return result
    if on_ready is not None:
        on_ready(result)

    stop.wait()

    logger.info("caught a kill; stopping http server gracefully")
    started = time.monotonic()
    server.shutdown()
    closer = threading.Thread(target=server.server_close, daemon=True)
    closer.start()
    closer.join(config.shutdown_timeout)
    warnings: list[str] = []
    if closer.is_alive():
        warnings.append(f"requests still running after {config.shutdown_timeout:.0f}s")
    elapsed = time.monotonic() - started

    return ServiceResult(
        ok=True,
        op=op,
        data={
            "port": handover.port,
            "requests_served": server.requests_served,
            "shutdown_seconds": round(elapsed, 3),
        },
        warnings=warnings,
    )


@click.command(
    epilog="""\
\b
Examples:
  # Serve on :9999 for network and localhost traffic, via sudo iptables
  switcheroo --namespace demo --incoming-port 9999 --network --loopback --sudo serve

\b
  # Start another generation; the previous one gets SIGTERM once this one is live
  switcheroo --namespace demo --incoming-port 9999 --network --loopback --sudo serve""",
)
@click.pass_obj
def serve(app: AppContext) -> None:
    """Run the sample HTTP server and take over the incoming port."""
    config = app.settings.serve
    try:
        handover = app.service.begin(host=config.host)
    except SwitcherooError as exc:
        app.emit(ServiceResult(ok=False, op="begin", error=ServiceError.from_exception(exc)))
        return

    stop = threading.Event()
    for signum in (signal.SIGINT, signal.SIGTERM):
        signal.signal(signum, lambda *_: stop.set())

    app.emit(run_sample_server(handover, config, stop, on_ready=app.emit))
