"""Serve a local checkout of the site over HTTP for the duration of a run."""
from __future__ import annotations

import threading
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any

from sitecheck.utils.logger import get_logger

logger = get_logger(__name__)


class SiteServerError(RuntimeError):
    """Raised when the static server cannot be started."""


class _QuietHandler(SimpleHTTPRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        logger.debug("%s - %s", self.address_string(), format % args)


class StaticSiteServer:
    """Threaded static file server bound to ``host:port`` (0 picks a free port).

    Usable as a context manager; ``url`` is only valid while running.
    """

    def __init__(self, root: Path, host: str = "127.0.0.1", port: int = 0) -> None:
        self.root = Path(root)
        self.host = host
        self.port = port
        self._httpd: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._httpd is not None

    @property
    def url(self) -> str:
        if self._httpd is None:
            raise SiteServerError("Static site server is not running")
        host, port = self._httpd.server_address[:2]
        return f"http://{host}:{port}"

    def start(self) -> str:
        if self._httpd is not None:
            return self.url
        if not self.root.is_dir():
            raise SiteServerError(f"Site directory not found: {self.root}")
        if not (self.root / "index.html").exists():
            logger.warning("No index.html in %s; '/' will render a directory listing", self.root)
        handler = partial(_QuietHandler, directory=str(self.root))
        try:
            self._httpd = ThreadingHTTPServer((self.host, self.port), handler)
        except OSError as exc:
            raise SiteServerError(f"Cannot bind {self.host}:{self.port}: {exc}") from exc
        self._httpd.daemon_threads = True
        self._thread = threading.Thread(target=self._httpd.serve_forever, name="static-site", daemon=True)
        self._thread.start()
        logger.info("Serving %s at %s", self.root, self.url)
        return self.url

    def stop(self) -> None:
        if self._httpd is None:
            return
        self._httpd.shutdown()
        self._httpd.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
        logger.info("Stopped static site server for %s", self.root)
        self._httpd = None
        self._thread = None

    def __enter__(self) -> "StaticSiteServer":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


__all__ = ["SiteServerError", "StaticSiteServer"]
