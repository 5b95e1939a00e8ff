#!/usr/bin/env python3
"""Run a background static HTTP server for a local checkout of the site."""
from __future__ import annotations

import argparse
import json
import os
import signal
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, Dict

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from sitecheck.config.settings import DEFAULT_ENV_FILE, SettingsError, load_settings  # noqa: E402
from sitecheck.health.checks import ReadinessTimeoutError, wait_for_http  # noqa: E402
from sitecheck.utils.logger import get_logger  # noqa: E402

STATE_DIR = ROOT_DIR / ".site-cache"
STATE_FILE = STATE_DIR / "site_server.json"
LOG_DIR = ROOT_DIR / "logs"
DEFAULT_PORT = 8080

logger = get_logger("manage_site_server")


def read_state() -> Dict[str, Any]:
    if not STATE_FILE.exists():
        return {}
    try:
        return json.loads(STATE_FILE.read_text())
    except json.JSONDecodeError:
        return {}


def write_state(data: Dict[str, Any]) -> None:
    STATE_DIR.mkdir(parents=True, exist_ok=True)
    STATE_FILE.write_text(json.dumps(data, indent=2))


def remove_state() -> None:
    if STATE_FILE.exists():
        STATE_FILE.unlink()


def _alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def start(env_file: Path, port: int, timeout: float) -> None:
    try:
        settings = load_settings(env_file)
    except SettingsError as exc:
        logger.error("%s", exc)
        raise SystemExit(1)

    if settings.site_dir is None or not settings.site_dir.is_dir():
        logger.error("SITE_DIR must point at the site checkout (got %s)", settings.site_dir)
        raise SystemExit(1)

    state = read_state()
    if state.get("pid") and _alive(state["pid"]):
        logger.warning("Site server already running (pid=%s, url=%s)", state["pid"], state.get("url"))
        raise SystemExit(1)

    port = port or settings.site_port or DEFAULT_PORT
    url = f"http://{settings.site_host}:{port}"
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_path = LOG_DIR / "site-server.log"
    command = [
        sys.executable,
        "-m",
        "http.server",
        str(port),
        "--bind",
        settings.site_host,
        "--directory",
        str(settings.site_dir.resolve()),
    ]
    logger.info("Starting site server: %s", " ".join(command))
    with log_path.open("ab") as log_file:
        process = subprocess.Popen(command, stdout=log_file, stderr=subprocess.STDOUT)
    write_state({"pid": process.pid, "url": url, "log": str(log_path), "site_dir": str(settings.site_dir)})

    try:
        status = wait_for_http("site", url, timeout=timeout)
    except ReadinessTimeoutError as exc:
        logger.error("Site server failed readiness: %s", exc)
        stop()
        raise SystemExit(1)
    logger.info("Site server running at %s (%s); export BASE_URL=%s to target it", url, status.detail, url)


def stop() -> None:
    state = read_state()
    pid = state.get("pid")
    if not pid:
        logger.info("No running site server recorded; nothing to stop.")
        return
    try:
        logger.info("Stopping site server (pid=%s)", pid)
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        logger.warning("Site server process %s not found", pid)
    except PermissionError:
        logger.error("Permission denied stopping site server (pid=%s)", pid)

    deadline = time.time() + 10
    while time.time() < deadline and _alive(pid):
        time.sleep(0.5)
    remove_state()
    logger.info("Site server stopped.")


def status() -> None:
    state = read_state()
    if not state:
        logger.info("Site server is not running.")
        return
    pid = state.get("pid")
    logger.info(
        "Site server: pid=%s alive=%s url=%s dir=%s log=%s",
        pid,
        bool(pid) and _alive(pid),
        state.get("url"),
        state.get("site_dir"),
        state.get("log"),
    )


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("action", choices={"start", "stop", "status"}, help="Action to perform")
    parser.add_argument("--env-file", default=DEFAULT_ENV_FILE, type=Path, help="Environment file for configuration")
    parser.add_argument("--port", type=int, default=0, help=f"Port to serve on (default SITE_PORT or {DEFAULT_PORT})")
    parser.add_argument("--timeout", type=float, default=15.0, help="Seconds to wait for readiness on start")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    if args.action == "start":
        start(args.env_file, args.port, args.timeout)
    elif args.action == "stop":
        stop()
    else:
        status()


if __name__ == "__main__":
    main()
