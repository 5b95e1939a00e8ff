#!/usr/bin/env python3
"""Check every site page over HTTP and report status and <title> matches."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from sitecheck.config.settings import DEFAULT_ENV_FILE, SettingsError, load_settings  # noqa: E402
from sitecheck.data.catalog import SITE_PAGES  # noqa: E402
from sitecheck.health.checks import ReadinessTimeoutError, check_pages, wait_for_http  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--env-file", default=DEFAULT_ENV_FILE, type=Path, help="Path to environment file")
    parser.add_argument("--base-url", help="Override BASE_URL from the environment file")
    parser.add_argument("--timeout", type=float, default=10.0, help="Per-request timeout in seconds")
    parser.add_argument("--verbose", "-v", action="store_true", help="List failure details again at the end")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    try:
        settings = load_settings(args.env_file)
    except SettingsError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return 1

    base_url = (args.base_url or settings.base_url or "").rstrip("/")
    if not base_url:
        print("❌ BASE_URL not set; pass --base-url or define it in the env file", file=sys.stderr)
        return 1

    print(f"🔍 Running page checks against {base_url}")
    print()
    try:
        endpoint = settings.health_endpoint_for(base_url, explicit=bool(args.base_url))
        wait_for_http("site", endpoint, timeout=settings.readiness_timeout)
    except ReadinessTimeoutError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return 1

    results = check_pages(base_url, SITE_PAGES, timeout=args.timeout)
    for result in results:
        status = "✓" if result.healthy else "✗"
        print(f"  {status} {result.name}: {result.detail} ({result.elapsed:.2f}s)")
    print()

    failed = [result for result in results if not result.healthy]
    if failed:
        print(f"❌ {len(failed)}/{len(results)} pages failed")
        if args.verbose:
            for result in failed:
                print(f"   - {result.name}: {result.detail}")
        return 1

    print(f"✅ All {len(results)} pages passed")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
