"""Container health probe.

Exits 0 when the API answers ``GET /api/health`` with status ``online``,
1 otherwise. Meant for Docker ``HEALTHCHECK`` lines:

    HEALTHCHECK CMD playground-healthcheck --url http://localhost:3001/api/health
"""

import argparse
import logging
import os
import sys

import requests

logger = logging.getLogger("playground.healthcheck")


def default_url() -> str:
    port = os.getenv("PORT", "3001")
    return f"http://localhost:{port}/api/health"


def check(url: str, timeout: float = 5.0) -> bool:
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        logger.error("healthcheck.request_failed url=%s err=%r", url, e)
        return False

    if response.status_code != 200:
        logger.error("healthcheck.bad_status url=%s status=%s", url, response.status_code)
        return False

    try:
        data = response.json()
    except ValueError:
        logger.error("healthcheck.invalid_json url=%s", url)
        return False

    if not isinstance(data, dict) or data.get("status") != "online":
        logger.error("healthcheck.not_online url=%s body=%r", url, data)
        return False

    logger.info("healthcheck.ok url=%s", url)
    return True


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for the health probe."""
    parser = argparse.ArgumentParser(
        description="Probe the execution API health endpoint.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--url", default=default_url(), help="Health endpoint URL (default: localhost:$PORT)")
    parser.add_argument("--timeout", type=float, default=5.0, help="Request timeout in seconds")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(message)s")
    return 0 if check(args.url, timeout=args.timeout) else 1


if __name__ == "__main__":
    sys.exit(main())
