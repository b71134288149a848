"""
Shared HTTP utilities for portal-scraping feeds.

Provides:
- Browser-like default headers with a rotating desktop User-Agent
- request_with_retry: one request on a shared (cookie-carrying) client,
  retried with exponential backoff on transient network errors
- Small text helpers for messy HTML cells
"""

import asyncio
import logging
import random
import re

import httpx

logger = logging.getLogger(__name__)

_USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:134.0) Gecko/20100101 Firefox/134.0",
]


def get_random_ua() -> str:
    """Return a random desktop browser User-Agent."""
    return random.choice(_USER_AGENTS)


def default_headers() -> dict:
    """Return default browser-like headers."""
    return {
        "User-Agent": get_random_ua(),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9,ar;q=0.8",
        "Connection": "keep-alive",
        "Upgrade-Insecure-Requests": "1",
    }


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    retries: int = 1,
    backoff: float = 1.0,
    **kwargs,
) -> httpx.Response:
    """
    Send one request on an existing client, retrying transient failures.

    HTTP error statuses are returned to the caller, not raised; only
    connection problems and timeouts are retried.
    Raises the last network error after all retries are exhausted.
    """
    for attempt in range(retries + 1):
        try:
            return await client.request(method, url, **kwargs)
        except (httpx.ConnectError, httpx.ReadTimeout, httpx.ConnectTimeout) as e:
            if attempt < retries:
                wait = backoff * (2**attempt) + random.uniform(0, 0.5)
                logger.info(f"Retry {attempt + 1}/{retries} for {url} after {wait:.1f}s ({e})")
                await asyncio.sleep(wait)
            else:
                raise
    raise AssertionError("unreachable")


def clean_text(text: str | None) -> str:
    """Collapse whitespace and non-breaking spaces from an HTML cell."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text.replace("\xa0", " ")).strip()


def parse_number(text: str | None) -> float | None:
    """Extract a float from messy text ("24.71° N" -> 24.71). None if absent."""
    if not text:
        return None
    match = re.search(r"-?\d+(?:\.\d+)?", text.replace(",", "."))
    if not match:
        return None
    try:
        return float(match.group(0))
    except ValueError:
        return None
