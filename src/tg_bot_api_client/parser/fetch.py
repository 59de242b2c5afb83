"""Conditional download of the Bot API documentation page."""

import logging
from dataclasses import dataclass
from pathlib import Path

import requests

from tg_bot_api_client.errors import TransportError

logger = logging.getLogger(__name__)

DOCS_URL = "https://core.telegram.org/bots/api"


@dataclass(frozen=True)
class FetchedPage:
    html: str
    etag: str | None = None


def read_etag(path: Path) -> str | None:
    if not path.exists():
        return None
    return path.read_text(encoding="utf-8").strip() or None


def fetch_documentation(url: str = DOCS_URL, etag: str | None = None,
                        timeout: float = 30.0) -> FetchedPage | None:
    """Download the documentation page.

    Returns None when the server reports the page unchanged since ``etag``.
    """
    headers = {"If-None-Match": etag} if etag else {}
    try:
        response = requests.get(url, headers=headers, timeout=timeout)
    except requests.RequestException as e:
        raise TransportError(f"Failed to fetch the Bot API page: {e}") from e

    if response.status_code == 304:
        logger.info("Documentation at %s is unchanged", url)
        return None
    if not 200 <= response.status_code < 300:
        raise TransportError(f"Failed to fetch the Bot API page: HTTP {response.status_code}")
    return FetchedPage(html=response.text, etag=response.headers.get("ETag"))
