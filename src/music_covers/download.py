from __future__ import annotations

from typing import Optional

import requests

from .errors import DownloadError


USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


def fetch_image(
    url: str,
    session: Optional[requests.Session] = None,
    timeout: Optional[float] = None,
) -> bytes:
    client = session or requests
    try:
        response = client.get(url, headers={"User-Agent": USER_AGENT}, timeout=timeout)
    except requests.RequestException as exc:
        raise DownloadError(f"request failed for {url}: {exc}") from exc

    if not response.ok:
        raise DownloadError(f"HTTP {response.status_code} for {url}")
    if not response.content:
        raise DownloadError(f"downloaded data is empty: {url}")
    return response.content
