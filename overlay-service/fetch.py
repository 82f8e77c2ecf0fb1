"""Fetch background images over HTTP."""

import os

import requests

from errors import FetchFailed
from logger import get_logger

FETCH_TIMEOUT = float(os.getenv("FETCH_TIMEOUT", "20"))  # seconds
MAX_IMAGE_SIZE = int(os.getenv("MAX_IMAGE_SIZE", str(20 * 1024 * 1024)))  # 20 MB

log = get_logger("fetch")


def fetch_bytes(url: str, timeout: float = FETCH_TIMEOUT, max_size: int = MAX_IMAGE_SIZE) -> bytes:
    """GET `url` and return the body. Anything but a 2xx response is FetchFailed."""
    try:
        with requests.get(url, timeout=timeout, stream=True) as r:
            if not r.ok:
                raise FetchFailed(f"Failed to fetch image: {r.status_code} {r.reason}",
                                  {"status": r.status_code})
            chunks = []
            received = 0
            for chunk in r.iter_content(chunk_size=64 * 1024):
                received += len(chunk)
                if received > max_size:
                    raise FetchFailed(
                        f"Image too large: more than {max_size} bytes",
                        {"max_bytes": max_size},
                    )
                chunks.append(chunk)
    except requests.RequestException as e:
        raise FetchFailed(f"Failed to fetch image: {e}") from e

    data = b"".join(chunks)
    log.info("image_fetched", url=url, bytes=len(data))
    return data
