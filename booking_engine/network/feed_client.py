"""
HTTP client for downloading external iCal feeds.

Requests are conditional (If-None-Match / If-Modified-Since) so an unchanged
feed costs a 304 and no parsing. Every download runs against a wall-clock
deadline: requests' timeouts only bound the connect and the gap between
bytes, so a watchdog shuts the socket down at the deadline and a
slow-dripping server cannot hold the body read open.
"""

from __future__ import annotations

import socket
import threading
import time
from contextlib import suppress
from dataclasses import dataclass
from typing import Optional

import requests
import structlog

from booking_engine.config import MAX_FEED_BYTES, SYNC_TIMEOUT_SECONDS
from booking_engine.errors import FeedFetchError, FeedTimeoutError
from booking_engine.metrics import feed_latency, feed_requests

logger = structlog.get_logger(__name__)

USER_AGENT = "booking-engine-calendar-sync/1.0"
CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class FeedResponse:
    status_code: int
    body: Optional[bytes]
    etag: Optional[str]
    last_modified: Optional[str]
    response_time_ms: int

    @property
    def not_modified(self) -> bool:
        return self.status_code == 304


def _cut_off(res: requests.Response, expired: threading.Event) -> None:
    """Watchdog: shut the socket down so a read blocked on a slow server returns."""
    expired.set()
    connection = getattr(res.raw, "connection", None)
    sock = getattr(connection, "sock", None)
    if sock is None:
        return
    with suppress(OSError):
        sock.shutdown(socket.SHUT_RDWR)


def build_conditional_headers(
    etag: Optional[str] = None, last_modified: Optional[str] = None
) -> dict[str, str]:
    """
    Build request headers, adding validators from the previous response.

    Args:
        etag (Optional[str]): ETag stored from the last 200 response.
        last_modified (Optional[str]): Last-Modified stored from the last 200 response.

    Returns:
        dict[str, str]: Request headers
    """
    headers = {"Accept": "text/calendar, */*;q=0.5", "User-Agent": USER_AGENT}
    if etag:
        headers["If-None-Match"] = etag
    if last_modified:
        headers["If-Modified-Since"] = last_modified
    return headers


def fetch_feed(
    url: str,
    etag: Optional[str] = None,
    last_modified: Optional[str] = None,
    timeout: float = SYNC_TIMEOUT_SECONDS,
    max_bytes: int = MAX_FEED_BYTES,
) -> FeedResponse:
    """
    Download an iCal feed with a conditional GET.

    Args:
        url (str): Feed URL.
        etag (Optional[str]): Stored ETag, sent as If-None-Match.
        last_modified (Optional[str]): Stored Last-Modified, sent as If-Modified-Since.
        timeout (float): Deadline in seconds for the whole download.
        max_bytes (int): Largest body accepted.

    Returns:
        FeedResponse: 200 with body, or 304 with no body

    Raises:
        FeedTimeoutError: The deadline passed before the body was complete.
        FeedFetchError: Network failure, non-2xx/304 status or oversize body.
    """
    headers = build_conditional_headers(etag, last_modified)
    start_time = time.monotonic()
    deadline = start_time + timeout

    try:
        with requests.get(
            url, headers=headers, timeout=(timeout, timeout), stream=True, allow_redirects=True
        ) as res:
            feed_requests.labels(status_code=str(res.status_code)).inc()

            if res.status_code == 304:
                elapsed_ms = int((time.monotonic() - start_time) * 1000)
                logger.info("feed_not_modified", url=url, response_time_ms=elapsed_ms)
                return FeedResponse(304, None, etag, last_modified, elapsed_ms)

            if res.status_code >= 400:
                raise FeedFetchError(
                    f"Feed request failed with HTTP {res.status_code}",
                    status_code=res.status_code,
                )

            chunks: list[bytes] = []
            size = 0
            expired = threading.Event()
            watchdog = threading.Timer(
                max(deadline - time.monotonic(), 0.0), _cut_off, args=(res, expired)
            )
            watchdog.daemon = True
            watchdog.start()
            try:
                for chunk in res.iter_content(chunk_size=CHUNK_SIZE):
                    if expired.is_set() or time.monotonic() > deadline:
                        raise FeedTimeoutError(
                            f"Feed download exceeded {timeout:.0f}s", status_code=res.status_code
                        )
                    size += len(chunk)
                    if size > max_bytes:
                        raise FeedFetchError(
                            f"Feed exceeds {max_bytes} bytes", status_code=res.status_code
                        )
                    chunks.append(chunk)
            except OSError as err:
                # requests' exceptions are OSErrors; a read cut off by the
                # watchdog surfaces as one of them (or a plain socket error)
                if expired.is_set():
                    feed_requests.labels(status_code="timeout").inc()
                    raise FeedTimeoutError(
                        f"Feed download exceeded {timeout:.0f}s", status_code=res.status_code
                    ) from err
                raise
            finally:
                watchdog.cancel()

            if expired.is_set():
                # Without Content-Length the cut-off looks like a clean end of body
                raise FeedTimeoutError(
                    f"Feed download exceeded {timeout:.0f}s", status_code=res.status_code
                )

            elapsed_ms = int((time.monotonic() - start_time) * 1000)
            logger.debug("feed_downloaded", url=url, bytes=size, response_time_ms=elapsed_ms)
            return FeedResponse(
                status_code=res.status_code,
                body=b"".join(chunks),
                etag=res.headers.get("ETag"),
                last_modified=res.headers.get("Last-Modified"),
                response_time_ms=elapsed_ms,
            )

    except requests.Timeout as err:
        feed_requests.labels(status_code="timeout").inc()
        raise FeedTimeoutError(f"Feed request timed out: {err}") from err
    except requests.RequestException as err:
        feed_requests.labels(status_code="error").inc()
        raise FeedFetchError(f"Feed request failed: {err}") from err
    finally:
        feed_latency.observe(time.monotonic() - start_time)
