"""Blocking, one-at-a-time verification of candidate URLs.

Each URL gets exactly one GET. Failures are recorded on the returned
``Outcome`` and never stop the rest of the batch.
"""

import enum
import logging
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

import httpx

__all__ = [
    "DEFAULT_TIMEOUT",
    "ErrorKind",
    "Outcome",
    "Summary",
    "build_client",
    "check_url",
    "classify_error",
    "search_lines",
    "verify_url",
    "verify_urls",
]

DEFAULT_TIMEOUT: float = 10.0
log = logging.getLogger(__name__)


class ErrorKind(enum.Enum):
    INVALID_URL = "invalid_url"
    CONNECTION_FAILED = "connection_failed"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    REQUEST_FAILED = "request_failed"


@dataclass(frozen=True)
class Outcome:
    url: str
    matches: tuple[str, ...] = ()
    searched: bool = False
    error: ErrorKind | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def matched(self) -> bool:
        return self.ok and bool(self.matches)

    @classmethod
    def failure(cls, url: str, exc: Exception) -> "Outcome":
        return cls(url=url, error=classify_error(exc), detail=str(exc))


@dataclass(frozen=True)
class Summary:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    matched: int = 0

    @classmethod
    def from_outcomes(cls, outcomes: Sequence[Outcome]) -> "Summary":
        succeeded = sum(1 for o in outcomes if o.ok)
        return cls(
            total=len(outcomes),
            succeeded=succeeded,
            failed=len(outcomes) - succeeded,
            matched=sum(1 for o in outcomes if o.matched),
        )


def search_lines(body: str, search_term: str) -> tuple[str, ...]:
    """Every line of ``body`` containing ``search_term`` (case-sensitive)."""
    return tuple(ln for ln in body.splitlines() if search_term in ln)


def check_url(url: str) -> None:
    """Raise ``httpx.InvalidURL`` unless ``url`` is an absolute http(s) URL."""
    parsed = httpx.URL(url)
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise httpx.InvalidURL(f"Not an absolute http(s) URL: {url!r}")


def classify_error(exc: Exception) -> ErrorKind:
    if isinstance(exc, (httpx.InvalidURL, httpx.UnsupportedProtocol)):
        return ErrorKind.INVALID_URL
    if isinstance(exc, httpx.ConnectError):
        return ErrorKind.CONNECTION_FAILED
    if isinstance(exc, httpx.TimeoutException):
        return ErrorKind.TIMEOUT
    if isinstance(exc, httpx.HTTPStatusError):
        return ErrorKind.HTTP_STATUS
    return ErrorKind.REQUEST_FAILED


def scan_response(url: str, body: str, search_term: str | None) -> Outcome:
    if not search_term:
        log.debug("Returning the result without searching - %s", url)
        return Outcome(url=url)

    log.debug("Looking for %r in %s", search_term, url)
    matches = search_lines(body, search_term)
    for ln in matches:
        log.debug("Found: %s", ln)
    return Outcome(url=url, matches=matches, searched=True)


def build_client(timeout: float = DEFAULT_TIMEOUT) -> httpx.Client:
    return httpx.Client(http2=True, follow_redirects=True, timeout=timeout)


def verify_url(client: httpx.Client, url: str, search_term: str | None) -> Outcome:
    log.debug("Retrieving url: %s", url)
    try:
        check_url(url)
        r = client.get(url)
        r.raise_for_status()
        body = r.text
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        log.error("Error attempting to fetch %s - %s", url, str(e))
        return Outcome.failure(url, e)
    return scan_response(url, body, search_term)


def verify_urls(
    urls: Iterable[str],
    search_term: str | None,
    client: httpx.Client | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Iterator[Outcome]:
    """Verify ``urls`` in order, yielding one ``Outcome`` per URL.

    ``timeout`` only applies to the client built here when ``client`` is
    None; a supplied client keeps its own timeout.
    """
    if client is None:
        with build_client(timeout) as own_client:
            yield from verify_urls(urls, search_term, client=own_client)
        return

    for url in urls:
        log.debug("Processing URL: %s", url)
        outcome = verify_url(client, url, search_term)
        log.debug("Result: %s", outcome)
        yield outcome
