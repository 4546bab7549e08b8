"""
Libris Backend — Inventory (Book Service) Client
=================================================

What:  Isolates every cross-service call to the Book/Inventory service behind
       three operations: existence check, decrement, increment.
Why:   The Loan service must never fail a request because the Book service is
       slow or down; all of that policy lives here, in one place.
How:   httpx AsyncClient with a configurable timeout. Failures are raised
       internally as DependencyError and absorbed at the public boundary.
Who:   Called by LoanService during create_loan and return_loan.

Failure Policy:
    check_book_exists       → True only on HTTP 200; False on anything else
                              (404, 5xx, timeout, connection refused)
    decrement_availability  → best-effort; returns SignalResult, never raises
    increment_availability  → best-effort; returns SignalResult, never raises

    Single attempt by default (settings.inventory_max_attempts = 1). Raising
    the setting enables an immediate tenacity retry on transport errors and
    5xx answers; a 4xx answer is final.

Outbound endpoints (relative to settings.inventory_base_url):
    GET  /book/{book_id}
    POST /book/decrement/{book_id}
    POST /book/increment/{book_id}
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import quote

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
)

from libris.config import settings
from libris.exceptions import DependencyError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignalResult:
    """
    Outcome of a best-effort availability signal.

    The caller may inspect or log it but must not change its own result
    because of it: a committed loan stays committed whether or not the Book
    service heard about it.
    """

    book_id: str
    action: str
    delivered: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


def _is_transient(exc: BaseException) -> bool:
    """Transport errors and 5xx answers are worth another attempt."""
    if not isinstance(exc, DependencyError):
        return False
    return exc.upstream_status is None or exc.upstream_status >= 500


class InventoryClient:
    """
    Async client for the Book service.

    One instance is shared by the process (see `inventory_client` below); its
    httpx connection pool is created on first use and closed by the
    application lifespan through `aclose()`.

    Args:
        base_url:     Overrides settings.inventory_base_url
        timeout:      Overrides settings.inventory_timeout (seconds)
        max_attempts: Overrides settings.inventory_max_attempts
        transport:    httpx transport; tests pass an httpx.MockTransport
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.inventory_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.inventory_timeout
        self.max_attempts = max_attempts or settings.inventory_max_attempts
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    # ── Public operations ─────────────────────────────────────────────────

    async def check_book_exists(self, book_id: str) -> bool:
        """
        Ask the Book service whether `book_id` exists.

        Returns True only on an explicit HTTP 200. Unreachability is reported
        as False, exactly like a missing book.
        """
        try:
            await self._send("GET", f"/book/{self._quote(book_id)}", lambda s: s == 200)
        except DependencyError as e:
            logger.info(
                "Book %s not confirmed by inventory service: %s", book_id, e.message
            )
            return False
        return True

    async def decrement_availability(self, book_id: str) -> SignalResult:
        """Best-effort: one copy of `book_id` has been lent out."""
        return await self._signal("decrement", book_id)

    async def increment_availability(self, book_id: str) -> SignalResult:
        """Best-effort: one copy of `book_id` has come back."""
        return await self._signal("increment", book_id)

    async def ping(self) -> bool:
        """Reachability probe for /health. Any HTTP answer counts as reachable."""
        try:
            await self._get_client().get("/")
        except httpx.HTTPError:
            return False
        return True

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    # ── Internals ─────────────────────────────────────────────────────────

    async def _signal(self, action: str, book_id: str) -> SignalResult:
        path = f"/book/{action}/{self._quote(book_id)}"
        try:
            response = await self._send("POST", path, lambda s: 200 <= s < 300)
        except DependencyError as e:
            logger.warning(
                "Inventory %s signal for book %s not delivered: %s",
                action,
                book_id,
                e.message,
            )
            return SignalResult(
                book_id=book_id,
                action=action,
                delivered=False,
                status_code=e.upstream_status,
                error=e.message,
            )

        logger.debug("Inventory %s signal for book %s delivered", action, book_id)
        return SignalResult(
            book_id=book_id,
            action=action,
            delivered=True,
            status_code=response.status_code,
        )

    async def _send(
        self, method: str, path: str, accept: Callable[[int], bool]
    ) -> httpx.Response:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            retry=retry_if_exception(_is_transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return await retrying(self._send_once, method, path, accept)

    async def _send_once(
        self, method: str, path: str, accept: Callable[[int], bool]
    ) -> httpx.Response:
        try:
            response = await self._get_client().request(method, path)
        except httpx.TimeoutException as e:
            raise DependencyError(
                message=f"Inventory service timed out after {self.timeout}s",
                context={"method": method, "path": path},
            ) from e
        except httpx.HTTPError as e:
            raise DependencyError(
                message=f"Inventory service unreachable ({type(e).__name__})",
                context={"method": method, "path": path},
            ) from e

        if not accept(response.status_code):
            raise DependencyError(
                message=f"Inventory service answered HTTP {response.status_code}",
                status_code=response.status_code,
                context={"method": method, "path": path},
            )
        return response

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    @staticmethod
    def _quote(book_id: str) -> str:
        # "." is unreserved, so quote() keeps it; "." and ".." segments would
        # then be collapsed by URL normalization
        return quote(str(book_id), safe="").replace(".", "%2E")


# ── Singleton Instance ────────────────────────────────────────────────────
inventory_client = InventoryClient()
