"""Sequential unsubscribe dispatch.

Each selected message is unsubscribed through the best mechanism it
advertises, in priority order:

1. RFC 8058 one-click POST, when the sender supports it;
2. a plain HTTPS POST, then GET, against the first HTTPS URL;
3. an email to the mailto address.

Requests go out one at a time with a fixed pause between items, so a large
batch never floods third-party endpoints.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence

import httpx
import structlog

from inbox_triage.exceptions import UnsubscribeError
from inbox_triage.models import (
    UnsubscribeAttempt,
    UnsubscribeReport,
    UnsubscribeRequest,
    UnsubscribeTarget,
)

logger = structlog.get_logger()

SendMail = Callable[[str, str, str], Awaitable[object]]

ONE_CLICK_BODY = "List-Unsubscribe=One-Click"
DEFAULT_MAILTO_SUBJECT = "unsubscribe"
MAILTO_BODY = "Please unsubscribe me from this mailing list."


class UnsubscribeDispatcher:
    """Dispatch unsubscribe requests one message at a time."""

    def __init__(
        self,
        send_mail: SendMail | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        delay: float = 1.0,
        timeout: float = 30.0,
    ) -> None:
        """Create a dispatcher.

        Args:
            send_mail: Coroutine ``(to, subject, body)`` used for mailto targets.
                Without it, mailto-only targets fail.
            http_client: Client for HTTP targets. One is created per dispatch
                when omitted.
            delay: Seconds to wait between consecutive items.
            timeout: Per-request timeout for HTTP targets.
        """
        self._send_mail = send_mail
        self._http_client = http_client
        self.delay = delay
        self.timeout = timeout

    async def dispatch(self, requests: Sequence[UnsubscribeRequest]) -> UnsubscribeReport:
        """Unsubscribe through every request, strictly in order.

        Never raises for a failed item; the report lists successes and
        failures by message id.
        """
        report = UnsubscribeReport()
        if not requests:
            return report

        logger.info("unsubscribe_dispatch_started", count=len(requests))

        if self._http_client is not None:
            await self._dispatch_all(self._http_client, requests, report)
        else:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                await self._dispatch_all(client, requests, report)

        logger.info(
            "unsubscribe_dispatch_completed",
            succeeded=len(report.succeeded),
            failed=len(report.failed),
        )
        return report

    async def _dispatch_all(
        self,
        client: httpx.AsyncClient,
        requests: Sequence[UnsubscribeRequest],
        report: UnsubscribeReport,
    ) -> None:
        for index, request in enumerate(requests):
            if index > 0 and self.delay > 0:
                await asyncio.sleep(self.delay)

            attempt = await self.unsubscribe_one(client, request)
            report.attempts.append(attempt)
            if attempt.succeeded:
                report.succeeded.append(request.message_id)
            else:
                report.failed.append(request.message_id)

    async def unsubscribe_one(self, client: httpx.AsyncClient, request: UnsubscribeRequest) -> UnsubscribeAttempt:
        """Try each mechanism of one target until one works."""
        target = request.target
        errors: list[str] = []

        for method, step in self._plan(target):
            try:
                await step(client, target)
            except UnsubscribeError as exc:
                errors.append(f"{method}: {exc}")
                logger.warning(
                    "unsubscribe_step_failed",
                    message_id=request.message_id,
                    method=method,
                    error=str(exc),
                )
                continue

            logger.info("unsubscribe_succeeded", message_id=request.message_id, method=method)
            return UnsubscribeAttempt(message_id=request.message_id, succeeded=True, method=method)

        error = "; ".join(errors) or "No usable unsubscribe mechanism"
        logger.warning("unsubscribe_dispatch_failed", message_id=request.message_id, error=error)
        return UnsubscribeAttempt(message_id=request.message_id, succeeded=False, error=error)

    def _plan(self, target: UnsubscribeTarget) -> list[tuple[str, Callable[..., Awaitable[None]]]]:
        plan: list[tuple[str, Callable[..., Awaitable[None]]]] = []
        if target.https_urls:
            if target.one_click:
                plan.append(("one_click", self._one_click))
            plan.append(("http", self._http_fallback))
        if target.mailto:
            plan.append(("mailto", self._mailto))
        return plan

    async def _one_click(self, client: httpx.AsyncClient, target: UnsubscribeTarget) -> None:
        url = target.https_urls[0]
        response = await self._request(
            client,
            "POST",
            url,
            content=ONE_CLICK_BODY,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        _require_success(response)

    async def _http_fallback(self, client: httpx.AsyncClient, target: UnsubscribeTarget) -> None:
        url = target.https_urls[0]
        try:
            response = await self._request(client, "POST", url)
            if response.is_success:
                return
        except UnsubscribeError as exc:
            logger.debug("unsubscribe_post_failed", url=url, error=str(exc))
        response = await self._request(client, "GET", url)
        _require_success(response)

    async def _mailto(self, client: httpx.AsyncClient, target: UnsubscribeTarget) -> None:
        if self._send_mail is None:
            raise UnsubscribeError("mailto delivery is not configured")
        if not target.mailto:
            raise UnsubscribeError("no mailto address advertised")
        try:
            await self._send_mail(
                target.mailto,
                target.mailto_subject or DEFAULT_MAILTO_SUBJECT,
                MAILTO_BODY,
            )
        except Exception as exc:  # noqa: BLE001
            raise UnsubscribeError(str(exc)) from exc

    async def _request(self, client: httpx.AsyncClient, method: str, url: str, **kwargs: object) -> httpx.Response:
        try:
            return await client.request(method, url, timeout=self.timeout, follow_redirects=True, **kwargs)
        except httpx.HTTPError as exc:
            raise UnsubscribeError(f"{method} {url} failed: {exc}") from exc


def _require_success(response: httpx.Response) -> None:
    if not response.is_success:
        raise UnsubscribeError(f"{response.request.method} returned HTTP {response.status_code}")
