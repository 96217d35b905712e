"""Unit tests for the unsubscribe dispatcher."""

from __future__ import annotations

import httpx
import pytest

from inbox_triage.exceptions import UnsubscribeError
from inbox_triage.models import UnsubscribeRequest, UnsubscribeTarget
from inbox_triage.unsubscribe import UnsubscribeDispatcher
from inbox_triage.unsubscribe.dispatcher import DEFAULT_MAILTO_SUBJECT, ONE_CLICK_BODY


class Recorder:
    """httpx MockTransport handler that records requests and replies from a table."""

    def __init__(self, statuses: dict[tuple[str, str], int] | None = None) -> None:
        self.statuses = statuses or {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.get((request.method, str(request.url)), 200)
        if status == 0:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(status)

    @property
    def methods(self) -> list[str]:
        return [r.method for r in self.requests]


class MailOutbox:
    def __init__(self, fail: bool = False) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail = fail

    async def __call__(self, to: str, subject: str, body: str) -> dict:
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append((to, subject, body))
        return {"id": "sent"}


URL = "https://list.example/u/1"


def _request(message_id: str = "m1", **target: object) -> UnsubscribeRequest:
    return UnsubscribeRequest(message_id=message_id, target=UnsubscribeTarget(**target))


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def http_client(recorder: Recorder) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(recorder))


class TestUnsubscribeDispatcher:
    """Test suite for UnsubscribeDispatcher."""

    @pytest.mark.asyncio
    async def test_one_click_post(self, recorder, http_client) -> None:
        """Test the RFC 8058 POST when one-click is advertised."""
        dispatcher = UnsubscribeDispatcher(http_client=http_client, delay=0)

        report = await dispatcher.dispatch([_request(urls=(URL,), one_click=True)])

        assert report.succeeded == ["m1"]
        assert report.attempts[0].method == "one_click"
        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.content == ONE_CLICK_BODY.encode()
        assert request.headers["content-type"] == "application/x-www-form-urlencoded"

    @pytest.mark.asyncio
    async def test_http_post_then_get_fallback(self, recorder, http_client) -> None:
        """Test that a rejected POST is followed by a GET."""
        recorder.statuses[("POST", URL)] = 405
        dispatcher = UnsubscribeDispatcher(http_client=http_client, delay=0)

        report = await dispatcher.dispatch([_request(urls=(URL,))])

        assert report.succeeded == ["m1"]
        assert report.attempts[0].method == "http"
        assert recorder.methods == ["POST", "GET"]

    @pytest.mark.asyncio
    async def test_failed_one_click_falls_back_to_http(self, recorder, http_client) -> None:
        """Test the whole HTTP chain after a one-click failure."""
        recorder.statuses[("POST", URL)] = 500
        dispatcher = UnsubscribeDispatcher(http_client=http_client, delay=0)

        report = await dispatcher.dispatch([_request(urls=(URL,), one_click=True)])

        assert report.succeeded == ["m1"]
        assert recorder.methods == ["POST", "POST", "GET"]

    @pytest.mark.asyncio
    async def test_mailto_used_after_http_failure(self, recorder, http_client) -> None:
        """Test that mail is sent when every HTTP attempt fails."""
        recorder.statuses[("POST", URL)] = 0
        recorder.statuses[("GET", URL)] = 0
        outbox = MailOutbox()
        dispatcher = UnsubscribeDispatcher(outbox, http_client=http_client, delay=0)

        report = await dispatcher.dispatch([_request(urls=(URL,), mailto="leave@list.example")])

        assert report.succeeded == ["m1"]
        assert report.attempts[0].method == "mailto"
        assert outbox.sent[0][:2] == ("leave@list.example", DEFAULT_MAILTO_SUBJECT)

    @pytest.mark.asyncio
    async def test_mailto_uses_requested_subject(self, http_client) -> None:
        """Test that the subject from the mailto link is honored."""
        outbox = MailOutbox()
        dispatcher = UnsubscribeDispatcher(outbox, http_client=http_client, delay=0)

        await dispatcher.dispatch([_request(mailto="leave@list.example", mailto_subject="remove")])

        assert outbox.sent[0][1] == "remove"

    @pytest.mark.asyncio
    async def test_insecure_urls_are_never_requested(self, recorder, http_client) -> None:
        """Test that plain http links are skipped."""
        outbox = MailOutbox()
        dispatcher = UnsubscribeDispatcher(outbox, http_client=http_client, delay=0)

        report = await dispatcher.dispatch(
            [_request(urls=("http://list.example/u",), one_click=True, mailto="leave@list.example")]
        )

        assert report.succeeded == ["m1"]
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_partial_failure_is_reported_not_raised(self, recorder, http_client) -> None:
        """Test per-item outcomes for a mixed batch."""
        bad = "https://broken.example/u"
        recorder.statuses[("POST", bad)] = 500
        recorder.statuses[("GET", bad)] = 404
        dispatcher = UnsubscribeDispatcher(MailOutbox(fail=True), http_client=http_client, delay=0)

        report = await dispatcher.dispatch(
            [
                _request("ok", urls=(URL,)),
                _request("broken", urls=(bad,)),
                _request("mail", mailto="leave@list.example"),
                _request("nothing"),
            ]
        )

        assert report.succeeded == ["ok"]
        assert report.failed == ["broken", "mail", "nothing"]
        by_id = {a.message_id: a for a in report.attempts}
        assert "HTTP 404" in (by_id["broken"].error or "")
        assert "smtp down" in (by_id["mail"].error or "")
        assert by_id["nothing"].error == "No usable unsubscribe mechanism"

    @pytest.mark.asyncio
    async def test_mailto_without_sender_fails(self, http_client) -> None:
        """Test that mailto targets fail cleanly when mail sending is not wired."""
        dispatcher = UnsubscribeDispatcher(http_client=http_client, delay=0)

        report = await dispatcher.dispatch([_request(mailto="leave@list.example")])

        assert report.failed == ["m1"]

    @pytest.mark.asyncio
    async def test_requests_are_sequential_with_delay(
        self, monkeypatch: pytest.MonkeyPatch, recorder, http_client
    ) -> None:
        """Test the pause between consecutive items, and none before the first."""
        pauses: list[float] = []

        async def fake_sleep(delay: float) -> None:
            pauses.append(delay)

        monkeypatch.setattr("inbox_triage.unsubscribe.dispatcher.asyncio.sleep", fake_sleep)
        dispatcher = UnsubscribeDispatcher(http_client=http_client, delay=1.5)

        await dispatcher.dispatch([_request(f"m{i}", urls=(f"https://list.example/u/{i}",)) for i in range(3)])

        assert pauses == [1.5, 1.5]
        assert [str(r.url) for r in recorder.requests] == [f"https://list.example/u/{i}" for i in range(3)]

    @pytest.mark.asyncio
    async def test_empty_dispatch(self) -> None:
        """Test that nothing happens for an empty batch."""
        report = await UnsubscribeDispatcher(delay=0).dispatch([])

        assert report.succeeded == []
        assert report.failed == []

    @pytest.mark.asyncio
    async def test_mailto_step_without_address_fails_cleanly(self, http_client) -> None:
        """Test that the mail step reports an error instead of sending to nobody."""
        outbox = MailOutbox()
        dispatcher = UnsubscribeDispatcher(outbox, http_client=http_client, delay=0)

        with pytest.raises(UnsubscribeError, match="no mailto address"):
            await dispatcher._mailto(http_client, UnsubscribeTarget(urls=(URL,)))

        assert outbox.sent == []

    @pytest.mark.asyncio
    async def test_get_is_tried_when_post_cannot_connect(self, recorder, http_client) -> None:
        """Test that a connection error on POST still falls through to GET."""
        recorder.statuses[("POST", URL)] = 0
        dispatcher = UnsubscribeDispatcher(http_client=http_client, delay=0)

        report = await dispatcher.dispatch([_request(urls=(URL,))])

        assert report.succeeded == ["m1"]
        assert recorder.methods == ["POST", "GET"]
