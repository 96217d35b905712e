"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import itertools
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httplib2
import pytest
from googleapiclient.errors import HttpError

from inbox_triage.config import Settings
from inbox_triage.models import Message, Sender, UnsubscribeTarget

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    """Fixed reference time for age-based rules."""
    return NOW


@pytest.fixture
def mock_settings(tmp_path) -> Settings:
    """Provide settings that never touch real credentials or sleep."""
    return Settings(
        _env_file=None,
        gmail_credentials_path=tmp_path / "credentials.json",
        gmail_token_path=tmp_path / "token.json",
        user_email="me@example.com",
        batch_size=3,
        max_retries=2,
        retry_base_delay=0.0,
        unsubscribe_delay=0.0,
        log_level="DEBUG",
        debug=True,
    )


@pytest.fixture
def make_message() -> Callable[..., Message]:
    """Build a Message with neutral defaults; keyword overrides win.

    ``days_old`` is relative to the ``now`` fixture and ``sender`` may be a
    bare address.
    """
    counter = itertools.count(1)

    def factory(
        *,
        sender: str | Sender = "someone@example.org",
        days_old: float = 30,
        labels: tuple[str, ...] | frozenset[str] = (),
        **fields: Any,
    ) -> Message:
        if isinstance(sender, str):
            sender = Sender(name=sender.split("@")[0], email=sender)
        fields.setdefault("id", f"m{next(counter)}")
        fields.setdefault("thread_id", f"t-{fields['id']}")
        return Message(
            sender=sender,
            date=NOW - timedelta(days=days_old),
            labels=frozenset(labels),
            **fields,
        )

    return factory


@pytest.fixture
def make_promo(make_message) -> Callable[..., Message]:
    """Build an old promotional message that is a delete and unsubscribe candidate."""

    def factory(sender: str = "deals@shop.example", **fields: Any) -> Message:
        fields.setdefault("subject", "Flash sale: 40% off everything")
        fields.setdefault("labels", ("CATEGORY_PROMOTIONS",))
        fields.setdefault("has_list_unsubscribe", True)
        fields.setdefault(
            "unsubscribe_target",
            UnsubscribeTarget(urls=(f"https://{sender.split('@')[-1]}/unsubscribe",), one_click=True),
        )
        return make_message(sender=sender, **fields)

    return factory


def http_error(status: int, reason: str = "error") -> HttpError:
    """Build a googleapiclient HttpError with a JSON error body."""
    content = json.dumps(
        {"error": {"code": status, "message": reason, "errors": [{"reason": reason}]}}
    ).encode("utf-8")
    return HttpError(httplib2.Response({"status": status}), content)


class _FakeRequest:
    def __init__(self, result: Callable[[], Any]) -> None:
        self._result = result

    def execute(self) -> Any:
        return self._result()


class _FakeMessages:
    def __init__(self, service: FakeGmailService) -> None:
        self._service = service

    def list(self, **kwargs: Any) -> _FakeRequest:
        return self._service.request("messages.list", kwargs, self._service.list_page)

    def get(self, **kwargs: Any) -> _FakeRequest:
        return self._service.request("messages.get", kwargs, self._service.message)

    def batchDelete(self, **kwargs: Any) -> _FakeRequest:
        return self._service.request("messages.batchDelete", kwargs, lambda kw: {})

    def batchModify(self, **kwargs: Any) -> _FakeRequest:
        return self._service.request("messages.batchModify", kwargs, lambda kw: {})

    def send(self, **kwargs: Any) -> _FakeRequest:
        return self._service.request("messages.send", kwargs, lambda kw: {"id": "sent-1"})


class _FakeThreads:
    def __init__(self, service: FakeGmailService) -> None:
        self._service = service

    def get(self, **kwargs: Any) -> _FakeRequest:
        return self._service.request("threads.get", kwargs, self._service.thread)


class FakeGmailService:
    """In-memory stand-in for the ``users()`` resource of the Gmail API.

    ``pages`` maps a page token (None for the first page) to the message ids
    on that page and the next token. ``fail`` queues errors per operation;
    each queued error is raised once, in order.
    """

    def __init__(self) -> None:
        self.raw_messages: dict[str, dict[str, Any]] = {}
        self.thread_sizes: dict[str, int] = {}
        self.pages: dict[str | None, tuple[list[str], str | None]] = {None: ([], None)}
        self.profile_email = "me@example.com"
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.failures: dict[str, list[Exception]] = {}

    def fail(self, operation: str, *errors: Exception) -> None:
        self.failures.setdefault(operation, []).extend(errors)

    def calls_to(self, operation: str) -> list[dict[str, Any]]:
        return [kw for op, kw in self.calls if op == operation]

    def add_message(self, raw: dict[str, Any], thread_size: int = 1) -> None:
        self.raw_messages[raw["id"]] = raw
        self.thread_sizes[raw.get("threadId", raw["id"])] = thread_size

    # resource tree
    def users(self) -> FakeGmailService:
        return self

    def messages(self) -> _FakeMessages:
        return _FakeMessages(self)

    def threads(self) -> _FakeThreads:
        return _FakeThreads(self)

    def getProfile(self, **kwargs: Any) -> _FakeRequest:
        return self.request("getProfile", kwargs, lambda kw: {"emailAddress": self.profile_email})

    # request plumbing
    def request(self, operation: str, kwargs: dict[str, Any], handler: Callable[[dict[str, Any]], Any]) -> _FakeRequest:
        def run() -> Any:
            self.calls.append((operation, kwargs))
            queued = self.failures.get(operation)
            if queued:
                raise queued.pop(0)
            return handler(kwargs)

        return _FakeRequest(run)

    def list_page(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        ids, next_token = self.pages[kwargs.get("pageToken")]
        response: dict[str, Any] = {
            "messages": [{"id": i, "threadId": self.raw_messages.get(i, {}).get("threadId", i)} for i in ids]
        }
        if next_token:
            response["nextPageToken"] = next_token
        return response

    def message(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        try:
            return self.raw_messages[kwargs["id"]]
        except KeyError:
            raise http_error(404, "notFound") from None

    def thread(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        size = self.thread_sizes.get(kwargs["id"], 1)
        return {"id": kwargs["id"], "messages": [{"id": f"{kwargs['id']}-{n}"} for n in range(size)]}


@pytest.fixture
def gmail_service() -> FakeGmailService:
    return FakeGmailService()


def raw_message(
    message_id: str,
    *,
    sender: str = "Shop <deals@shop.example>",
    subject: str = "Flash sale: 40% off everything",
    labels: list[str] | None = None,
    days_old: float = 30,
    list_unsubscribe: str | None = "<https://shop.example/u/1>, <mailto:unsub@shop.example?subject=stop>",
    list_unsubscribe_post: str | None = "List-Unsubscribe=One-Click",
    snippet: str = "Huge savings",
    thread_id: str | None = None,
    parts: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Build a Gmail API message resource as returned with format=metadata."""
    headers = [
        {"name": "From", "value": sender},
        {"name": "To", "value": "me@example.com"},
        {"name": "Subject", "value": subject},
    ]
    if list_unsubscribe is not None:
        headers.append({"name": "List-Unsubscribe", "value": list_unsubscribe})
    if list_unsubscribe_post is not None:
        headers.append({"name": "List-Unsubscribe-Post", "value": list_unsubscribe_post})

    sent = NOW - timedelta(days=days_old)
    payload: dict[str, Any] = {"mimeType": "multipart/alternative", "headers": headers}
    if parts is not None:
        payload["parts"] = parts
    return {
        "id": message_id,
        "threadId": thread_id or f"t-{message_id}",
        "labelIds": labels if labels is not None else ["INBOX", "CATEGORY_PROMOTIONS"],
        "snippet": snippet,
        "internalDate": str(int(sent.timestamp() * 1000)),
        "payload": payload,
    }


@pytest.fixture
def make_raw_message() -> Callable[..., dict[str, Any]]:
    return raw_message


@pytest.fixture
def make_http_error() -> Callable[..., HttpError]:
    return http_error
