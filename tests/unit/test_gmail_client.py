"""Unit tests for Gmail client."""

import base64
from email import message_from_bytes

import pytest

from inbox_triage.exceptions import (
    AuthenticationError,
    ConfigurationError,
    GmailAPIError,
    MessageNotFoundError,
    PermissionDeniedError,
    RateLimitError,
)
from inbox_triage.gmail.client import MUTATION_CHUNK_SIZE, GmailClient, translate_http_error


class TestGmailClient:
    """Test suite for GmailClient class."""

    def test_gmail_client_initialization(self, mock_settings) -> None:
        """Test that Gmail client is properly initialized."""
        client = GmailClient(mock_settings)

        assert client.settings is mock_settings
        assert client._service is None
        assert client.user_id == "me"

    @pytest.mark.asyncio
    async def test_authenticate_missing_credentials_raises(self, mock_settings) -> None:
        """Test that authenticate fails fast when credentials.json is missing."""
        client = GmailClient(mock_settings)

        with pytest.raises(ConfigurationError):
            await client.authenticate()

    @pytest.mark.asyncio
    async def test_authenticate_is_noop_with_injected_service(self, mock_settings, gmail_service) -> None:
        """Test that a pre-built service skips the OAuth flow."""
        client = GmailClient(mock_settings, service=gmail_service)

        await client.authenticate()

        assert client._service is gmail_service

    @pytest.mark.asyncio
    async def test_list_message_page_requires_authentication(self, mock_settings) -> None:
        """Test that listing requires authenticate() first."""
        client = GmailClient(mock_settings)

        with pytest.raises(AuthenticationError):
            await client.list_message_page()

    @pytest.mark.asyncio
    async def test_get_message_requires_authentication(self, mock_settings) -> None:
        """Test that get_message requires authenticate() first."""
        client = GmailClient(mock_settings)

        with pytest.raises(AuthenticationError):
            await client.get_message("msg123")

    @pytest.mark.asyncio
    async def test_list_message_page(self, mock_settings, gmail_service, make_raw_message) -> None:
        """Test listing one page of message references."""
        for message_id in ("a", "b"):
            gmail_service.add_message(make_raw_message(message_id))
        gmail_service.pages = {None: (["a", "b"], "page-2")}
        client = GmailClient(mock_settings, service=gmail_service)

        refs, next_token = await client.list_message_page(query="in:inbox", max_results=2)

        assert [r["id"] for r in refs] == ["a", "b"]
        assert next_token == "page-2"
        call = gmail_service.calls_to("messages.list")[0]
        assert call == {"userId": "me", "maxResults": 2, "q": "in:inbox", "pageToken": None}

    @pytest.mark.asyncio
    async def test_get_thread_message_count(self, mock_settings, gmail_service, make_raw_message) -> None:
        """Test counting the messages in a thread."""
        gmail_service.add_message(make_raw_message("a", thread_id="t1"), thread_size=3)
        client = GmailClient(mock_settings, service=gmail_service)

        assert await client.get_thread_message_count("t1") == 3
        assert gmail_service.calls_to("threads.get")[0]["format"] == "minimal"

    @pytest.mark.asyncio
    async def test_get_profile_email(self, mock_settings, gmail_service) -> None:
        """Test reading the account owner's address."""
        gmail_service.profile_email = "owner@example.com"
        client = GmailClient(mock_settings, service=gmail_service)

        assert await client.get_profile_email() == "owner@example.com"

    @pytest.mark.asyncio
    async def test_batch_delete_is_chunked(self, mock_settings, gmail_service) -> None:
        """Test that large deletes are split into API-sized chunks."""
        client = GmailClient(mock_settings, service=gmail_service)
        ids = [f"m{i}" for i in range(MUTATION_CHUNK_SIZE + 5)]

        count = await client.batch_delete(ids)

        calls = gmail_service.calls_to("messages.batchDelete")
        assert count == len(ids)
        assert [len(c["body"]["ids"]) for c in calls] == [MUTATION_CHUNK_SIZE, 5]

    @pytest.mark.asyncio
    async def test_batch_archive_removes_inbox_label(self, mock_settings, gmail_service) -> None:
        """Test that archiving is a label change, not a delete."""
        client = GmailClient(mock_settings, service=gmail_service)

        await client.batch_archive(["a", "b"])

        call = gmail_service.calls_to("messages.batchModify")[0]
        assert call["body"] == {"ids": ["a", "b"], "removeLabelIds": ["INBOX"]}
        assert gmail_service.calls_to("messages.batchDelete") == []

    @pytest.mark.asyncio
    async def test_send_message_encodes_mime(self, mock_settings, gmail_service) -> None:
        """Test that outgoing mail is sent as raw base64url MIME."""
        client = GmailClient(mock_settings, service=gmail_service)

        await client.send_message("leave@list.example", "unsubscribe", "Please remove me.")

        raw = gmail_service.calls_to("messages.send")[0]["body"]["raw"]
        sent = message_from_bytes(base64.urlsafe_b64decode(raw))
        assert sent["to"] == "leave@list.example"
        assert sent["subject"] == "unsubscribe"
        assert sent.get_payload() == "Please remove me."


class TestErrorHandling:
    """Test suite for HTTP error translation and retries."""

    @pytest.mark.parametrize(
        ("status", "reason", "expected"),
        [
            (429, "rateLimitExceeded", RateLimitError),
            (403, "userRateLimitExceeded", RateLimitError),
            (403, "insufficientPermissions", PermissionDeniedError),
            (401, "authError", AuthenticationError),
            (404, "notFound", MessageNotFoundError),
            (500, "backendError", GmailAPIError),
        ],
    )
    def test_translate_http_error(self, make_http_error, status: int, reason: str, expected: type) -> None:
        """Test mapping HTTP failures onto the exception hierarchy."""
        error = translate_http_error(make_http_error(status, reason), "get_message")

        assert type(error) is expected
        assert "get_message" in str(error)

    @pytest.mark.asyncio
    async def test_rate_limited_request_is_retried(self, mock_settings, gmail_service, make_http_error) -> None:
        """Test that a 429 followed by success returns the result."""
        gmail_service.fail("getProfile", make_http_error(429, "rateLimitExceeded"))
        client = GmailClient(mock_settings, service=gmail_service)

        assert await client.get_profile_email() == "me@example.com"
        assert len(gmail_service.calls_to("getProfile")) == 2

    @pytest.mark.asyncio
    async def test_rate_limit_retries_are_capped(self, mock_settings, gmail_service, make_http_error) -> None:
        """Test that rate limiting surfaces once retries are exhausted."""
        gmail_service.fail("getProfile", *[make_http_error(429, "rateLimitExceeded") for _ in range(5)])
        client = GmailClient(mock_settings, service=gmail_service)

        with pytest.raises(RateLimitError):
            await client.get_profile_email()

        assert len(gmail_service.calls_to("getProfile")) == mock_settings.max_retries + 1

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self, mock_settings, gmail_service, make_http_error) -> None:
        """Test that terminal failures propagate on the first attempt."""
        gmail_service.fail("messages.batchDelete", make_http_error(403, "insufficientPermissions"))
        client = GmailClient(mock_settings, service=gmail_service)

        with pytest.raises(PermissionDeniedError):
            await client.batch_delete(["a"])

        assert len(gmail_service.calls_to("messages.batchDelete")) == 1

    @pytest.mark.asyncio
    async def test_unexpected_errors_are_wrapped(self, mock_settings, gmail_service) -> None:
        """Test that transport failures become GmailAPIError."""
        gmail_service.fail("messages.batchModify", ConnectionResetError("peer reset"))
        client = GmailClient(mock_settings, service=gmail_service)

        with pytest.raises(GmailAPIError, match="peer reset"):
            await client.batch_archive(["a"])
