"""Gmail API client implementation.

This module provides a client for interacting with the Gmail API.

Notes:
    The Google API client is synchronous. This project wraps those calls using
    `asyncio.to_thread` so the rest of the codebase can remain async-friendly.
    Every request goes through `GmailClient._execute`, which translates
    `HttpError` into the project's exception hierarchy and retries rate-limit
    responses with jittered exponential backoff.
"""

from __future__ import annotations

import asyncio
import base64
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any, Callable

import structlog
from googleapiclient.errors import HttpError

from inbox_triage.config import Settings
from inbox_triage.exceptions import (
    AuthenticationError,
    ConfigurationError,
    GmailAPIError,
    InboxTriageError,
    MessageNotFoundError,
    PermissionDeniedError,
    RateLimitError,
)
from inbox_triage.utils import retry_on_rate_limit

logger = structlog.get_logger()

# users.messages.batchDelete / batchModify accept at most 1000 ids per call.
MUTATION_CHUNK_SIZE = 1000

_RATE_LIMIT_REASONS = ("ratelimitexceeded", "userratelimitexceeded", "quotaexceeded")


def translate_http_error(exc: HttpError, operation: str) -> GmailAPIError | AuthenticationError:
    """Map a Gmail HttpError onto the project's exception hierarchy."""
    status = getattr(getattr(exc, "resp", None), "status", None)
    content = exc.content.decode("utf-8", errors="ignore") if isinstance(exc.content, bytes) else str(exc.content)
    message = f"{operation} failed with HTTP {status}: {exc}"

    if status == 429 or (status == 403 and any(r in content.lower() for r in _RATE_LIMIT_REASONS)):
        return RateLimitError(message)
    if status == 401:
        return AuthenticationError(message)
    if status == 403:
        return PermissionDeniedError(message)
    if status == 404:
        return MessageNotFoundError(message)
    return GmailAPIError(message)


def _chunks(items: list[str], size: int) -> list[list[str]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class GmailClient:
    """Gmail API client for listing and mutating messages.

    This client handles authentication, paged listing, metadata retrieval,
    bulk delete/archive and sending (used for mailto unsubscribes).
    """

    def __init__(self, settings: Settings | None = None, service: Any | None = None) -> None:
        """Initialize Gmail client.

        Args:
            settings: Application settings. If None, uses default settings.
            service: Pre-built Gmail API service, mainly for tests.
        """
        from inbox_triage.config import get_settings

        self.settings = settings or get_settings()
        self._service: Any | None = service
        logger.info("gmail_client_initialized")

    @property
    def user_id(self) -> str:
        return self.settings.gmail_user_id

    async def authenticate(self) -> None:
        """Authenticate with Gmail API using OAuth2.

        Raises:
            ConfigurationError: If the credentials file is missing.
            AuthenticationError: If authentication fails.
        """

        if self._service is not None:
            return

        credentials_path = Path(self.settings.gmail_credentials_path)
        token_path = Path(self.settings.gmail_token_path)
        scope = self.settings.gmail_scope

        if not credentials_path.exists():
            raise ConfigurationError(
                f"Gmail credentials file not found: {credentials_path}. "
                "Download OAuth client credentials from the Google Cloud Console."
            )

        logger.info(
            "gmail_authentication_started",
            credentials_path=str(credentials_path),
            token_path=str(token_path),
            scope=scope,
        )

        try:
            self._service = await asyncio.to_thread(
                self._build_service,
                credentials_path,
                token_path,
                scope,
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("gmail_authentication_failed", error=str(exc))
            raise AuthenticationError(str(exc)) from exc

        logger.info("gmail_authentication_completed")

    async def get_profile_email(self) -> str:
        """Return the authenticated account's email address."""
        profile = await self._execute(
            "get_profile",
            lambda service: service.users().getProfile(userId=self.user_id),
        )
        return str(profile.get("emailAddress") or "")

    async def list_message_page(
        self,
        query: str | None = None,
        page_token: str | None = None,
        max_results: int | None = None,
    ) -> tuple[list[dict[str, Any]], str | None]:
        """List one page of message references.

        Args:
            query: Gmail search query string.
            page_token: Token of the page to fetch; None for the first page.
            max_results: Page size. Defaults to settings.gmail_fetch_limit.

        Returns:
            The page's ``{"id", "threadId"}`` entries and the next page token.
        """
        per_page = max_results or self.settings.gmail_fetch_limit
        logger.info("listing_messages", max_results=per_page, query=query, has_page_token=page_token is not None)

        response = await self._execute(
            "list_messages",
            lambda service: service.users()
            .messages()
            .list(userId=self.user_id, maxResults=per_page, q=query, pageToken=page_token),
        )
        return list(response.get("messages", []) or []), response.get("nextPageToken") or None

    async def get_message(
        self,
        message_id: str,
        *,
        format: str = "metadata",
        metadata_headers: list[str] | None = None,
    ) -> dict[str, Any]:
        """Get a specific message by ID.

        Args:
            message_id: The Gmail message ID.
            format: Gmail response format (metadata, full, minimal).
            metadata_headers: Headers to include when format is metadata.

        Returns:
            Message data dictionary.
        """
        logger.debug("getting_message", message_id=message_id, format=format)
        return await self._execute(
            "get_message",
            lambda service: service.users()
            .messages()
            .get(userId=self.user_id, id=message_id, format=format, metadataHeaders=metadata_headers),
        )

    async def get_thread_message_count(self, thread_id: str) -> int:
        """Return the number of messages in a thread (at least 1)."""
        thread = await self._execute(
            "get_thread",
            lambda service: service.users().threads().get(userId=self.user_id, id=thread_id, format="minimal"),
        )
        return len(thread.get("messages") or []) or 1

    async def batch_delete(self, message_ids: list[str]) -> int:
        """Permanently delete messages. Returns the number of ids submitted."""
        for chunk in _chunks(message_ids, MUTATION_CHUNK_SIZE):
            await self._execute(
                "batch_delete",
                lambda service, ids=chunk: service.users()
                .messages()
                .batchDelete(userId=self.user_id, body={"ids": ids}),
            )
            logger.info("gmail_batch_deleted", count=len(chunk))
        return len(message_ids)

    async def batch_archive(self, message_ids: list[str]) -> int:
        """Remove messages from the inbox. Returns the number of ids submitted."""
        for chunk in _chunks(message_ids, MUTATION_CHUNK_SIZE):
            await self._execute(
                "batch_archive",
                lambda service, ids=chunk: service.users()
                .messages()
                .batchModify(userId=self.user_id, body={"ids": ids, "removeLabelIds": ["INBOX"]}),
            )
            logger.info("gmail_batch_archived", count=len(chunk))
        return len(message_ids)

    async def send_message(self, to: str, subject: str, body: str) -> dict[str, Any]:
        """Send a plain-text email from the authenticated account."""
        mime = MIMEText(body)
        mime["to"] = to
        mime["subject"] = subject
        raw = base64.urlsafe_b64encode(mime.as_bytes()).decode()

        sent = await self._execute(
            "send_message",
            lambda service: service.users().messages().send(userId=self.user_id, body={"raw": raw}),
        )
        logger.info("gmail_message_sent", to=to)
        return sent

    async def _execute(self, operation: str, build_request: Callable[[Any], Any]) -> Any:
        """Run one API request off the event loop with error translation and retry."""
        service = await self._ensure_authenticated()

        @retry_on_rate_limit(
            max_retries=self.settings.max_retries,
            base_delay=self.settings.retry_base_delay,
        )
        async def attempt() -> Any:
            try:
                return await asyncio.to_thread(lambda: build_request(service).execute())
            except HttpError as exc:
                raise translate_http_error(exc, operation) from exc

        try:
            return await attempt()
        except InboxTriageError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("gmail_request_failed", operation=operation, error=str(exc))
            raise GmailAPIError(f"{operation} failed: {exc}") from exc

    async def _ensure_authenticated(self) -> Any:
        if self._service is None:
            raise AuthenticationError(
                "Gmail client is not authenticated. Call await GmailClient.authenticate() first."
            )
        return self._service

    def _build_service(self, credentials_path: Path, token_path: Path, scope: str) -> Any:
        # Imported lazily to keep import-time cost low and tests fast.
        from google.auth.transport.requests import Request
        from google.oauth2.credentials import Credentials
        from google_auth_oauthlib.flow import InstalledAppFlow
        from googleapiclient.discovery import build

        creds: Credentials | None = None
        if token_path.exists():
            creds = Credentials.from_authorized_user_file(str(token_path), scopes=[scope])

        if creds is not None and creds.expired and creds.refresh_token:
            creds.refresh(Request())
            token_path.write_text(creds.to_json(), encoding="utf-8")

        if creds is None or not creds.valid:
            flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), scopes=[scope])
            creds = flow.run_local_server(port=0)
            token_path.parent.mkdir(parents=True, exist_ok=True)
            token_path.write_text(creds.to_json(), encoding="utf-8")

        # cache_discovery=False prevents writing discovery docs to disk.
        return build("gmail", "v1", credentials=creds, cache_discovery=False)
