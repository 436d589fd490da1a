"""Mail source interface and Gmail implementation.

Defines the MailSource protocol used by the mail sync producer, plus two
implementations:
- GmailSource: lists and fetches card-usage notifications through the Gmail
  REST API via httpx.
- NullSource: no-op source that never returns messages (mail sync disabled).

Obtaining the OAuth access token is outside this package: GmailSource reads
an already-issued token from the environment variable named in config.
"""

from __future__ import annotations

import base64
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

GMAIL_API_URL = "https://gmail.googleapis.com/gmail/v1/users/me"


class MailError(Exception):
    """Mail retrieval failed (missing token, auth, network or API error)."""


@dataclass
class MailMessage:
    """A retrieved message's identifier and plain-text body."""

    id: str
    body: str | None


class MailSource(Protocol):
    """Protocol for mail retrieval collaborators."""

    def fetch(self, after: datetime | None) -> list[MailMessage]:
        """Return notification messages received after *after* (all if ``None``).

        Messages whose body has no plain-text part are returned with
        ``body=None`` so the caller can report them.

        Raises:
            MailError: If the mailbox cannot be read.
        """
        ...


def _decode_base64url(data: str) -> str:
    """Decode Gmail's unpadded base64url body encoding to text."""
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def _find_plain_text(parts: list[dict]) -> str | None:
    """Depth-first search for the first ``text/plain`` part with data."""
    for part in parts:
        data = part.get("body", {}).get("data")
        if part.get("mimeType") == "text/plain" and data:
            return _decode_base64url(data)
        if part.get("parts"):
            nested = _find_plain_text(part["parts"])
            if nested is not None:
                return nested
    return None


def extract_plain_text(message: dict) -> str | None:
    """Return the plain-text body of a Gmail ``format=full`` message."""
    payload = message.get("payload", {})
    if payload.get("parts"):
        text = _find_plain_text(payload["parts"])
        if text is not None:
            return text
    data = payload.get("body", {}).get("data")
    if data and payload.get("mimeType") == "text/plain":
        return _decode_base64url(data)
    return None


class GmailSource:
    """Mail source backed by the Gmail REST API.

    Args:
        query: Gmail search query selecting notification emails.
        token_env: Name of the environment variable holding the OAuth
            access token.
        page_size: Messages requested per list page.  Default: 50.
        timeout: HTTP request timeout in seconds.  Default: 30.
        transport: Optional httpx transport, e.g. a mock in tests.
    """

    def __init__(
        self,
        query: str,
        token_env: str,
        page_size: int = 50,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.query = query
        self.token_env = token_env
        self.page_size = page_size
        self.timeout = timeout
        self.transport = transport

    def fetch(self, after: datetime | None) -> list[MailMessage]:
        token = os.environ.get(self.token_env, "")
        if not token:
            raise MailError(
                f"Gmail access token not found in environment variable '{self.token_env}'"
            )

        query = self.query
        if after is not None:
            query += f" after:{int(after.timestamp())}"

        headers = {"Authorization": f"Bearer {token}"}
        messages: list[MailMessage] = []
        with httpx.Client(
            base_url=GMAIL_API_URL,
            headers=headers,
            timeout=self.timeout,
            transport=self.transport,
        ) as client:
            ids = self._list_ids(client, query)
            logger.info("Gmail: %d message(s) match %r", len(ids), query)
            for msg_id in ids:
                full = self._get(client, f"/messages/{msg_id}", {"format": "full"})
                messages.append(MailMessage(id=msg_id, body=extract_plain_text(full)))
        return messages

    def _list_ids(self, client: httpx.Client, query: str) -> list[str]:
        ids: list[str] = []
        params: dict[str, str | int] = {"q": query, "maxResults": self.page_size}
        while True:
            data = self._get(client, "/messages", params)
            ids.extend(m["id"] for m in data.get("messages", []))
            page_token = data.get("nextPageToken")
            if not page_token:
                return ids
            params = {**params, "pageToken": page_token}

    def _get(self, client: httpx.Client, path: str, params: dict) -> dict:
        try:
            response = client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 401:
                raise MailError("Gmail access token expired or revoked") from exc
            raise MailError(
                f"Gmail API returned HTTP {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise MailError(f"Gmail request failed: {exc}") from exc
        return response.json()


class NullSource:
    """No-op mail source used when mail sync is disabled."""

    def fetch(self, after: datetime | None) -> list[MailMessage]:
        return []
