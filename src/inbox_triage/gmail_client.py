"""Gmail API client for listing, fetching, labelling and modifying messages."""

from __future__ import annotations

import logging
import re
from typing import Callable

import httplib2
from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError
from googleapiclient.http import BatchHttpRequest
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from inbox_triage.constants import (
    GMAIL_LABEL_COLORS,
    METADATA_HEADERS,
    PAGE_SIZE,
    THREAD_SUBJECT_PREFIXES,
    UNREAD_QUERY,
)
from inbox_triage.errors import AuthorizationError, TriageError
from inbox_triage.models import MessageSummary, RemoteLabel

logger = logging.getLogger(__name__)

# Failures of a single remote unit of work.
REMOTE_ERRORS = (HttpError, httplib2.HttpLib2Error, GoogleAuthError, OSError, TriageError)

_FROM_RE = re.compile(r"^(.*?)\s*<([^>]+)>$")
_HTTP_UNSUB_RE = re.compile(r"<(https?://[^>]+)>")
_MAILTO_UNSUB_RE = re.compile(r"<(mailto:[^>]+)>")
_HEX_RE = re.compile(r"^#?([0-9a-f]{2})([0-9a-f]{2})([0-9a-f]{2})$", re.IGNORECASE)


def _is_retryable_http_error(exc: BaseException) -> bool:
    return isinstance(exc, HttpError) and exc.resp.status in (429, 500, 503)


def _is_unauthorized(exc: BaseException | None) -> bool:
    return isinstance(exc, HttpError) and exc.resp.status == 401


def _parse_from_header(from_value: str) -> tuple[str, str]:
    """Parse a From header into (display name, email address).

    Handles formats like:
      "John Doe <john@example.com>" -> ("John Doe", "john@example.com")
      "<john@example.com>"          -> ("", "john@example.com")
      "john@example.com"            -> ("", "john@example.com")
    """
    if not from_value:
        return ("", "")
    m = _FROM_RE.match(from_value.strip())
    if m:
        name = m.group(1).strip().strip('"').strip("'")
        return (name, m.group(2).strip())
    email = from_value.strip().strip("<>")
    return ("", email)


def parse_unsubscribe_header(value: str | None) -> str | None:
    """Pick the unsubscribe target from a List-Unsubscribe header, preferring http(s)."""
    if not value:
        return None
    m = _HTTP_UNSUB_RE.search(value) or _MAILTO_UNSUB_RE.search(value)
    return m.group(1) if m else None


def summary_from_response(response: dict) -> MessageSummary:
    """Build a MessageSummary from a format=metadata messages.get response."""
    headers: dict[str, str] = {}
    for h in response.get("payload", {}).get("headers", []):
        if isinstance(h.get("name"), str) and isinstance(h.get("value"), str):
            headers[h["name"].lower()] = h["value"]

    from_value = headers.get("from", "")
    _, email = _parse_from_header(from_value)
    subject = headers.get("subject") or "(No subject)"
    unsubscribe = headers.get("list-unsubscribe")
    has_references = "references" in headers or "in-reply-to" in headers

    return MessageSummary(
        remote_id=response["id"],
        thread_id=response.get("threadId", ""),
        sender=from_value,
        sender_email=email.lower(),
        subject=subject,
        date=headers.get("date", ""),
        has_unsubscribe_header=unsubscribe is not None,
        unsubscribe_link=parse_unsubscribe_header(unsubscribe),
        is_threaded=has_references or subject.lower().startswith(THREAD_SUBJECT_PREFIXES),
    )


def nearest_label_color(color_hex: str) -> dict[str, str]:
    """Snap an arbitrary hex colour to the closest colour Gmail accepts for labels."""
    m = _HEX_RE.match(color_hex or "")
    rgb = tuple(int(g, 16) for g in m.groups()) if m else (0, 0, 0)

    def _distance(candidate: tuple[str, str]) -> int:
        other = _HEX_RE.match(candidate[0]).groups()
        return sum((a - int(b, 16)) ** 2 for a, b in zip(rgb, other))

    background, text = min(GMAIL_LABEL_COLORS, key=_distance)
    return {"backgroundColor": background, "textColor": text}


@retry(
    retry=retry_if_exception(_is_retryable_http_error),
    wait=wait_exponential(multiplier=1, min=1, max=60),
    stop=stop_after_attempt(5),
    reraise=True,
)
def _execute(request):
    return request.execute()


@retry(
    retry=retry_if_exception(_is_retryable_http_error),
    wait=wait_exponential(multiplier=1, min=1, max=60),
    stop=stop_after_attempt(5),
    reraise=True,
)
def _execute_batch(batch: BatchHttpRequest) -> None:
    batch.execute()


class GmailMailbox:
    """Thin wrapper around a Gmail ``Resource`` for a single mailbox.

    ``refresh`` is called at most once per failing call when Gmail answers
    401; it must return a freshly built service (see ``auth.CredentialRefresher``).
    """

    def __init__(self, service, refresh: Callable[[], object] | None = None, user_id: str = "me"):
        self._service = service
        self._refresh = refresh
        self._user_id = user_id

    def _reauthorize(self) -> None:
        if self._refresh is None:
            raise AuthorizationError("Gmail rejected the access token and no refresh is configured.")
        logger.info("Access token rejected, refreshing credentials")
        try:
            self._service = self._refresh()
        except GoogleAuthError as exc:
            raise AuthorizationError(f"Could not refresh Gmail credentials: {exc}") from exc

    def _call(self, build_request: Callable):
        """Execute ``build_request(service)``, refreshing credentials once on 401."""
        try:
            return _execute(build_request(self._service))
        except HttpError as exc:
            if not _is_unauthorized(exc):
                raise
        self._reauthorize()
        try:
            return _execute(build_request(self._service))
        except HttpError as exc:
            if _is_unauthorized(exc):
                raise AuthorizationError("Gmail rejected refreshed credentials.") from exc
            raise

    # --- messages ---

    def estimate_unread(self) -> int:
        resp = self._call(
            lambda s: s.users().messages().list(userId=self._user_id, q=UNREAD_QUERY, maxResults=1)
        )
        return int(resp.get("resultSizeEstimate", 0) or 0)

    def list_message_ids_page(
        self,
        query: str,
        page_size: int = PAGE_SIZE,
        page_token: str | None = None,
    ) -> tuple[list[str], str | None]:
        """Return one page of message IDs and the token for the next page."""
        kwargs: dict = {
            "userId": self._user_id,
            "q": query,
            "maxResults": page_size,
            "fields": "messages/id,nextPageToken",
        }
        if page_token:
            kwargs["pageToken"] = page_token

        resp = self._call(lambda s: s.users().messages().list(**kwargs))
        ids = [m["id"] for m in resp.get("messages", [])]
        return ids, resp.get("nextPageToken")

    def fetch_metadata(self, message_ids: list[str]) -> list[MessageSummary]:
        """Fetch headers for ``message_ids`` in one BatchHttpRequest.

        Items that fail are dropped; one failure never affects the rest of
        the batch.  Items rejected with 401 are retried once after a refresh.
        """
        results: list[MessageSummary] = []
        unauthorized: list[str] = []

        def _run(ids: list[str]) -> None:
            batch = self._service.new_batch_http_request()

            def _make_callback(msg_id: str):
                def _cb(request_id, response, exception):
                    if exception is not None:
                        if _is_unauthorized(exception):
                            unauthorized.append(msg_id)
                        else:
                            logger.debug("Dropping message %s: %s", msg_id, exception)
                        return
                    try:
                        results.append(summary_from_response(response))
                    except (KeyError, TypeError) as exc:
                        logger.debug("Dropping malformed message %s: %s", msg_id, exc)

                return _cb

            for msg_id in ids:
                batch.add(
                    self._service.users().messages().get(
                        userId=self._user_id,
                        id=msg_id,
                        format="metadata",
                        metadataHeaders=METADATA_HEADERS,
                    ),
                    callback=_make_callback(msg_id),
                )
            _execute_batch(batch)

        _run(message_ids)
        if unauthorized:
            retry_ids = list(unauthorized)
            unauthorized.clear()
            self._reauthorize()
            _run(retry_ids)
            if unauthorized:
                logger.warning("Dropped %d messages rejected after refresh", len(unauthorized))

        return results

    def batch_modify(
        self,
        message_ids: list[str],
        add_label_ids: list[str] | None = None,
        remove_label_ids: list[str] | None = None,
    ) -> None:
        body: dict = {"ids": message_ids}
        if add_label_ids:
            body["addLabelIds"] = add_label_ids
        if remove_label_ids:
            body["removeLabelIds"] = remove_label_ids
        self._call(lambda s: s.users().messages().batchModify(userId=self._user_id, body=body))

    # --- labels ---

    def list_labels(self) -> list[RemoteLabel]:
        resp = self._call(lambda s: s.users().labels().list(userId=self._user_id))
        return [
            RemoteLabel(id=lbl["id"], name=lbl["name"])
            for lbl in resp.get("labels", [])
        ]

    def create_label(self, name: str, color_hex: str | None = None) -> RemoteLabel:
        body: dict = {
            "name": name,
            "labelListVisibility": "labelShow",
            "messageListVisibility": "show",
        }
        if color_hex:
            body["color"] = nearest_label_color(color_hex)
        resp = self._call(lambda s: s.users().labels().create(userId=self._user_id, body=body))
        return RemoteLabel(id=resp["id"], name=resp["name"])

    def update_label(self, label_id: str, name: str, color_hex: str | None = None) -> RemoteLabel:
        body: dict = {"name": name}
        if color_hex:
            body["color"] = nearest_label_color(color_hex)
        resp = self._call(
            lambda s: s.users().labels().patch(userId=self._user_id, id=label_id, body=body)
        )
        return RemoteLabel(id=resp.get("id", label_id), name=resp.get("name", name))

    def delete_label(self, label_id: str) -> None:
        self._call(lambda s: s.users().labels().delete(userId=self._user_id, id=label_id))

    # --- filters ---

    def create_filter(
        self,
        from_address: str,
        add_label_ids: list[str] | None = None,
        remove_label_ids: list[str] | None = None,
    ) -> str:
        """Create a filter for mail from ``from_address``; returns the filter id."""
        action: dict = {}
        if add_label_ids:
            action["addLabelIds"] = add_label_ids
        if remove_label_ids:
            action["removeLabelIds"] = remove_label_ids
        body = {"criteria": {"from": from_address}, "action": action}
        resp = self._call(
            lambda s: s.users().settings().filters().create(userId=self._user_id, body=body)
        )
        return resp["id"]
