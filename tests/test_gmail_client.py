"""Tests for the Gmail client wrapper."""

from unittest.mock import MagicMock

import pytest
from conftest import make_http_error
from google.auth.exceptions import RefreshError

from inbox_triage.errors import AuthorizationError
from inbox_triage.gmail_client import (
    REMOTE_ERRORS,
    GmailMailbox,
    _parse_from_header,
    nearest_label_color,
    parse_unsubscribe_header,
    summary_from_response,
)
from inbox_triage.models import RemoteLabel


def _response(msg_id, **headers):
    return {
        "id": msg_id,
        "threadId": f"t_{msg_id}",
        "payload": {"headers": [{"name": k, "value": v} for k, v in headers.items()]},
    }


class FakeBatch:
    """BatchHttpRequest double that answers callbacks in the order items were added."""

    def __init__(self, outcomes):
        self.outcomes = outcomes
        self.callbacks = []

    def add(self, request, callback):
        self.callbacks.append(callback)

    def execute(self):
        for i, callback in enumerate(self.callbacks):
            response, exception = self.outcomes[i]
            callback(str(i), response, exception)


def test_parse_from_header():
    assert _parse_from_header('"John Doe" <John@Example.com>') == ("John Doe", "John@Example.com")
    assert _parse_from_header("<john@example.com>") == ("", "john@example.com")
    assert _parse_from_header("john@example.com") == ("", "john@example.com")
    assert _parse_from_header("") == ("", "")


def test_parse_unsubscribe_prefers_http():
    value = "<mailto:unsub@example.com>, <https://example.com/unsub?u=1>"
    assert parse_unsubscribe_header(value) == "https://example.com/unsub?u=1"
    assert parse_unsubscribe_header("<mailto:unsub@example.com>") == "mailto:unsub@example.com"
    assert parse_unsubscribe_header(None) is None


def test_summary_from_response():
    summary = summary_from_response(
        _response(
            "m1",
            From="Shop <Deals@Shop.example>",
            Subject="Re: your question",
            Date="Mon, 1 Jan 2024 10:00:00 +0000",
            **{"List-Unsubscribe": "<https://shop.example/u>"},
        )
    )
    assert summary.sender_email == "deals@shop.example"
    assert summary.has_unsubscribe_header
    assert summary.unsubscribe_link == "https://shop.example/u"
    assert summary.is_threaded
    assert summary.thread_id == "t_m1"


def test_summary_defaults():
    summary = summary_from_response(_response("m1", FROM="a@b.com"))
    assert summary.subject == "(No subject)"
    assert summary.sender_email == "a@b.com"
    assert not summary.has_unsubscribe_header
    assert not summary.is_threaded


def test_in_reply_to_marks_threaded():
    summary = summary_from_response(_response("m1", From="a@b.com", Subject="Hi", **{"In-Reply-To": "<x@y>"}))
    assert summary.is_threaded


def test_nearest_label_color():
    assert nearest_label_color("#fb4c2f") == {"backgroundColor": "#fb4c2f", "textColor": "#ffffff"}
    assert nearest_label_color("#4a86e9")["backgroundColor"] == "#4a86e8"
    assert nearest_label_color("not-a-colour")["backgroundColor"]


def test_refreshes_once_on_401():
    expired = MagicMock()
    expired.users.return_value.labels.return_value.list.return_value.execute.side_effect = make_http_error(401)
    fresh = MagicMock()
    fresh.users.return_value.labels.return_value.list.return_value.execute.return_value = {
        "labels": [{"id": "L1", "name": "Work", "type": "user"}]
    }
    refresh = MagicMock(return_value=fresh)

    mailbox = GmailMailbox(expired, refresh=refresh)

    assert mailbox.list_labels() == [RemoteLabel(id="L1", name="Work")]
    assert mailbox.list_labels() == [RemoteLabel(id="L1", name="Work")]
    refresh.assert_called_once()


def test_second_401_raises_authorization_error():
    service = MagicMock()
    service.users.return_value.labels.return_value.list.return_value.execute.side_effect = make_http_error(401)
    mailbox = GmailMailbox(service, refresh=lambda: service)

    with pytest.raises(AuthorizationError):
        mailbox.list_labels()


def test_401_without_refresh_raises():
    service = MagicMock()
    service.users.return_value.labels.return_value.delete.return_value.execute.side_effect = make_http_error(401)

    with pytest.raises(AuthorizationError):
        GmailMailbox(service).delete_label("L1")


def test_list_page_returns_next_token():
    service = MagicMock()
    service.users.return_value.messages.return_value.list.return_value.execute.return_value = {
        "messages": [{"id": "a"}, {"id": "b"}],
        "nextPageToken": "tok",
    }

    ids, token = GmailMailbox(service).list_message_ids_page("is:unread", 2)

    assert ids == ["a", "b"]
    assert token == "tok"


def test_fetch_metadata_drops_failed_items():
    service = MagicMock()
    service.new_batch_http_request.return_value = FakeBatch(
        [
            (_response("m1", From="a@b.com", Subject="One"), None),
            (None, make_http_error(404)),
            (_response("m3", From="c@d.com", Subject="Three"), None),
        ]
    )

    summaries = GmailMailbox(service).fetch_metadata(["m1", "m2", "m3"])

    assert [s.remote_id for s in summaries] == ["m1", "m3"]


def test_fetch_metadata_retries_unauthorized_items():
    expired = MagicMock()
    expired.new_batch_http_request.return_value = FakeBatch(
        [
            (_response("m1", From="a@b.com", Subject="One"), None),
            (None, make_http_error(401)),
        ]
    )
    fresh = MagicMock()
    fresh.new_batch_http_request.return_value = FakeBatch([(_response("m2", From="c@d.com", Subject="Two"), None)])

    summaries = GmailMailbox(expired, refresh=lambda: fresh).fetch_metadata(["m1", "m2"])

    assert [s.remote_id for s in summaries] == ["m1", "m2"]


def test_batch_modify_body():
    service = MagicMock()
    GmailMailbox(service).batch_modify(["a", "b"], remove_label_ids=["UNREAD"])

    kwargs = service.users.return_value.messages.return_value.batchModify.call_args.kwargs
    assert kwargs["body"] == {"ids": ["a", "b"], "removeLabelIds": ["UNREAD"]}


def test_failed_refresh_raises_authorization_error():
    """A revoked refresh token surfaces as a domain error the callers tolerate."""
    service = MagicMock()
    service.users.return_value.labels.return_value.delete.return_value.execute.side_effect = make_http_error(401)
    refresh = MagicMock(side_effect=RefreshError("invalid_grant: Token has been expired or revoked."))
    mailbox = GmailMailbox(service, refresh=refresh)

    with pytest.raises(AuthorizationError) as excinfo:
        mailbox.delete_label("L1")

    assert isinstance(excinfo.value.__cause__, RefreshError)
    assert isinstance(excinfo.value, REMOTE_ERRORS)


def test_library_refresh_error_counts_as_remote_error():
    """The client library can raise RefreshError on any call while refreshing by itself."""
    service = MagicMock()
    service.users.return_value.labels.return_value.list.return_value.execute.side_effect = RefreshError("invalid_grant")

    with pytest.raises(REMOTE_ERRORS):
        GmailMailbox(service).list_labels()


def test_create_filter_body():
    service = MagicMock()
    service.users.return_value.settings.return_value.filters.return_value.create.return_value.execute.return_value = {
        "id": "F1"
    }

    filter_id = GmailMailbox(service).create_filter("spam@example.com", remove_label_ids=["INBOX", "UNREAD"])

    assert filter_id == "F1"
    kwargs = service.users.return_value.settings.return_value.filters.return_value.create.call_args.kwargs
    assert kwargs["body"] == {
        "criteria": {"from": "spam@example.com"},
        "action": {"removeLabelIds": ["INBOX", "UNREAD"]},
    }
