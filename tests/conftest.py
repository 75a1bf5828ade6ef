"""Shared fixtures for tests."""

from __future__ import annotations

import httplib2
import pytest
from googleapiclient.errors import HttpError

from inbox_triage.models import (
    ClassifiedMessage,
    MessageCategory,
    MessageSummary,
    RemoteLabel,
    ScanSession,
)
from inbox_triage.store import TriageStore


def make_http_error(status: int = 500) -> HttpError:
    return HttpError(httplib2.Response({"status": status}), b"error")


def make_summary(remote_id: str, sender_email: str = "alice@example.com", subject: str = "Hello", **kwargs):
    return MessageSummary(
        remote_id=remote_id,
        thread_id=kwargs.pop("thread_id", f"t_{remote_id}"),
        sender=kwargs.pop("sender", f"Sender <{sender_email}>"),
        sender_email=sender_email,
        subject=subject,
        **kwargs,
    )


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMailbox:
    """In-memory stand-in for GmailMailbox.

    ``unread`` holds message IDs; ``summaries`` maps IDs to the summary
    fetch_metadata returns (IDs missing from it are dropped, like a failed
    batch item).  When a clock is given, each list page and each metadata
    batch advances it.

    The ``fail_*`` sets pick which list pages, metadata batches, modify
    batches or label deletes raise; ``error`` overrides the default HTTP 500.
    """

    def __init__(
        self,
        unread: list[str] | None = None,
        summaries: dict[str, MessageSummary] | None = None,
        labels: list[RemoteLabel] | None = None,
        clock: FakeClock | None = None,
        page_cost: float = 0.0,
        fetch_cost: float = 0.0,
        unread_estimate: int | None = None,
    ) -> None:
        self.unread = list(unread or [])
        self.summaries = dict(summaries or {})
        self.labels = list(labels or [])
        self.clock = clock
        self.page_cost = page_cost
        self.fetch_cost = fetch_cost
        self.unread_estimate = unread_estimate
        self.queries: list[str] = []
        self.modify_calls: list[tuple[list[str], list[str] | None, list[str] | None]] = []
        self.fail_modify_batches: set[int] = set()
        self.fail_list_pages: set[int] = set()
        self.fail_fetch_batches: set[int] = set()
        self.fail_delete: set[str] = set()
        self.fail_filter = False
        self.error: Exception | None = None
        self.created: list[str] = []
        self.deleted: list[str] = []
        self.updated: list[tuple[str, str, str | None]] = []
        self.matching: dict[str, list[str]] = {}
        self.filters: list[tuple[str, list[str] | None, list[str] | None]] = []
        self._list_calls = 0
        self._fetch_calls = 0
        self._next_label = 1

    def _fail(self) -> Exception:
        return self.error if self.error is not None else make_http_error(500)

    def _tick(self, cost: float) -> None:
        if self.clock is not None:
            self.clock.advance(cost)

    def estimate_unread(self) -> int:
        return len(self.unread) if self.unread_estimate is None else self.unread_estimate

    def list_message_ids_page(self, query, page_size=500, page_token=None):
        self._tick(self.page_cost)
        self.queries.append(query)
        call_num = self._list_calls
        self._list_calls += 1
        if call_num in self.fail_list_pages:
            raise self._fail()
        pool = self.unread if query == "is:unread" else self.matching.get(query, [])
        start = int(page_token or 0)
        page = pool[start : start + page_size]
        end = start + len(page)
        return page, (str(end) if end < len(pool) else None)

    def fetch_metadata(self, message_ids):
        self._tick(self.fetch_cost)
        call_num = self._fetch_calls
        self._fetch_calls += 1
        if call_num in self.fail_fetch_batches:
            raise self._fail()
        return [self.summaries[i] for i in message_ids if i in self.summaries]

    def batch_modify(self, message_ids, add_label_ids=None, remove_label_ids=None):
        call_num = len(self.modify_calls)
        self.modify_calls.append((list(message_ids), add_label_ids, remove_label_ids))
        if call_num in self.fail_modify_batches:
            raise self._fail()

    def list_labels(self):
        return list(self.labels)

    def create_label(self, name, color_hex=None):
        label = RemoteLabel(id=f"Label_{self._next_label}", name=name)
        self._next_label += 1
        self.labels.append(label)
        self.created.append(name)
        return label

    def update_label(self, label_id, name, color_hex=None):
        self.updated.append((label_id, name, color_hex))
        return RemoteLabel(id=label_id, name=name)

    def delete_label(self, label_id):
        if label_id in self.fail_delete:
            raise self._fail()
        self.labels = [lbl for lbl in self.labels if lbl.id != label_id]
        self.deleted.append(label_id)

    def create_filter(self, from_address, add_label_ids=None, remove_label_ids=None):
        if self.fail_filter:
            raise make_http_error(403)
        self.filters.append((from_address, add_label_ids, remove_label_ids))
        return f"Filter_{len(self.filters)}"


class FakeLLM:
    """Classifier double returning canned decisions, or raising."""

    def __init__(self, decide=None, error: Exception | None = None) -> None:
        self._decide = decide
        self._error = error
        self.batches: list[list[MessageSummary]] = []

    def classify_batch(self, messages):
        self.batches.append(list(messages))
        if self._error is not None:
            raise self._error
        if self._decide is None:
            return {i: (MessageCategory.IMPORTANT, "Looks personal") for i in range(len(messages))}
        return self._decide(messages)


@pytest.fixture
def store(tmp_path):
    with TriageStore(tmp_path / "triage.db") as s:
        yield s


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scan_session(store) -> ScanSession:
    """A saved scan of ten messages, three of them important."""
    messages = [
        ClassifiedMessage.from_summary(
            make_summary(f"m{i}", sender_email=f"user{i}@example.com"),
            MessageCategory.IMPORTANT if i < 3 else MessageCategory.NOTIFICATIONS,
            "test",
        )
        for i in range(10)
    ]
    session = ScanSession(
        id="session-1",
        user_id="alice@example.com",
        total_unread_estimate=10,
        counts_by_category={"important": 3, "notifications": 7},
        messages=messages,
    )
    store.save_session(session)
    return session
