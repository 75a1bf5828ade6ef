"""Tests for the budgeted scan pipeline."""

import anthropic
from conftest import FakeLLM, FakeMailbox, make_summary
from google.auth.exceptions import RefreshError

from inbox_triage.errors import LLMResponseError
from inbox_triage.models import MessageCategory
from inbox_triage.pipeline import (
    FALLBACK_REASON,
    Deadline,
    PipelineLimits,
    classify_backlog,
    run_scan,
)


def _personal(n: int, prefix: str = "m"):
    """n messages no pattern matches, so they all go to the LLM."""
    return {f"{prefix}{i}": make_summary(f"{prefix}{i}", f"friend{i}@example.com", "Lunch?") for i in range(n)}


def test_deadline_past(clock):
    deadline = Deadline(100, clock)
    clock.advance(30)
    assert not deadline.past(0.30)
    clock.advance(1)
    assert deadline.past(0.30)
    assert deadline.elapsed_ms() == 31000


def test_scan_stays_within_budget_on_huge_mailbox(store, clock):
    """A 100k unread mailbox with slow pages stops on time and still returns results."""
    ids = [f"m{i}" for i in range(100_000)]
    summaries = {i: make_summary(i, "noreply@service.example", "Alert") for i in ids[:5000]}
    mailbox = FakeMailbox(unread=ids, summaries=summaries, clock=clock, page_cost=5.0, fetch_cost=2.0)

    result = run_scan(mailbox, store, "alice@example.com", scan_all=True, clock=clock)

    assert result.hit_time_limit
    assert not result.is_complete
    assert result.scanned_count > 0
    assert result.messages
    assert result.elapsed_ms <= 120_000
    assert result.has_more
    assert result.total_unread_estimate == 100_000


def test_regular_scan_caps_at_chunk_size(store):
    summaries = _personal(800)
    mailbox = FakeMailbox(unread=list(summaries), summaries=summaries)

    result = run_scan(mailbox, store, "alice@example.com", max_messages=2000)

    assert result.scanned_count == 500
    assert result.has_more
    assert not result.hit_max_limit


def test_complete_scan(store):
    summaries = {
        "a": make_summary("a", "noreply@service.example", "Alert"),
        "b": make_summary("b", "hello@brand.example", "Flash sale today"),
    }
    mailbox = FakeMailbox(unread=list(summaries), summaries=summaries)

    result = run_scan(mailbox, store, "alice@example.com")

    assert result.is_complete
    assert not result.has_more
    assert result.counts["notifications"] == 1
    assert result.counts["marketing"] == 1
    assert sum(result.counts.values()) == len(result.messages) == 2


def test_empty_mailbox(store):
    result = run_scan(FakeMailbox(), store, "alice@example.com")

    assert result.messages == []
    assert result.scanned_count == 0
    assert result.is_complete
    assert not result.has_more
    assert sum(result.counts.values()) == 0


def test_failed_fetch_item_is_dropped(store):
    summaries = _personal(3)
    del summaries["m1"]
    mailbox = FakeMailbox(unread=["m0", "m1", "m2"], summaries=summaries)

    result = run_scan(mailbox, store, "alice@example.com")

    assert result.scanned_count == 2
    assert {m.remote_id for m in result.messages} == {"m0", "m2"}
    assert not result.is_complete


def test_session_is_persisted(store):
    summaries = _personal(4)
    mailbox = FakeMailbox(unread=list(summaries), summaries=summaries)

    result = run_scan(mailbox, store, "alice@example.com", classifier=FakeLLM())

    session = store.get_session(result.session_id, "alice@example.com")
    assert session is not None
    assert [m.remote_id for m in session.messages] == [m.remote_id for m in result.messages]
    assert session.counts_by_category["important"] == 4


def test_known_senders_from_earlier_scans(store):
    summaries = {"a": make_summary("a", "bob@example.com", "Invoice attached")}
    mailbox = FakeMailbox(unread=["a"], summaries=summaries)
    first = run_scan(
        FakeMailbox(unread=["x"], summaries={"x": make_summary("x", "bob@example.com", "Hi")}),
        store,
        "alice@example.com",
        classifier=FakeLLM(),
    )
    assert first.counts["important"] == 1

    result = run_scan(mailbox, store, "alice@example.com")

    assert result.messages[0].category == MessageCategory.IMPORTANT
    assert result.messages[0].reason == "Known contact"


def test_llm_failure_files_everything_under_notifications(store):
    summaries = _personal(50)
    mailbox = FakeMailbox(unread=list(summaries), summaries=summaries)
    llm = FakeLLM(error=LLMResponseError("garbage"))

    result = run_scan(mailbox, store, "alice@example.com", classifier=llm)

    assert len(result.messages) == 50
    assert result.counts["notifications"] == 50
    assert all(m.reason == FALLBACK_REASON for m in result.messages)


def test_llm_api_error_is_contained(clock):
    backlog = list(_personal(3).values())
    error = anthropic.APIConnectionError(request=None)
    results = classify_backlog(backlog, FakeLLM(error=error), Deadline(120, clock), PipelineLimits())
    assert [m.category for m in results] == [MessageCategory.NOTIFICATIONS] * 3


def test_llm_missing_entries_fall_back(clock):
    backlog = list(_personal(4).values())
    llm = FakeLLM(decide=lambda msgs: {0: (MessageCategory.RECEIPTS, "Order"), 2: (MessageCategory.IMPORTANT, "Personal")})

    results = classify_backlog(backlog, llm, Deadline(120, clock), PipelineLimits())

    assert [m.remote_id for m in results] == ["m0", "m1", "m2", "m3"]
    assert [m.category for m in results] == [
        MessageCategory.RECEIPTS,
        MessageCategory.NOTIFICATIONS,
        MessageCategory.IMPORTANT,
        MessageCategory.NOTIFICATIONS,
    ]
    assert results[1].reason == FALLBACK_REASON


def test_llm_batch_cap(clock):
    backlog = list(_personal(130).values())
    llm = FakeLLM()

    results = classify_backlog(backlog, llm, Deadline(120, clock), PipelineLimits())

    assert len(llm.batches) == 2
    assert len(results) == 130
    assert sum(1 for m in results if m.category == MessageCategory.IMPORTANT) == 100
    assert all(m.reason == FALLBACK_REASON for m in results[100:])


def test_llm_skipped_late_in_budget(clock):
    backlog = list(_personal(5).values())
    llm = FakeLLM()
    deadline = Deadline(100, clock)
    clock.advance(91)

    results = classify_backlog(backlog, llm, deadline, PipelineLimits())

    assert llm.batches == []
    assert len(results) == 5
    assert all(m.category == MessageCategory.NOTIFICATIONS for m in results)


def test_no_classifier_uses_fallback(clock):
    backlog = list(_personal(2).values())
    results = classify_backlog(backlog, None, Deadline(120, clock), PipelineLimits())
    assert [m.reason for m in results] == [FALLBACK_REASON, FALLBACK_REASON]


def test_refresh_failure_in_one_header_batch_keeps_the_rest(store):
    """A revoked token during one metadata batch loses only that batch."""
    summaries = _personal(100)
    mailbox = FakeMailbox(unread=list(summaries), summaries=summaries)
    mailbox.fail_fetch_batches = {0}
    mailbox.error = RefreshError("invalid_grant: Token has been expired or revoked.")

    result = run_scan(mailbox, store, "alice@example.com", classifier=FakeLLM())

    assert [m.remote_id for m in result.messages] == [f"m{i}" for i in range(50, 100)]
    assert not result.is_complete
    assert store.get_session(result.session_id, "alice@example.com") is not None


def test_failed_header_batch_is_dropped(store):
    summaries = _personal(100)
    mailbox = FakeMailbox(unread=list(summaries), summaries=summaries)
    mailbox.fail_fetch_batches = {1}

    result = run_scan(mailbox, store, "alice@example.com", classifier=FakeLLM())

    assert result.scanned_count == 50
    assert {m.remote_id for m in result.messages} == {f"m{i}" for i in range(50)}
    assert not result.is_complete


def test_list_page_failure_ends_discovery(store):
    """IDs from pages before the failing one are still fetched and classified."""
    summaries = _personal(30)
    mailbox = FakeMailbox(unread=list(summaries), summaries=summaries)
    mailbox.fail_list_pages = {1}

    result = run_scan(mailbox, store, "alice@example.com", classifier=FakeLLM(), limits=PipelineLimits(page_size=10))

    assert mailbox.queries == ["is:unread", "is:unread"]
    assert [m.remote_id for m in result.messages] == [f"m{i}" for i in range(10)]
    assert result.has_more


def test_unexpected_llm_error_files_everything_under_notifications(store):
    summaries = _personal(50)
    mailbox = FakeMailbox(unread=list(summaries), summaries=summaries)
    llm = FakeLLM(error=TypeError("Could not resolve authentication method"))

    result = run_scan(mailbox, store, "alice@example.com", classifier=llm)

    assert len(result.messages) == 50
    assert result.counts["notifications"] == 50
    assert all(m.reason == FALLBACK_REASON for m in result.messages)


def test_llm_stops_once_past_95_percent(clock):
    """The second batch is never sent when the first one runs past the stop checkpoint."""
    backlog = list(_personal(100).values())

    def slow(messages):
        clock.advance(115)
        return {i: (MessageCategory.IMPORTANT, "Personal") for i in range(len(messages))}

    llm = FakeLLM(decide=slow)

    results = classify_backlog(backlog, llm, Deadline(120, clock), PipelineLimits())

    assert len(llm.batches) == 1
    assert len(results) == 100
    assert all(m.category == MessageCategory.IMPORTANT for m in results[:50])
    assert all(m.category == MessageCategory.NOTIFICATIONS for m in results[50:])
    assert all(m.reason == FALLBACK_REASON for m in results[50:])
