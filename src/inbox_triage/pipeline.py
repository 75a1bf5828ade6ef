"""Scan orchestration - discovers unread IDs, fetches headers, classifies, saves.

Every phase runs against one wall-clock ``Deadline``.  Before each new unit
of work (a list page, a header batch, an LLM call) the pipeline checks the
checkpoint for its phase and stops early instead of overrunning the budget;
whatever was gathered up to then is classified and saved.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable

from . import constants
from .classifier import classify_all, count_by_category
from .gmail_client import REMOTE_ERRORS
from .models import (
    ClassifiedMessage,
    MessageCategory,
    MessageSummary,
    ScanResult,
    ScanSession,
)

logger = logging.getLogger(__name__)

FALLBACK_REASON = "Uncategorized"


@dataclass(frozen=True)
class PipelineLimits:
    """Budget and batch sizes for one scan."""

    max_runtime: float = constants.MAX_RUNTIME_SECONDS
    hard_ceiling: int = constants.HARD_CEILING
    chunk_size: int = constants.CHUNK_SIZE
    page_size: int = constants.PAGE_SIZE
    metadata_batch_size: int = constants.METADATA_BATCH_SIZE
    llm_batch_size: int = constants.LLM_BATCH_SIZE
    llm_max_batches: int = constants.LLM_MAX_BATCHES
    discovery_checkpoint: float = constants.DISCOVERY_CHECKPOINT
    fetch_checkpoint: float = constants.FETCH_CHECKPOINT
    llm_start_checkpoint: float = constants.LLM_START_CHECKPOINT
    llm_stop_checkpoint: float = constants.LLM_STOP_CHECKPOINT


class Deadline:
    """A wall-clock budget measured from construction."""

    def __init__(self, total_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.total = total_seconds
        self._clock = clock
        self._start = clock()

    def elapsed(self) -> float:
        return self._clock() - self._start

    def elapsed_ms(self) -> int:
        return int(self.elapsed() * 1000)

    def past(self, fraction: float) -> bool:
        """True once more than ``fraction`` of the budget has been used."""
        return self.elapsed() > self.total * fraction


def discover_ids(
    mailbox,
    effective_max: int,
    deadline: Deadline,
    limits: PipelineLimits,
) -> tuple[list[str], bool]:
    """Page through unread IDs until the cap, the last page or the checkpoint.

    Returns (ids, hit_time_limit).  A failing page ends discovery.
    """
    ids: list[str] = []
    page_token: str | None = None

    while len(ids) < effective_max:
        if deadline.past(limits.discovery_checkpoint):
            logger.info("Time limit approaching for ID discovery (%d ids)", len(ids))
            return ids, True
        try:
            page, page_token = mailbox.list_message_ids_page(
                constants.UNREAD_QUERY,
                min(limits.page_size, effective_max - len(ids)),
                page_token,
            )
        except REMOTE_ERRORS:
            logger.exception("Error listing unread messages, ending discovery")
            break

        ids.extend(page[: effective_max - len(ids)])
        logger.debug("Fetched %d message IDs so far", len(ids))
        if not page_token:
            break

    return ids, False


def fetch_summaries(
    mailbox,
    ids: list[str],
    deadline: Deadline,
    limits: PipelineLimits,
    callback: Callable[[int, int], None] | None = None,
) -> tuple[list[MessageSummary], bool]:
    """Fetch headers batch by batch until done or the fetch checkpoint passes.

    Returns (summaries, hit_time_limit).  Failed items and failed batches
    are dropped.
    """
    summaries: list[MessageSummary] = []
    size = limits.metadata_batch_size
    total_batches = (len(ids) + size - 1) // size

    for batch_num in range(total_batches):
        if deadline.past(limits.fetch_checkpoint):
            logger.info("Time limit approaching for header fetching (%d fetched)", len(summaries))
            return summaries, True

        chunk = ids[batch_num * size : (batch_num + 1) * size]
        try:
            summaries.extend(mailbox.fetch_metadata(chunk))
        except REMOTE_ERRORS:
            logger.exception("Header batch %d failed, skipping %d messages", batch_num + 1, len(chunk))

        if callback:
            callback(batch_num + 1, total_batches)

    return summaries, False


def _fallback(messages: list[MessageSummary]) -> list[ClassifiedMessage]:
    return [
        ClassifiedMessage.from_summary(m, MessageCategory.NOTIFICATIONS, FALLBACK_REASON)
        for m in messages
    ]


def classify_backlog(
    backlog: list[MessageSummary],
    classifier,
    deadline: Deadline,
    limits: PipelineLimits,
) -> list[ClassifiedMessage]:
    """Send uncategorized messages to the LLM, one batch at a time.

    Every message comes back exactly once: anything the LLM does not answer
    for (failed call, malformed reply, missing entry, skipped batch) is
    filed under notifications.
    """
    if not backlog:
        return []
    if classifier is None or deadline.past(limits.llm_start_checkpoint):
        return _fallback(backlog)

    results: list[ClassifiedMessage] = []
    size = limits.llm_batch_size

    for batch_num, start in enumerate(range(0, len(backlog), size)):
        if batch_num >= limits.llm_max_batches:
            results.extend(_fallback(backlog[start:]))
            break
        if deadline.past(limits.llm_stop_checkpoint):
            logger.info("Time limit reached, skipping remaining LLM classification")
            results.extend(_fallback(backlog[start:]))
            break

        batch = backlog[start : start + size]
        try:
            decisions = classifier.classify_batch(batch)
        except Exception:  # noqa: BLE001
            logger.exception("LLM classification failed for batch %d", batch_num + 1)
            decisions = {}

        for index, msg in enumerate(batch):
            if index in decisions:
                category, reason = decisions[index]
                results.append(ClassifiedMessage.from_summary(msg, category, reason))
            else:
                results.append(
                    ClassifiedMessage.from_summary(msg, MessageCategory.NOTIFICATIONS, FALLBACK_REASON)
                )

    return results


def _estimate_unread(mailbox) -> int:
    try:
        return mailbox.estimate_unread()
    except REMOTE_ERRORS:
        logger.exception("Error estimating unread count")
        return 0


def run_scan(
    mailbox,
    store,
    user_id: str,
    scan_all: bool = False,
    max_messages: int = constants.DEFAULT_MAX_MESSAGES,
    classifier=None,
    limits: PipelineLimits | None = None,
    clock: Callable[[], float] = time.monotonic,
    callback: Callable[[int, int], None] | None = None,
) -> ScanResult:
    """Run a full budgeted scan: discover IDs, fetch headers, classify, save."""
    limits = limits or PipelineLimits()
    deadline = Deadline(limits.max_runtime, clock)
    effective_max = limits.hard_ceiling if scan_all else min(max_messages, limits.chunk_size)
    logger.info("Starting scan for %s, scan_all=%s, effective_max=%d", user_id, scan_all, effective_max)

    known_senders = store.known_senders(user_id)
    total_unread = _estimate_unread(mailbox)

    # Step 1: discover IDs
    ids, hit_time_limit = discover_ids(mailbox, effective_max, deadline, limits)
    hit_max_limit = len(ids) >= limits.hard_ceiling
    logger.info("Collected %d message IDs", len(ids))

    # Step 2: fetch headers
    summaries, fetch_timed_out = fetch_summaries(mailbox, ids, deadline, limits, callback)
    hit_time_limit = hit_time_limit or fetch_timed_out

    # Step 3: pattern pass
    classified, backlog = classify_all(summaries, known_senders)
    logger.info(
        "Processed %d messages. Pattern pass: %d classified, %d for LLM",
        len(summaries),
        len(classified),
        len(backlog),
    )

    # Step 4: LLM pass
    classified.extend(classify_backlog(backlog, classifier, deadline, limits))

    # Step 5: aggregate and persist
    counts = count_by_category(classified)
    session = ScanSession(
        id=str(uuid.uuid4()),
        user_id=user_id,
        total_unread_estimate=total_unread,
        counts_by_category=counts,
        messages=classified,
    )
    store.save_session(session)

    scanned = len(summaries)
    result = ScanResult(
        session_id=session.id,
        messages=classified,
        counts=counts,
        total_unread_estimate=total_unread,
        scanned_count=scanned,
        has_more=total_unread > scanned,
        is_complete=not hit_time_limit and not hit_max_limit and scanned >= len(ids),
        hit_max_limit=hit_max_limit,
        hit_time_limit=hit_time_limit,
        elapsed_ms=deadline.elapsed_ms(),
    )
    logger.info("Scan complete in %dms, session %s", result.elapsed_ms, session.id)
    return result
