"""Export classified scan sessions to CSV or JSON."""

import csv
import json

from .models import ScanSession

_FIELDS = [
    "remote_id",
    "thread_id",
    "sender",
    "sender_email",
    "subject",
    "date",
    "category",
    "reason",
    "is_threaded",
    "unsubscribe_link",
]


def export_session(session: ScanSession, format: str, output_path: str) -> int:
    """Export a session's classified messages to a file.

    Args:
        session: The scan session to export.
        format: Output format, either 'csv' or 'json'.
        output_path: Path to write the output file.

    Returns the number of messages written.
    """
    rows = [
        {
            "remote_id": m.remote_id,
            "thread_id": m.thread_id,
            "sender": m.sender,
            "sender_email": m.sender_email,
            "subject": m.subject,
            "date": m.date,
            "category": m.category.value,
            "reason": m.reason,
            "is_threaded": m.is_threaded,
            "unsubscribe_link": m.unsubscribe_link or "",
        }
        for m in session.messages
    ]

    if format == "csv":
        with open(output_path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=_FIELDS)
            writer.writeheader()
            writer.writerows(rows)
    elif format == "json":
        with open(output_path, "w") as f:
            json.dump(
                {
                    "session_id": session.id,
                    "created_at": session.created_at,
                    "counts": session.counts_by_category,
                    "messages": rows,
                },
                f,
                indent=2,
            )
    else:
        raise ValueError(f"Unsupported export format {format!r}.")

    return len(rows)
