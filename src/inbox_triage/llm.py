"""LLM classification for messages the pattern pass could not bucket."""

from __future__ import annotations

import json
import logging
import re

import anthropic

from .constants import LLM_MAX_TOKENS, LLM_MODEL
from .errors import LLMResponseError
from .models import MessageCategory, MessageSummary

logger = logging.getLogger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

_PROMPT_TEMPLATE = """Classify each email into ONE of these categories:

CATEGORIES:
- important: Personal emails, work emails, emails requiring response/action, messages from real people
- receipts: Purchase confirmations, invoices, order confirmations, shipping notifications, payment confirmations
- subscriptions: Recurring billing (Netflix, Spotify, SaaS), membership renewals, subscription confirmations
- newsletters: Content newsletters, digests, editorial content (Substack, etc.)
- marketing: Promotional emails, sales, discounts, "limited time offers", emails with unsubscribe that aren't newsletters
- notifications: Automated alerts, security notifications, login alerts, app notifications

Emails to classify:
{email_list}

Respond with JSON only:
{{
  "classifications": [
    {{"index": 1, "category": "important", "reason": "Brief reason"}},
    {{"index": 2, "category": "receipts", "reason": "Order confirmation"}}
  ]
}}

Include ALL emails in your response. Be strict about "important" - only truly personal/work emails that need attention."""


def build_prompt(messages: list[MessageSummary]) -> str:
    email_list = "\n\n".join(
        f"{i}. From: {m.sender}\n   Subject: {m.subject}" for i, m in enumerate(messages, start=1)
    )
    return _PROMPT_TEMPLATE.format(email_list=email_list)


def parse_classifications(text: str, batch_size: int) -> dict[int, tuple[MessageCategory, str]]:
    """Parse the model's JSON reply into ``{0-based index: (category, reason)}``.

    Entries with an out-of-range index or an unknown category are skipped;
    a reply without a JSON object raises LLMResponseError.
    """
    match = _JSON_OBJECT_RE.search(text or "")
    if not match:
        raise LLMResponseError("No JSON object in classifier response.")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise LLMResponseError(f"Invalid JSON in classifier response: {exc}") from exc

    items = parsed.get("classifications") if isinstance(parsed, dict) else None
    if not isinstance(items, list):
        raise LLMResponseError("Classifier response has no 'classifications' list.")

    result: dict[int, tuple[MessageCategory, str]] = {}
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            index = int(item.get("index")) - 1
            category = MessageCategory(str(item.get("category", "")).lower())
        except (TypeError, ValueError):
            continue
        if 0 <= index < batch_size and index not in result:
            result[index] = (category, item.get("reason") or "AI classified")
    return result


class LLMClassifier:
    """Classifies a batch of message summaries with a single Claude call."""

    def __init__(
        self,
        client: anthropic.Anthropic | None = None,
        model: str = LLM_MODEL,
        max_tokens: int = LLM_MAX_TOKENS,
    ) -> None:
        self._client = client or anthropic.Anthropic()
        self._model = model
        self._max_tokens = max_tokens

    def classify_batch(
        self, messages: list[MessageSummary]
    ) -> dict[int, tuple[MessageCategory, str]]:
        try:
            response = self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                messages=[{"role": "user", "content": build_prompt(messages)}],
            )
            text = next((block.text for block in response.content if block.type == "text"), "")
        except anthropic.APIError:
            raise
        except (TypeError, ValueError, AttributeError) as exc:
            # e.g. the SDK's "Could not resolve authentication method"
            raise LLMResponseError(f"Classifier call failed: {exc}") from exc
        return parse_classifications(text, len(messages))
