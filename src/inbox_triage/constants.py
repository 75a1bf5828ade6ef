"""Constants for Inbox Triage."""

import os
from pathlib import Path

# --- Config paths ---
CONFIG_DIR = Path(os.environ.get("INBOX_TRIAGE_HOME", Path.home() / ".inbox-triage"))
CREDENTIALS_PATH = CONFIG_DIR / "credentials.json"
STORE_DB_PATH = CONFIG_DIR / "triage.db"

# --- Logging ---
LOG_LEVEL_ENV_VAR = "INBOX_TRIAGE_LOG_LEVEL"
USER_ENV_VAR = "INBOX_TRIAGE_USER"

# --- Gmail API ---
SCOPES = [
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/gmail.settings.basic",  # sender filters
]
TOKEN_URI = "https://oauth2.googleapis.com/token"
UNREAD_QUERY = "is:unread"
PAGE_SIZE = 500  # messages per list page
METADATA_BATCH_SIZE = 50  # messages per BatchHttpRequest
MODIFY_BATCH_SIZE = 100  # messages per batchModify call
METADATA_HEADERS = ["From", "Subject", "Date", "List-Unsubscribe", "References", "In-Reply-To"]
CLEANUP_MAX_MESSAGES = 5000
BLOCK_RECENT_LIMIT = 50  # existing messages moved when a sender is blocked

# --- Scan budget ---
MAX_RUNTIME_SECONDS = 120.0
HARD_CEILING = 5000  # ids collected when scanning everything
CHUNK_SIZE = 500  # ids collected per regular scan
DEFAULT_MAX_MESSAGES = 500
DISCOVERY_CHECKPOINT = 0.30
FETCH_CHECKPOINT = 0.70
LLM_START_CHECKPOINT = 0.90
LLM_STOP_CHECKPOINT = 0.95

# --- LLM ---
LLM_MODEL = "claude-sonnet-4-20250514"
LLM_MAX_TOKENS = 2048
LLM_BATCH_SIZE = 50
LLM_MAX_BATCHES = 2

# --- Labels ---
APP_LABEL_SUFFIX = " (Triage)"

# Gmail only accepts these label colours.
GMAIL_LABEL_COLORS = [
    ("#fb4c2f", "#ffffff"),  # red
    ("#cc3a21", "#ffffff"),  # dark red
    ("#ffad47", "#ffffff"),  # orange
    ("#fad165", "#000000"),  # yellow
    ("#16a766", "#ffffff"),  # green
    ("#43d692", "#000000"),  # light green
    ("#4a86e8", "#ffffff"),  # blue
    ("#a479e2", "#ffffff"),  # purple
    ("#f691b3", "#000000"),  # pink
    ("#2da2bb", "#ffffff"),  # cyan
    ("#b99aff", "#000000"),  # light purple
    ("#ff7537", "#ffffff"),  # orange red
]

# --- Pattern classifier signals ---
RECEIPT_SENDER_PATTERNS = [
    "receipt",
    "invoice",
    "order",
    "shipping",
    "tracking",
    "confirmation",
    "payment",
    "billing@",
    "orders@",
    "ship-confirm",
    "shipment",
    "delivery",
]
RECEIPT_SUBJECT_PATTERNS = [
    "order confirmation",
    "your order",
    "order #",
    "receipt for",
    "invoice",
    "payment received",
    "shipping confirmation",
    "has shipped",
    "out for delivery",
    "delivered",
    "tracking number",
]

SUBSCRIPTION_SENDER_PATTERNS = [
    "billing@",
    "subscription",
    "membership",
    "renewal",
    "account@netflix",
    "account@spotify",
    "billing@apple",
]
SUBSCRIPTION_SUBJECT_PATTERNS = [
    "subscription",
    "renewal",
    "billing",
    "membership",
    "your plan",
    "payment due",
    "recurring",
    "auto-renewal",
    "monthly charge",
    "annual charge",
]

NEWSLETTER_SENDER_PATTERNS = [
    "newsletter",
    "digest",
    "weekly@",
    "daily@",
    "substack",
    "news@",
    "editorial",
]
NEWSLETTER_SUBJECT_PATTERNS = [
    "newsletter",
    "digest",
    "weekly roundup",
    "daily brief",
    "this week in",
    "edition",
]

MARKETING_SENDER_PATTERNS = [
    "marketing",
    "promo",
    "offers@",
    "deals@",
    "sales@",
    "store@",
    "shop@",
]
MARKETING_SUBJECT_PATTERNS = [
    "% off",
    "sale",
    "discount",
    "limited time",
    "special offer",
    "don't miss",
    "exclusive deal",
    "flash sale",
    "coupon",
    "free shipping",
    "last chance",
    "ends today",
    "save $",
]

NOTIFICATION_SENDER_PATTERNS = [
    "noreply@",
    "no-reply@",
    "notifications@",
    "alerts@",
    "mailer-daemon",
    "postmaster",
    "donotreply",
    "notify@",
    "security@",
    "login@",
    "verification@",
]

THREAD_SUBJECT_PREFIXES = ("re:", "fwd:", "fw:")
