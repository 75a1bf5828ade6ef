"""Authentication helpers for Gmail API."""

from __future__ import annotations

import logging

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import Resource, build

from inbox_triage import constants
from inbox_triage.errors import NotFoundError
from inbox_triage.gmail_client import GmailMailbox
from inbox_triage.models import UserAccount

logger = logging.getLogger(__name__)


def _build_service(creds: Credentials) -> Resource:
    return build("gmail", "v1", credentials=creds, cache_discovery=False)


def _credentials_for(account: UserAccount) -> Credentials:
    return Credentials(
        token=account.access_token or None,
        refresh_token=account.refresh_token,
        token_uri=constants.TOKEN_URI,
        client_id=account.client_id,
        client_secret=account.client_secret,
        scopes=constants.SCOPES,
    )


class CredentialRefresher:
    """Exchanges a user's refresh token for a new access token on demand.

    The new token is written to the store before the caller retries, so a
    crash right after a refresh never leaves a stale token behind.
    """

    def __init__(self, store, account: UserAccount) -> None:
        self._store = store
        self._account = account

    def __call__(self) -> Resource:
        creds = _credentials_for(self._account)
        creds.refresh(Request())
        self._account.access_token = creds.token
        self._store.update_access_token(self._account.user_id, creds.token)
        logger.info("Refreshed access token for %s", self._account.user_id)
        return _build_service(creds)


def open_mailbox(store, user_id: str) -> GmailMailbox:
    """Return a GmailMailbox for a stored user.

    Raises NotFoundError when the user has no stored credentials.
    """
    account = store.get_user(user_id)
    if account is None or not account.refresh_token:
        raise NotFoundError(f"User '{user_id}' not found. Run 'inbox-triage auth' first.")
    service = _build_service(_credentials_for(account))
    return GmailMailbox(service, refresh=CredentialRefresher(store, account))


def login(store) -> UserAccount:
    """Run the local OAuth browser flow and store the resulting account.

    Requires credentials.json at CREDENTIALS_PATH.  Returns the stored
    account, keyed by the mailbox's email address.
    """
    constants.CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    if not constants.CREDENTIALS_PATH.exists():
        raise FileNotFoundError(
            f"Credentials file not found at {constants.CREDENTIALS_PATH}.\n"
            "Download your OAuth client credentials from the Google Cloud Console "
            "and save them as:\n"
            f"  {constants.CREDENTIALS_PATH}"
        )
    flow = InstalledAppFlow.from_client_secrets_file(str(constants.CREDENTIALS_PATH), constants.SCOPES)
    creds = flow.run_local_server(port=0)

    profile = _build_service(creds).users().getProfile(userId="me").execute()
    email = profile["emailAddress"]
    account = UserAccount(
        user_id=email,
        email=email,
        refresh_token=creds.refresh_token,
        access_token=creds.token or "",
        client_id=creds.client_id or "",
        client_secret=creds.client_secret or "",
    )
    store.save_user(account)
    logger.info("Stored credentials for %s", email)
    return account
