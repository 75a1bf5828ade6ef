"""Exceptions raised by Inbox Triage."""


class TriageError(Exception):
    """Base class for all Inbox Triage errors."""


class NotFoundError(TriageError):
    """A user, session or credential record does not exist for the caller."""


class AuthorizationError(TriageError):
    """Gmail rejected the credentials even after a refresh."""


class LLMResponseError(TriageError):
    """The LLM classifier returned something that could not be parsed."""


class TaxonomyError(TriageError):
    """An edit would leave the category taxonomy invalid."""
