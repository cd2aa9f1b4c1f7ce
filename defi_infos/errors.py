"""Exceptions raised while reading protocol accounts."""
from __future__ import annotations


class InfosError(Exception):
    """Base class for account reader errors."""


class DecodeError(InfosError, ValueError):
    """Account bytes do not fit the expected layout."""


class NotFoundError(InfosError, LookupError):
    """An explicitly requested account does not exist or is too short."""


class MissingContextError(InfosError, ValueError):
    """A user-scoped record was decoded without its user key."""
