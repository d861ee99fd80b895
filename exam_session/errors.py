"""Exceptions raised by the store layer and the exam session engine."""

from __future__ import annotations


class StoreError(Exception):
    """A document store call failed."""


class RecordNotFound(StoreError):
    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(f"{collection}/{record_id} not found")
        self.collection = collection
        self.record_id = record_id


class StorePermissionError(StoreError):
    """The store refused the call for authorization reasons."""


class SessionError(Exception):
    """Base class for errors surfaced to the student."""


class SessionLoadError(SessionError):
    """The exam or its attempt could not be loaded; nothing may be rendered."""


class SubmissionError(SessionError):
    """The submission sequence failed part way; it must not be retried automatically."""


class SessionClosedError(SessionError):
    """The session no longer accepts input (submitting, submitted or closed)."""


class InvalidAnswerError(SessionError):
    """The question or option does not belong to this exam."""
