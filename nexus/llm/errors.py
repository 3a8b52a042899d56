"""Exceptions raised by the streaming layer."""

from __future__ import annotations


class StreamError(Exception):
    """Base class for terminal stream failures."""


class ProviderHTTPError(StreamError):
    """The provider answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ResumeError(StreamError):
    """A resume was requested that would duplicate already emitted output."""
