"""
errors.py
======================

Exception types shared across the package.

- ServiceError: the upstream Gemini call failed, or its reply could not be
  parsed into the expected shape. This is the only error that crosses
  component boundaries; sessions turn it into their ``error`` state.
- SessionStateError: a session was asked to do something its current
  state does not allow (for example changing an answer after submission).
"""


class ServiceError(Exception):
    """Upstream AI request failed or returned unusable data."""


class SessionStateError(Exception):
    """Rejected state-machine intent."""
