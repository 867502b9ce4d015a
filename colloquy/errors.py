"""
colloquy/errors.py
Error taxonomy shared by the core and the store boundary.
"""


class ColloquyError(Exception):
    """Base class for every error raised by this package."""


class NotFound(ColloquyError):
    """A referenced meeting, question, respondent or department is absent."""

    def __init__(self, kind: str, ident):
        super().__init__(f"{kind} {ident} not found")
        self.kind  = kind
        self.ident = ident


class ValidationError(ColloquyError, ValueError):
    """Input rejected before it reaches core logic."""


class AuthorizationError(ColloquyError):
    """The requester lacks the privilege or eligibility for an action."""


class AggregationSkip(ColloquyError):
    """
    A feedback entry cannot be placed in a rollup.

    Raised and caught inside the aggregator only; it is logged and the entry
    is excluded, never escalated to the caller.
    """

    def __init__(self, entry_id, reason: str):
        super().__init__(f"entry {entry_id}: {reason}")
        self.entry_id = entry_id
        self.reason   = reason
