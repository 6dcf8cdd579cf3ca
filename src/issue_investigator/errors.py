"""Exception hierarchy for issue-investigator."""

from __future__ import annotations


class IssueInvestigatorError(RuntimeError):
    """Base class for application errors."""


class StateStoreError(IssueInvestigatorError):
    """A state file could not be replaced; the previous content is intact."""


class InvalidTriggerError(IssueInvestigatorError, ValueError):
    """Trigger input does not name a valid repository/issue pair."""


class InvestigationRunError(IssueInvestigatorError):
    """Investigation executable could not be run, with retryability hint."""

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient
