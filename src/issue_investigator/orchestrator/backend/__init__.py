"""Investigation backend implementations."""

from issue_investigator.orchestrator.backend.base import (
    InvestigationBackend,
    InvestigationRequest,
    InvestigationResult,
)
from issue_investigator.orchestrator.backend.cli_backend import CliInvestigationBackend

__all__ = [
    "CliInvestigationBackend",
    "InvestigationBackend",
    "InvestigationRequest",
    "InvestigationResult",
]
