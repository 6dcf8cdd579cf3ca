"""Request models for the trigger endpoint."""

from __future__ import annotations

from pydantic import BaseModel, Field, StrictInt, field_validator

from issue_investigator.orchestrator.models import REPO_PATTERN


class InvestigateRequest(BaseModel):
    repo: str
    issue: StrictInt = Field(gt=0)

    @field_validator("repo")
    @classmethod
    def _validate_repo(cls, v: str) -> str:
        if not REPO_PATTERN.match(v):
            raise ValueError("Invalid repo format (expected owner/repo)")
        return v
