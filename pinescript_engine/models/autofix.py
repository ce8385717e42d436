"""
Autofix models (deterministic script rewrites).

Autofix is a trust boundary: whenever we rewrite a script, the result must be
explicit and auditable, so every applied repair is listed in ``changes`` and
a unified diff is attached.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class FixResult(BaseModel):
    """Outcome of running the autofix engine on a script."""

    fixed: bool = False
    script: str
    changes: List[str] = Field(default_factory=list)
    diff: Optional[str] = None

    @model_validator(mode="after")
    def _fixed_matches_changes(self) -> "FixResult":
        self.fixed = bool(self.changes)
        return self
