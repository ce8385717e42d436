"""
Version history models.

A record is written once by an explicit save and never mutated afterwards.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from .script import ScriptVersion


class ScriptVersionRecord(BaseModel):
    """One snapshot of a script in its append-only history."""

    id: str = Field(..., description="Content hash of the script")
    timestamp: str = Field(..., description="ISO-8601 UTC timestamp of the save")
    content: str
    version: ScriptVersion
    valid: bool
    notes: Optional[str] = None

    def metadata(self) -> dict:
        """Metadata persisted next to the content file (everything but the content)."""
        return self.model_dump(mode="json", exclude={"content"})
