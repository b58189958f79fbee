"""Typed records persisted by the test/function graph store."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid", frozen=False)


class TestRecord(RecordModel):
    """A test case, identified by its file and fully qualified name."""

    __test__ = False

    id: int
    file_path: str
    test_name: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def natural_key(self) -> tuple[str, str]:
        return (self.file_path, self.test_name)


class FunctionRecord(RecordModel):
    """A function version; any change to its line span is a new record."""

    id: int
    file_path: str
    function_name: str
    start_line: int
    end_line: int
    commit_hash: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _check_span(self) -> "FunctionRecord":
        if self.start_line > self.end_line:
            raise ValueError("start_line must not exceed end_line")
        return self

    @property
    def natural_key(self) -> tuple[str, str, int, int]:
        return (self.file_path, self.function_name, self.start_line, self.end_line)


class LinkRecord(RecordModel):
    """Edge recording that a test exercised a function."""

    id: int
    test_id: int
    function_id: int
    created_at: datetime = Field(default_factory=utc_now)


class GraphStats(RecordModel):
    """Row counts reported by ``testlens status``."""

    tests: int = 0
    functions: int = 0
    links: int = 0


__all__ = ["FunctionRecord", "GraphStats", "LinkRecord", "RecordModel", "TestRecord", "utc_now"]
