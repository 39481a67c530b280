"""
report.py

Per-file, per-operation outcome of a seed run.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RunOutcome(str, Enum):
    success = "success"
    no_change = "no_change"


class OperationOutcome(str, Enum):
    success = "success"
    skipped = "skipped"
    dry_run = "dry_run"
    failed = "failed"


class OperationResult(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    index: int
    method: str
    url: str
    status_code: Optional[int] = None
    outcome: OperationOutcome
    message: Optional[str] = None


class FileReport(BaseModel):
    name: str
    operations: List[OperationResult] = Field(default_factory=list)

    @property
    def skipped(self) -> List[OperationResult]:
        return [op for op in self.operations if op.outcome == OperationOutcome.skipped.value]


class ExecutionReport(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    direction: str
    backend: str
    outcome: RunOutcome = RunOutcome.success
    files: List[FileReport] = Field(default_factory=list)

    @property
    def no_change(self) -> bool:
        return self.outcome == RunOutcome.no_change.value

    @property
    def skipped_count(self) -> int:
        return sum(len(f.skipped) for f in self.files)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
