"""Import job payloads: options, progress and result.

Field aliases keep the camelCase keys the front end already consumes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_BATCH_SIZE = 100
MAX_BATCH_SIZE = 1000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ImportStage(str, Enum):
    QUEUED = "queued"
    PARSING = "parsing"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ImportStage.COMPLETED, ImportStage.FAILED, ImportStage.CANCELLED)


class ImportOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    dry_run: bool = Field(False, alias="dryRun")
    batch_size: int = Field(DEFAULT_BATCH_SIZE, alias="batchSize")
    skip_validation: bool = Field(False, alias="skipValidation")
    skip_association: bool = Field(False, alias="skipAssociation")
    auto_detect_type: bool = Field(True, alias="autoDetectType")

    @field_validator("batch_size", mode="before")
    @classmethod
    def clamp_batch_size(cls, v: Any) -> int:
        """Falsy sizes fall back to the default, others are clamped to [1, 1000]."""
        if not v:
            return DEFAULT_BATCH_SIZE
        return max(1, min(int(v), MAX_BATCH_SIZE))

    @field_validator("dry_run", "skip_validation", "skip_association", mode="before")
    @classmethod
    def none_is_false(cls, v: Any) -> Any:
        return False if v is None else v

    @field_validator("auto_detect_type", mode="before")
    @classmethod
    def none_is_true(cls, v: Any) -> Any:
        return True if v is None else v


class ImportProgress(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    stage: ImportStage = ImportStage.QUEUED
    progress: int = 0
    message: str = "In coda"
    started_at: datetime = Field(default_factory=utcnow, alias="startedAt")
    completed_at: datetime | None = Field(None, alias="completedAt")


class RowError(BaseModel):
    row: int
    error: str


class InsertedCounts(BaseModel):
    clienti_privati: int = 0
    contratti_luce: int = 0
    contratti_gas: int = 0

    def add(self, other: "InsertedCounts") -> None:
        self.clienti_privati += other.clienti_privati
        self.contratti_luce += other.contratti_luce
        self.contratti_gas += other.contratti_gas


class ImportResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    file_name: str = Field("file.csv", alias="fileName")
    total_rows: int = Field(0, alias="totalRows")
    processed: int = 0
    errors: list[RowError] = Field(default_factory=list)
    inserted: InsertedCounts = Field(default_factory=InsertedCounts)
    warnings: list[str] = Field(default_factory=list)


class ImportJob(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    options: ImportOptions = Field(default_factory=ImportOptions)
    progress: ImportProgress = Field(default_factory=ImportProgress)
    result: ImportResult = Field(default_factory=ImportResult)
    cancel_requested: bool = Field(False, alias="cancelRequested")
