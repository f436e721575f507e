"""Response envelopes for the import endpoints."""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

DataT = TypeVar("DataT")


class ApiResponse(BaseModel, Generic[DataT]):
    success: bool = True
    data: DataT


class UploadAccepted(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    import_id: str = Field(..., alias="importId")
    message: str
    total_rows: int = Field(..., alias="totalRows")


class SupportedTypes(BaseModel):
    types: list[str]


class CancelAccepted(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    import_id: str = Field(..., alias="importId")
    cancel_requested: bool = Field(True, alias="cancelRequested")
