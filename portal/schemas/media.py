"""Media Schemas — folder and item mutations.

Invariants:
    - PATCH bodies distinguish an omitted field (keep) from an explicit null (clear)
      via model_fields_set
"""

from uuid import UUID

from pydantic import BaseModel, Field


class FolderCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    parent_id: UUID | None = None
    color: str | None = Field(None, max_length=64)


class FolderUpdate(BaseModel):
    name: str | None = Field(None, max_length=200)
    parent_id: UUID | None = None
    color: str | None = Field(None, max_length=64)


class ItemUpdate(BaseModel):
    file_name: str | None = Field(None, max_length=400)
    folder_id: UUID | None = None
