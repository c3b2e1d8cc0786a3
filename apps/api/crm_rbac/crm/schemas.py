from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class LifecycleResult(BaseModel):
    id: str
    status: Literal["deleted", "restored", "purged"]


class ReportingLineUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    manager_id: str | None = Field(default=None, alias="managerId")
