from __future__ import annotations
from typing import List, Optional
from pydantic import BaseModel, Field, model_validator

class ClassIn(BaseModel):
    class_name: str = Field(min_length=1, max_length=100)

class CellIn(BaseModel):
    subject: str = Field("", max_length=255)
    teacher_id: Optional[int] = None
    time: Optional[str] = Field(None, max_length=32)

class SettingsIn(BaseModel):
    periods: List[str] = Field(min_length=1)
    time_slots: List[str]

    @model_validator(mode="after")
    def _same_length(self):
        if len(self.periods) != len(self.time_slots):
            raise ValueError("periods and time_slots must have the same length")
        return self

class PeriodIn(BaseModel):
    period: Optional[str] = Field(None, max_length=16)
    time_slot: str = Field("", max_length=32)
