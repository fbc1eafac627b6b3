from __future__ import annotations
import datetime as dt
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

# absent teacher id -> period -> substitute teacher id (None = пусто)
Matrix = Dict[int, Dict[str, Optional[int]]]

class PlanIn(BaseModel):
    date: dt.date
    absent_teacher_ids: List[int] = Field(default_factory=list)
    assignments: Matrix = Field(default_factory=dict)

class AvailableIn(PlanIn):
    period: str = Field(min_length=1, max_length=16)
    for_absent_id: Optional[int] = None

class CommitIn(BaseModel):
    # date может отсутствовать: это бизнес-отказ NO_DATE, а не 422
    date: Optional[dt.date] = None
    absent_teacher_ids: List[int] = Field(default_factory=list)
    assignments: Matrix = Field(default_factory=dict)
    remarks: Dict[int, Dict[str, str]] = Field(default_factory=dict)

    @field_validator("date", mode="before")
    @classmethod
    def _blank_date(cls, v):
        return None if v == "" else v

class SubstitutionOut(BaseModel):
    date: dt.date
    absent_teacher_id: Optional[int]
    absent_teacher: str
    period: str
    original_class: str
    original_subject: str
    substitute_teacher_id: Optional[int]
    substitute_teacher: str
    remarks: str = ""
