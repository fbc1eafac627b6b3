from __future__ import annotations
from typing import Optional
from pydantic import BaseModel, Field, field_validator

class TeacherIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    subject: Optional[str] = Field(None, max_length=255)
    post: Optional[str] = Field(None, max_length=255)
    contact_number: Optional[str] = Field(None, max_length=50)
    photo_url: Optional[str] = Field(None, max_length=500)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

class TeacherOut(TeacherIn):
    id: int
