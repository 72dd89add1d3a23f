from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

QuestionFieldType = Literal[
    "text", "textarea", "select", "multiselect", "file", "url", "email", "phone", "number", "date", "checkbox"
]


class QuestionField(BaseModel):
    key: str = Field(min_length=1, max_length=100)
    label: str
    type: QuestionFieldType = "text"
    required: bool = False
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    options: Optional[List[str]] = None
    word_limit: Optional[int] = Field(default=None, ge=1)
    min_length: Optional[int] = Field(default=None, ge=0)
    file_kind: Optional[Literal["resume", "headshot", "other"]] = None
    accept: Optional[str] = None
    max_file_size_mb: Optional[int] = Field(default=None, ge=1)
    order: int = 0


class QuestionSetUpsert(BaseModel):
    track: str
    fields: List[QuestionField]


class QuestionSetOut(BaseModel):
    question_set_id: int
    cycle_id: int
    track: str
    fields: List[QuestionField]
    updated_at: datetime

    class Config:
        from_attributes = True
