"""
Multiple-choice question generator results.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field

from ..base import Base, new_id, utc_now


class MCQGeneratorResult(Base, table=True):
    """Generated question set for one topic.

    Table: mcq_generator_results
    """

    __tablename__ = "mcq_generator_results"
    __table_args__ = ({"extend_existing": True},)

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    topic: str
    difficulty: Optional[str] = None
    total_questions: int = 0
    taxonomy_levels: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    questions_data: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    input_method: str = Field(default="text")
    file_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now, index=True)
    updated_at: datetime = Field(default_factory=utc_now, sa_column_kwargs={"onupdate": utc_now})
