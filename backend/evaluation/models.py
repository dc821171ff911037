"""SQLModel data models.

Two tables: `subjects` and `competencies`. A competency belongs to exactly
one subject and is removed by the database when its subject is deleted
(`ON DELETE CASCADE`). Competency names are unique per subject only.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo so we never store it."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Subject(SQLModel, table=True):
    """A named grouping that owns zero or more competencies."""
    __tablename__ = "subjects"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(100), unique=True, nullable=False))
    description: Optional[str] = Field(default=None, sa_column=Column(String(500), nullable=True))
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))


class Competency(SQLModel, table=True):
    """A scored (0-10) evaluation criterion of a `Subject`.

    `marks` is stored as NUMERIC(4,2) and read back as a float.
    """
    __tablename__ = "competencies"
    __table_args__ = (UniqueConstraint("subject_id", "name", name="uq_competencies_subject_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    subject_id: int = Field(
        sa_column=Column(Integer, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    name: str = Field(sa_column=Column(String(100), nullable=False))
    marks: float = Field(sa_column=Column(Numeric(4, 2, asdecimal=False), nullable=False))
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
