from typing import Optional
from datetime import datetime
from .utils import now_utc, new_id
from sqlmodel import SQLModel, Field


class Project(SQLModel, table=True):
    """Top-level container a user creates; owns one checklist."""
    __tablename__ = "projects"

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    created_at: datetime | None = Field(default_factory=now_utc, index=True)


class Checklist(SQLModel, table=True):
    __tablename__ = "checklists"

    id: str = Field(default_factory=new_id, primary_key=True)
    # At most one checklist per project; enforced by a unique index so a
    # duplicate insert surfaces as an IntegrityError.
    project_id: str = Field(foreign_key="projects.id", index=True, sa_column_kwargs={"unique": True})
    title: str
    created_at: datetime | None = Field(default_factory=now_utc)


class Category(SQLModel, table=True):
    """Named, colored grouping of todos within a checklist.

    Siblings are ordered by (position, created_at). Positions are not
    renumbered after deletions.
    """
    __tablename__ = "categories"

    id: str = Field(default_factory=new_id, primary_key=True)
    checklist_id: str = Field(foreign_key="checklists.id", index=True)
    name: str
    color: Optional[str] = None
    position: int = Field(default=0, index=True)
    created_at: datetime | None = Field(default_factory=now_utc)


class Todo(SQLModel, table=True):
    __tablename__ = "todos"

    id: str = Field(default_factory=new_id, primary_key=True)
    checklist_id: str = Field(foreign_key="checklists.id", index=True)
    # NULL means the todo lives in the checklist's uncategorized bucket.
    category_id: Optional[str] = Field(default=None, foreign_key="categories.id", index=True)
    text: str
    completed: bool = Field(default=False)
    link: Optional[str] = None
    # Opaque text; no currency parsing happens in the store.
    price: Optional[str] = None
    notes: Optional[str] = None
    position: int = Field(default=0, index=True)
    created_at: datetime | None = Field(default_factory=now_utc)
    updated_at: datetime | None = Field(default_factory=now_utc)
