"""View models exchanged with clients: trees, flat checklists and request payloads.

Trees are plain pydantic models (not table models) so the client-side
transforms in `checklists.client_state` can copy and rebuild them freely.
"""
from typing import List, Optional, Union
from datetime import datetime

from pydantic import BaseModel, Field

from .utils import new_id

# A price as entered by the user: text such as "2,50" or a number.
Price = Union[str, int, float]


class TodoNode(BaseModel):
    id: str = Field(default_factory=new_id)
    text: str
    completed: bool = False
    link: Optional[str] = None
    price: Optional[Price] = None
    notes: Optional[str] = None
    position: int = 0
    # Informational only when saving a categorized tree: the reconciler
    # uses the container a todo is found in, not this value.
    category_id: Optional[str] = None


class CategoryNode(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    color: Optional[str] = None
    position: int = 0
    todos: List[TodoNode] = Field(default_factory=list)


class ChecklistTree(BaseModel):
    """Checklist with todos grouped into categories plus an uncategorized bucket."""
    id: str = Field(default_factory=new_id)
    title: str
    project_id: str
    categories: List[CategoryNode] = Field(default_factory=list)
    uncategorized_todos: List[TodoNode] = Field(default_factory=list)


class FlatChecklist(BaseModel):
    """Legacy view: every todo of the checklist in one ordered sequence."""
    id: str = Field(default_factory=new_id)
    title: str
    project_id: str
    todos: List[TodoNode] = Field(default_factory=list)


class ProjectOut(BaseModel):
    id: str
    name: str
    created_at: Optional[datetime] = None


class ProjectWorkspace(BaseModel):
    """A project together with both views of its checklist."""
    project: ProjectOut
    checklist: Optional[FlatChecklist] = None
    checklist_with_categories: Optional[ChecklistTree] = None


class ContainerTotals(BaseModel):
    category_id: Optional[str] = None
    name: Optional[str] = None
    open_total: float = 0.0
    open_total_formatted: str
    open_count: int = 0
    completed_count: int = 0
    priced_open_count: int = 0


class ChecklistTotals(BaseModel):
    checklist_id: str
    categories: List[ContainerTotals] = Field(default_factory=list)
    uncategorized: ContainerTotals
    open_total: float = 0.0
    open_total_formatted: str


# --- request payloads -------------------------------------------------------

class ProjectCreate(BaseModel):
    name: str


class ProjectUpdate(BaseModel):
    name: Optional[str] = None


class ChecklistCreate(BaseModel):
    title: Optional[str] = None
    id: Optional[str] = None
    with_default_category: bool = True


class ChecklistUpdate(BaseModel):
    title: Optional[str] = None


class CategoryCreate(BaseModel):
    name: str
    color: Optional[str] = None
    position: Optional[int] = None
    id: Optional[str] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None
    position: Optional[int] = None


class TodoCreate(BaseModel):
    """Input for creating a todo: text plus optional price/link/notes."""
    text: str
    link: Optional[str] = None
    price: Optional[Price] = None
    notes: Optional[str] = None
    category_id: Optional[str] = None
    id: Optional[str] = None


class TodoUpdate(BaseModel):
    text: Optional[str] = None
    completed: Optional[bool] = None
    link: Optional[str] = None
    price: Optional[Price] = None
    notes: Optional[str] = None
    category_id: Optional[str] = None
    position: Optional[int] = None
