from pydantic import BaseModel, Field, field_validator
from typing import Optional, Literal, List
from datetime import datetime

Status = Literal[
    "pending",
    "in_progress",
    "pending_verification",
    "verified_solved",
    "escalated",
    "reopened",
]
Category = Literal[
    "pothole",
    "streetlight",
    "garbage",
    "water_leak",
    "traffic_signal",
    "road_damage",
    "sewage",
    "parks",
    "other",
]
Priority = Literal["low", "medium", "high", "urgent"]


class IssueCreate(BaseModel):
    title: str = Field(min_length=5, max_length=200)
    description: str = Field(min_length=10, max_length=4000)
    category: Category
    priority: Priority = "medium"
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    address: str = Field(min_length=1, max_length=300)
    zone: str = Field(min_length=1, max_length=120)
    tags: List[str] = []

    @field_validator("title", "description", "address", "zone", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class UserLite(BaseModel):
    """Lightweight user info for reporter / assignee on issues."""
    id: Optional[int] = None
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None


class StatusChangeOut(BaseModel):
    status: Status
    changed_by_id: Optional[int] = None
    changed_at: Optional[datetime] = None
    reason: Optional[str] = None


class CommentOut(BaseModel):
    id: int
    text: str
    author: Optional[UserLite] = None
    is_internal: bool = False
    created_at: Optional[datetime] = None


class WorkProofOut(BaseModel):
    id: int
    url: str
    description: Optional[str] = None
    uploaded_by_id: Optional[int] = None
    uploaded_at: Optional[datetime] = None


class IssueOut(BaseModel):
    id: int
    title: str
    description: str
    category: Category
    priority: Priority
    status: Status

    lat: float
    lng: float
    address: str
    zone: str

    reported_by: Optional[UserLite] = None
    assigned_to: Optional[UserLite] = None
    assigned_department: Optional[str] = None
    assigned_at: Optional[datetime] = None
    due_date: Optional[datetime] = None

    resolved_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    escalated_at: Optional[datetime] = None
    escalation_reason: Optional[str] = None

    tags: List[str] = []
    is_archived: bool = False
    needs_attention: bool = False

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    photos: List[str] = []


class IssueDetailOut(IssueOut):
    status_history: List[StatusChangeOut] = []
    comments: List[CommentOut] = []
    work_proof: List[WorkProofOut] = []


class PaginatedIssuesOut(BaseModel):
    items: list[IssueOut]
    total: int
    page: int
    limit: int
    total_pages: int


class AssignIn(BaseModel):
    assigned_to_id: int
    assigned_department: Optional[str] = Field(default=None, max_length=120)
    due_date: Optional[datetime] = None


class StatusIn(BaseModel):
    status: Status
    reason: Optional[str] = Field(default=None, max_length=500)


class CommentIn(BaseModel):
    text: str = Field(min_length=1, max_length=4000)
    is_internal: bool = False

    @field_validator("text", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class ArchiveIn(BaseModel):
    archived: bool = True


class EscalateIn(BaseModel):
    issue_id: int
    reason: str = Field(min_length=5, max_length=500)

    @field_validator("reason", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class ReassignIn(BaseModel):
    issue_id: int
    new_assignee_id: int
    reason: Optional[str] = Field(default=None, max_length=500)
