from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime

from cameratogether.domain.models import Group, GroupKind, GroupStatus, Member, Template, as_utc

# --- Group API payloads (snake_case on the wire) ---

class GroupPayload(BaseModel):
    id: str
    owner_user_id: str
    name: str
    group_type: GroupKind
    status: GroupStatus
    max_member: int
    current_member_count: int = 0
    invitation_token: str
    finalized_at: Optional[datetime] = None
    countdown_started_at: Optional[datetime] = None
    scheduled_capture_time: Optional[datetime] = None
    template_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    utc_timestamps = field_validator(
        "finalized_at",
        "countdown_started_at",
        "scheduled_capture_time",
        "expires_at",
        "created_at",
        "updated_at",
    )(as_utc)

    def to_domain(self, members: Optional[List[Member]] = None) -> Group:
        return Group(
            id=self.id,
            owner_id=self.owner_user_id,
            name=self.name,
            kind=self.group_type,
            status=self.status,
            max_member=self.max_member,
            current_member_count=self.current_member_count,
            invitation_token=self.invitation_token,
            finalized_at=self.finalized_at,
            countdown_started_at=self.countdown_started_at,
            scheduled_capture_time=self.scheduled_capture_time,
            template_id=self.template_id,
            expires_at=self.expires_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
            members=members or [],
        )

class GroupListPayload(BaseModel):
    groups: List[GroupPayload] = Field(default_factory=list)
    total_count: int = 0

class MemberPayload(BaseModel):
    id: Optional[str] = None
    group_id: Optional[str] = None
    user_id: str
    name: Optional[str] = None
    is_owner: bool = False
    ready_status: bool = False
    ready_at: Optional[datetime] = None
    joined_at: Optional[datetime] = None

    utc_timestamps = field_validator("ready_at", "joined_at")(as_utc)

    def to_domain(self) -> Member:
        return Member(
            user_id=self.user_id,
            display_name=self.name or "",
            is_owner=self.is_owner,
            ready=self.ready_status,
            ready_at=self.ready_at,
            joined_at=self.joined_at,
        )

class MemberListPayload(BaseModel):
    members: List[MemberPayload] = Field(default_factory=list)
    count: int = 0

class CreateGroupBody(BaseModel):
    owner_user_id: str
    name: str
    group_type: GroupKind

class UserActionBody(BaseModel):
    user_id: str

class StartCountdownBody(BaseModel):
    user_id: str
    template_id: str

# --- Template catalogue ---

class TemplateListPayload(BaseModel):
    templates: List[Template] = Field(default_factory=list)
    count: int = 0
    photo_count: Optional[int] = None

# --- Collage service request ---

class CollageRequest(BaseModel):
    id: str = "collage"
    template: Template

    # Photos in frame order; URLs, local paths or base64 (data URLs supported)
    images: List[str]

    canvas_size: Optional[int] = Field(default=None, gt=0, le=4096)
    format: Optional[str] = None
