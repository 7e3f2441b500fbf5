# cameratogether/domain/models.py
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GroupKind(str, Enum):
    LOCAL_TEMPORARY = "local_temporary"
    GLOBAL_TEMPORARY = "global_temporary"
    PERMANENT = "permanent"


class GroupStatus(str, Enum):
    RECRUITING = "recruiting"      # accepting members
    READY_CHECK = "ready_check"    # members frozen, waiting for everyone to be ready
    COUNTDOWN = "countdown"        # capture time scheduled
    PHOTO_TAKING = "photo_taking"
    COMPLETED = "completed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (GroupStatus.COMPLETED, GroupStatus.EXPIRED)


def default_display_name(user_id: str) -> str:
    return f"User {user_id[:8]}"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps without an offset are UTC; the backend sometimes omits it."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Member(BaseModel):
    user_id: str
    display_name: str = ""
    is_owner: bool = False
    ready: bool = False
    ready_at: Optional[datetime] = None
    joined_at: Optional[datetime] = None

    utc_timestamps = field_validator("ready_at", "joined_at")(as_utc)

    def model_post_init(self, __context) -> None:
        if not self.display_name:
            self.display_name = default_display_name(self.user_id)


class Group(BaseModel):
    """Snapshot of one collage group as seen by this device.

    Snapshots are replaced wholesale (``model_copy``) rather than mutated in
    place, so a failed operation never leaves a half-applied state behind.
    """

    id: str
    owner_id: str
    name: str
    kind: GroupKind
    status: GroupStatus = GroupStatus.RECRUITING
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
    members: List[Member] = Field(default_factory=list)

    utc_timestamps = field_validator(
        "finalized_at",
        "countdown_started_at",
        "scheduled_capture_time",
        "expires_at",
        "created_at",
        "updated_at",
    )(as_utc)

    @property
    def finalized(self) -> bool:
        return self.finalized_at is not None or self.status != GroupStatus.RECRUITING

    @property
    def member_count(self) -> int:
        return len(self.members) if self.members else self.current_member_count

    @property
    def is_full(self) -> bool:
        return self.member_count >= self.max_member

    @property
    def can_add_member(self) -> bool:
        return not self.is_full

    @property
    def all_members_ready(self) -> bool:
        return bool(self.members) and all(m.ready for m in self.members)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def is_owner(self, user_id: str) -> bool:
        return self.owner_id == user_id

    def member(self, user_id: str) -> Optional[Member]:
        return next((m for m in self.members if m.user_id == user_id), None)

    def has_member(self, user_id: str) -> bool:
        return self.member(user_id) is not None


class TemplateFrame(BaseModel):
    id: int
    path: str


class Template(BaseModel):
    """Collage layout served by the template catalogue (read-only)."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    photo_count: int
    view_box: str = Field(alias="viewBox")
    frames: List[TemplateFrame] = Field(default_factory=list)

    @property
    def id(self) -> str:
        return self.name
