"""Pytest fixtures: an in-memory Group API that enforces the backend's rules,
a controllable clock, sample templates and images."""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
from PIL import Image

from cameratogether.domain.errors import HttpError
from cameratogether.domain.group_coordinator import GroupCoordinator
from cameratogether.domain.models import Group, GroupKind, GroupStatus, Member, Template, TemplateFrame


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 10, 18, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeGroupAPI:
    """Behaves like the backend: owner is the first member, 409 on duplicate joins."""

    def __init__(self, clock: FakeClock, max_member: int = 100, countdown_seconds: int = 10):
        self.clock = clock
        self.max_member = max_member
        self.countdown_seconds = countdown_seconds
        self.groups: Dict[str, Group] = {}
        self.members: Dict[str, List[Member]] = {}
        self.photos: List[tuple] = []
        self.calls: List[str] = []
        self.failures: List[Exception] = []

    def fail_next(self, *errors: Exception) -> None:
        self.failures.extend(errors)

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if self.failures:
            raise self.failures.pop(0)

    def _group(self, group_id: str) -> Group:
        if group_id not in self.groups:
            raise HttpError(404, "group not found")
        return self.groups[group_id]

    def _by_token(self, token: str) -> Group:
        for g in self.groups.values():
            if g.invitation_token == token:
                return g
        raise HttpError(404, "invalid invitation token")

    def _save(self, group: Group) -> Group:
        group = group.model_copy(update={"current_member_count": len(self.members[group.id]), "updated_at": self.clock()})
        self.groups[group.id] = group
        return group.model_copy(update={"members": []})

    # --- GroupAPI ---

    async def list_groups(self, owner_user_id=None, limit=10, offset=0):
        self._record("list_groups")
        groups = [g for g in self.groups.values() if owner_user_id is None or g.owner_id == owner_user_id]
        return [g.model_copy(update={"members": []}) for g in groups[offset:offset + limit]]

    async def create_group(self, owner_user_id, name, group_type):
        self._record("create_group")
        group = Group(
            id=str(uuid.uuid4()),
            owner_id=owner_user_id,
            name=name,
            kind=group_type,
            max_member=self.max_member,
            invitation_token=str(uuid.uuid4()),
            created_at=self.clock(),
        )
        self.members[group.id] = [Member(user_id=owner_user_id, is_owner=True, joined_at=self.clock())]
        return self._save(group)

    async def get_group(self, group_id):
        self._record("get_group")
        return self._group(group_id).model_copy(update={"members": []})

    async def get_group_by_invitation(self, invitation_token):
        self._record("get_group_by_invitation")
        return self._by_token(invitation_token).model_copy(update={"members": []})

    async def join_group(self, invitation_token, user_id):
        self._record("join_group")
        group = self._by_token(invitation_token)
        if any(m.user_id == user_id for m in self.members[group.id]):
            raise HttpError(409, "already a member")
        if group.status != GroupStatus.RECRUITING or len(self.members[group.id]) >= group.max_member:
            raise HttpError(400, "cannot join")
        self.members[group.id].append(Member(user_id=user_id, joined_at=self.clock()))
        return self._save(group)

    async def get_group_members(self, group_id):
        self._record("get_group_members")
        self._group(group_id)
        return [m.model_copy() for m in self.members[group_id]]

    async def finalize_group(self, group_id, user_id):
        self._record("finalize_group")
        group = self._group(group_id)
        if group.owner_id != user_id:
            raise HttpError(403, "owner only")
        if group.status != GroupStatus.RECRUITING:
            raise HttpError(400, "not recruiting")
        return self._save(group.model_copy(update={
            "status": GroupStatus.READY_CHECK,
            "finalized_at": self.clock(),
            "max_member": len(self.members[group_id]),
        }))

    async def start_countdown(self, group_id, user_id, template_id):
        self._record("start_countdown")
        group = self._group(group_id)
        if group.owner_id != user_id or group.status != GroupStatus.READY_CHECK:
            raise HttpError(400, "cannot start countdown")
        now = self.clock()
        return self._save(group.model_copy(update={
            "status": GroupStatus.COUNTDOWN,
            "countdown_started_at": now,
            "scheduled_capture_time": now + timedelta(seconds=self.countdown_seconds),
            "template_id": template_id,
        }))

    async def mark_ready(self, group_id, user_id):
        self._record("mark_ready")
        self._group(group_id)
        for i, m in enumerate(self.members[group_id]):
            if m.user_id == user_id:
                self.members[group_id][i] = m.model_copy(update={"ready": True, "ready_at": self.clock()})
                return None
        raise HttpError(404, "member not found")

    async def leave_group(self, group_id, user_id):
        self._record("leave_group")
        self._group(group_id)
        self.members[group_id] = [m for m in self.members[group_id] if m.user_id != user_id]

    async def delete_group(self, group_id, user_id):
        self._record("delete_group")
        if self._group(group_id).owner_id != user_id:
            raise HttpError(403, "owner only")
        del self.groups[group_id]
        del self.members[group_id]

    async def upload_photo(self, group_id, user_id, frame_index, photo):
        self._record("upload_photo")
        self._group(group_id)
        self.photos.append((group_id, user_id, frame_index, photo))

    # --- test helpers ---

    def add_remote_member(self, group_id: str, user_id: str) -> None:
        self.members[group_id].append(Member(user_id=user_id, joined_at=self.clock()))
        self._save(self.groups[group_id])

    def set_status(self, group_id: str, status: GroupStatus) -> None:
        self.groups[group_id] = self.groups[group_id].model_copy(update={"status": status})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def group_api(clock):
    return FakeGroupAPI(clock)


@pytest.fixture
def coordinator(group_api, clock):
    return GroupCoordinator(group_api, clock=clock, poll_interval=0.01, countdown_seconds=10)


@pytest.fixture
def two_frame_template():
    return Template(
        name="two_vertical",
        photo_count=2,
        viewBox="0 0 1 1",
        frames=[
            TemplateFrame(id=1, path="M0.02 0.02H0.49V0.98H0.02V0.02Z"),
            TemplateFrame(id=2, path="M0.51 0.02H0.98V0.98H0.51V0.02Z"),
        ],
    )


@pytest.fixture
def red_image():
    return Image.new("RGB", (400, 300), (255, 0, 0))


@pytest.fixture
def blue_image():
    return Image.new("RGB", (300, 400), (0, 0, 255))


async def create_networked_group(coordinator: GroupCoordinator, owner_id: str = "U1", name: str = "Trip") -> Group:
    """Helper: create a global group through the coordinator."""
    return await coordinator.create_group(owner_id, name, GroupKind.GLOBAL_TEMPORARY)
