# cameratogether/domain/state_machine.py
"""Group status transitions and the guards that protect them.

Every function here is pure: it either raises ``TransitionError`` (or
``ValidationError`` for bad input) or returns a new ``Group`` snapshot.
Nothing touches the network.
"""
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, List, Optional, Tuple, Union

from cameratogether.config.settings import settings
from cameratogether.domain.errors import TransitionError, ValidationError
from cameratogether.domain.models import Group, GroupKind, GroupStatus, Member

ALLOWED_TRANSITIONS: Dict[GroupStatus, FrozenSet[GroupStatus]] = {
    GroupStatus.RECRUITING: frozenset({GroupStatus.READY_CHECK, GroupStatus.EXPIRED}),
    GroupStatus.READY_CHECK: frozenset({GroupStatus.COUNTDOWN, GroupStatus.EXPIRED}),
    GroupStatus.COUNTDOWN: frozenset({GroupStatus.PHOTO_TAKING, GroupStatus.EXPIRED}),
    GroupStatus.PHOTO_TAKING: frozenset({GroupStatus.COMPLETED, GroupStatus.EXPIRED}),
    GroupStatus.COMPLETED: frozenset(),
    GroupStatus.EXPIRED: frozenset(),
}


def can_transition(current: GroupStatus, target: GroupStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition(group: Group, target: GroupStatus, now: Optional[datetime] = None) -> Group:
    if not can_transition(group.status, target):
        raise TransitionError(f"Cannot move group from {group.status.value} to {target.value}.")
    update = {"status": target}
    if now is not None:
        update["updated_at"] = now
    return group.model_copy(update=update)


# --- guards ---

def validate_new_group(owner_id: str, name: str, kind: Union[GroupKind, str]) -> Tuple[str, GroupKind]:
    """Check a create request before it goes out; returns the trimmed name and kind."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Group name must not be empty.")
    if len(name) > settings.MAX_GROUP_NAME_LENGTH:
        raise ValidationError(f"Group name must be at most {settings.MAX_GROUP_NAME_LENGTH} characters.")
    if not owner_id:
        raise ValidationError("Owner id must not be empty.")
    try:
        kind = GroupKind(kind)
    except ValueError as e:
        raise ValidationError(f"Unknown group kind: {kind}") from e
    return name, kind


def ensure_can_join(group: Group) -> None:
    if group.finalized:
        raise TransitionError("Members are already finalized for this group.")
    if group.status != GroupStatus.RECRUITING:
        raise TransitionError("This group is not recruiting members.")
    if group.is_full:
        raise TransitionError("This group is full.")


def ensure_can_finalize(group: Group, caller_id: str) -> None:
    if not group.is_owner(caller_id):
        raise TransitionError("Only the group owner can finalize members.")
    if group.status != GroupStatus.RECRUITING:
        raise TransitionError("Members can only be finalized while recruiting.")


def ensure_can_mark_ready(group: Group, user_id: str) -> None:
    if not group.has_member(user_id):
        raise TransitionError("Only group members can mark themselves ready.")
    if group.is_terminal:
        raise TransitionError("This session has already ended.")


def ensure_can_start_countdown(group: Group, caller_id: str) -> None:
    if not group.is_owner(caller_id):
        raise TransitionError("Only the group owner can start the countdown.")
    if not group.finalized:
        raise TransitionError("Members must be finalized before the countdown.")
    if not group.all_members_ready:
        raise TransitionError("Every member must be ready before the countdown.")
    if group.status != GroupStatus.READY_CHECK:
        raise TransitionError("The countdown can only start from the ready check.")


def ensure_can_delete(group: Group, caller_id: str) -> None:
    if not group.is_owner(caller_id):
        raise TransitionError("Only the group owner can delete the group.")


def should_auto_start(group: Group) -> bool:
    """Single-device sessions start shooting as soon as everyone is ready.

    Networked groups need a server-issued capture time, so they always wait
    for the owner's explicit ``start_countdown``.
    """
    return (
        group.kind == GroupKind.LOCAL_TEMPORARY
        and group.status == GroupStatus.READY_CHECK
        and group.all_members_ready
    )


# --- local mutations ---

def add_member(group: Group, member: Member) -> Group:
    if group.has_member(member.user_id):
        return group
    ensure_can_join(group)
    members = group.members + [member]
    return group.model_copy(update={"members": members, "current_member_count": len(members)})


def finalize(group: Group, caller_id: str, now: datetime) -> Group:
    ensure_can_finalize(group, caller_id)
    finalized = transition(group, GroupStatus.READY_CHECK, now)
    return finalized.model_copy(update={"finalized_at": now, "max_member": group.member_count})


def mark_member_ready(group: Group, user_id: str, now: datetime) -> Group:
    ensure_can_mark_ready(group, user_id)
    current = group.member(user_id)
    if current.ready:
        return group
    members = [
        m.model_copy(update={"ready": True, "ready_at": now}) if m.user_id == user_id else m
        for m in group.members
    ]
    return group.model_copy(update={"members": members})


def schedule_capture(group: Group, caller_id: str, template_id: Optional[str], now: datetime, countdown_seconds: int) -> Group:
    ensure_can_start_countdown(group, caller_id)
    scheduled = transition(group, GroupStatus.COUNTDOWN, now)
    return scheduled.model_copy(
        update={
            "countdown_started_at": now,
            "scheduled_capture_time": now + timedelta(seconds=countdown_seconds),
            "template_id": template_id or group.template_id,
        }
    )


def merge_ready_flags(local: List[Member], remote: List[Member]) -> List[Member]:
    """Take the server's member list but never let a ready flag flip back."""
    ready_before = {m.user_id: m for m in local if m.ready}
    merged = []
    for member in remote:
        previous = ready_before.get(member.user_id)
        if previous is not None and not member.ready:
            member = member.model_copy(update={"ready": True, "ready_at": previous.ready_at})
        merged.append(member)
    return merged
