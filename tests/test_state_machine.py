from datetime import datetime, timezone

import pytest

from cameratogether.domain import state_machine as sm
from cameratogether.domain.errors import TransitionError
from cameratogether.domain.models import Group, GroupKind, GroupStatus, Member

NOW = datetime(2025, 10, 18, 12, 0, tzinfo=timezone.utc)


def _group(kind=GroupKind.LOCAL_TEMPORARY, status=GroupStatus.RECRUITING, members=("U1",), max_member=10):
    return Group(
        id="G1",
        owner_id="U1",
        name="Trip",
        kind=kind,
        status=status,
        max_member=max_member,
        invitation_token="tok",
        members=[Member(user_id=uid, is_owner=uid == "U1") for uid in members],
        current_member_count=len(members),
    )


@pytest.mark.parametrize("current,target,allowed", [
    (GroupStatus.RECRUITING, GroupStatus.READY_CHECK, True),
    (GroupStatus.READY_CHECK, GroupStatus.COUNTDOWN, True),
    (GroupStatus.COUNTDOWN, GroupStatus.PHOTO_TAKING, True),
    (GroupStatus.PHOTO_TAKING, GroupStatus.COMPLETED, True),
    (GroupStatus.PHOTO_TAKING, GroupStatus.EXPIRED, True),
    (GroupStatus.READY_CHECK, GroupStatus.RECRUITING, False),
    (GroupStatus.RECRUITING, GroupStatus.COUNTDOWN, False),
    (GroupStatus.COMPLETED, GroupStatus.EXPIRED, False),
    (GroupStatus.EXPIRED, GroupStatus.RECRUITING, False),
])
def test_transition_table(current, target, allowed):
    assert sm.can_transition(current, target) is allowed


def test_transition_rejects_backwards_move():
    with pytest.raises(TransitionError):
        sm.transition(_group(status=GroupStatus.READY_CHECK), GroupStatus.RECRUITING)


def test_add_member_is_idempotent_and_respects_capacity():
    group = _group(max_member=2)
    group = sm.add_member(group, Member(user_id="U2"))
    assert sm.add_member(group, Member(user_id="U2")) == group
    with pytest.raises(TransitionError):
        sm.add_member(group, Member(user_id="U3"))
    assert group.current_member_count == 2


def test_finalize_freezes_members():
    group = sm.finalize(_group(members=("U1", "U2")), "U1", NOW)
    assert group.status == GroupStatus.READY_CHECK
    assert group.finalized_at == NOW
    assert group.max_member == 2
    with pytest.raises(TransitionError):
        sm.add_member(group, Member(user_id="U3"))


def test_finalize_owner_only():
    with pytest.raises(TransitionError):
        sm.finalize(_group(), "U2", NOW)


def test_mark_ready_twice_is_a_no_op():
    once = sm.mark_member_ready(_group(), "U1", NOW)
    assert sm.mark_member_ready(once, "U1", NOW) == once


def test_auto_start_only_for_local_groups():
    local = _group(status=GroupStatus.READY_CHECK)
    local = sm.mark_member_ready(local.model_copy(update={"finalized_at": NOW}), "U1", NOW)
    assert sm.should_auto_start(local)

    networked = local.model_copy(update={"kind": GroupKind.GLOBAL_TEMPORARY})
    assert not sm.should_auto_start(networked)


def test_schedule_capture_sets_absolute_time():
    group = sm.finalize(_group(), "U1", NOW)
    group = sm.mark_member_ready(group, "U1", NOW)
    scheduled = sm.schedule_capture(group, "U1", "two_vertical", NOW, 10)
    assert scheduled.status == GroupStatus.COUNTDOWN
    assert (scheduled.scheduled_capture_time - NOW).total_seconds() == 10
    assert scheduled.template_id == "two_vertical"


def test_merge_keeps_ready_flags():
    local = [Member(user_id="U1", ready=True, ready_at=NOW), Member(user_id="U2")]
    remote = [Member(user_id="U1"), Member(user_id="U2", ready=True), Member(user_id="U3")]
    merged = sm.merge_ready_flags(local, remote)
    assert [m.ready for m in merged] == [True, True, False]
    assert merged[0].ready_at == NOW
