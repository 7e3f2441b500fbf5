# cameratogether/domain/group_coordinator.py
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager, suppress
from typing import Callable, List, Optional, Set

from cameratogether.config.settings import settings
from cameratogether.domain import state_machine as sm
from cameratogether.domain.countdown import CaptureCountdown, Clock, utc_now
from cameratogether.domain.errors import (
    BusyError,
    CameraTogetherError,
    HttpError,
    TransitionError,
    ValidationError,
)
from cameratogether.domain.models import Group, GroupKind, GroupStatus, Member
from cameratogether.domain.protocols import GroupAPI

# --- LOGGER SETUP ---
logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] [Group] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False

HTTP_CONFLICT = 409

# Normal progression; a poll never moves a group backwards along it.
_STAGE_ORDER = {
    GroupStatus.RECRUITING: 0,
    GroupStatus.READY_CHECK: 1,
    GroupStatus.COUNTDOWN: 2,
    GroupStatus.PHOTO_TAKING: 3,
    GroupStatus.COMPLETED: 4,
}

Listener = Callable[[Optional[Group]], None]


class GroupCoordinator:
    """Authoritative in-memory mirror of one group for the current device.

    The UI reads ``current_group`` (or subscribes to changes) and calls the
    async operations below. User-initiated operations run one at a time; a
    second call while one is in flight raises ``BusyError``. Failed operations
    leave the previous snapshot untouched.

    ``local_temporary`` groups are single-device sessions: after creation
    their members, readiness and countdown live on this device only.
    """

    def __init__(
        self,
        group_api: GroupAPI,
        clock: Clock = utc_now,
        poll_interval: Optional[float] = None,
        countdown_seconds: Optional[int] = None,
    ):
        self.group_api = group_api
        self.clock = clock
        self.poll_interval = poll_interval or settings.POLL_INTERVAL_SECONDS
        self.countdown_seconds = countdown_seconds or settings.LOCAL_COUNTDOWN_SECONDS

        self.is_loading = False
        self.error_message: Optional[str] = None
        self.uploaded_frames: Set[int] = set()

        self._group: Optional[Group] = None
        self._action_lock = asyncio.Lock()
        self._poll_task: Optional[asyncio.Task] = None
        self._listeners: List[Listener] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop_polling()

    # --- observation ---

    @property
    def current_group(self) -> Optional[Group]:
        return self._group

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_group(self, group: Optional[Group]) -> None:
        if group == self._group:
            return
        self._group = group
        for listener in list(self._listeners):
            listener(group)

    def _require_group(self, group_id: Optional[str] = None) -> Group:
        group = self._group
        if group is None or (group_id is not None and group.id != group_id):
            raise TransitionError("No active group for this action.")
        return group

    @staticmethod
    def _is_local(group: Group) -> bool:
        return group.kind == GroupKind.LOCAL_TEMPORARY

    @asynccontextmanager
    async def _user_action(self, name: str):
        if self._action_lock.locked():
            raise BusyError()
        async with self._action_lock:
            self.is_loading = True
            self.error_message = None
            try:
                yield
            except CameraTogetherError as e:
                self.error_message = e.message
                logger.error(f"{name} failed: {e.message}")
                raise
            finally:
                self.is_loading = False

    async def _with_members(self, group: Group) -> Group:
        members = await self.group_api.get_group_members(group.id)
        return group.model_copy(update={"members": members})

    # --- lifecycle operations ---

    async def create_group(
        self,
        owner_id: str,
        name: str,
        kind: GroupKind = GroupKind.GLOBAL_TEMPORARY,
        owner_name: Optional[str] = None,
    ) -> Group:
        async with self._user_action("create_group"):
            name, kind = sm.validate_new_group(owner_id, name, kind)
            group = await self.group_api.create_group(owner_id, name, kind)
            members = list(group.members)
            if not any(m.user_id == owner_id for m in members):
                members.insert(0, Member(user_id=owner_id, display_name=owner_name or "", is_owner=True, joined_at=self.clock()))
            group = group.model_copy(update={"members": members, "current_member_count": len(members)})

            self.uploaded_frames.clear()
            self._set_group(group)
            logger.info(f"Group '{name}' created ({group.id}, {kind.value}).")
            return group

    async def fetch_group(self, group_id: str) -> Group:
        async with self._user_action("fetch_group"):
            group = await self._with_members(await self.group_api.get_group(group_id))
            self._set_group(group)
            return group

    async def join_group(self, invitation_token: str, user_id: str) -> Group:
        async with self._user_action("join_group"):
            if not invitation_token or not invitation_token.strip():
                raise ValidationError("Invitation token must not be empty.")
            invitation_token = invitation_token.strip()

            group = await self._with_members(await self.group_api.get_group_by_invitation(invitation_token))
            if group.has_member(user_id):
                logger.info(f"User {user_id} already belongs to group {group.id}; adopting snapshot.")
            else:
                sm.ensure_can_join(group)
                try:
                    joined = await self.group_api.join_group(invitation_token, user_id)
                except HttpError as e:
                    if e.status != HTTP_CONFLICT:
                        raise
                    logger.warning(f"Join conflict for group {group.id}; re-fetching by invitation token.")
                    joined = await self.group_api.get_group_by_invitation(invitation_token)
                group = await self._with_members(joined)

            self.uploaded_frames.clear()
            self._set_group(group)
            return group

    def add_local_member(self, name: str, user_id: Optional[str] = None) -> Group:
        """Add a participant who shares this device (single-device sessions only)."""
        group = self._require_group()
        if not self._is_local(group):
            raise TransitionError("Members can only be added locally to single-device groups.")
        if not name or not name.strip():
            raise ValidationError("Member name must not be empty.")
        member = Member(user_id=user_id or str(uuid.uuid4()), display_name=name.strip(), joined_at=self.clock())
        group = sm.add_member(group, member)
        self._set_group(group)
        return group

    async def finalize_members(self, group_id: str, owner_id: str) -> Group:
        async with self._user_action("finalize_members"):
            group = self._require_group(group_id)
            sm.ensure_can_finalize(group, owner_id)

            if self._is_local(group):
                updated = sm.finalize(group, owner_id, self.clock())
            else:
                remote = await self.group_api.finalize_group(group_id, owner_id)
                latest = self._require_group(group_id)
                updated = remote.model_copy(
                    update={"members": latest.members, "finalized_at": remote.finalized_at or self.clock()}
                )

            self._set_group(updated)
            logger.info(f"Members finalized for group {group_id} ({updated.member_count} members).")
            return updated

    async def mark_ready(self, group_id: str, user_id: str) -> Group:
        async with self._user_action("mark_ready"):
            group = self._require_group(group_id)
            sm.ensure_can_mark_ready(group, user_id)
            if group.member(user_id).ready:
                return group

            if not self._is_local(group):
                await self.group_api.mark_ready(group_id, user_id)

            now = self.clock()
            updated = sm.mark_member_ready(self._require_group(group_id), user_id, now)
            if sm.should_auto_start(updated):
                updated = sm.schedule_capture(updated, updated.owner_id, updated.template_id, now, self.countdown_seconds)
                logger.info(f"Everyone is ready in local group {group_id}; countdown started.")

            self._set_group(updated)
            return updated

    async def start_countdown(self, group_id: str, owner_id: str, template_id: str) -> Group:
        async with self._user_action("start_countdown"):
            group = self._require_group(group_id)
            sm.ensure_can_start_countdown(group, owner_id)
            if not template_id:
                raise ValidationError("A template must be selected before the countdown.")

            if self._is_local(group):
                updated = sm.schedule_capture(group, owner_id, template_id, self.clock(), self.countdown_seconds)
            else:
                remote = await self.group_api.start_countdown(group_id, owner_id, template_id)
                latest = self._require_group(group_id)
                updated = remote.model_copy(
                    update={
                        "members": latest.members,
                        "template_id": remote.template_id or template_id,
                    }
                )

            self._set_group(updated)
            logger.info(f"Capture scheduled for group {group_id} at {updated.scheduled_capture_time}.")
            return updated

    def capture_countdown(self, **kwargs) -> CaptureCountdown:
        """Countdown keyed off the group's scheduled capture time, or a local fallback."""
        group = self._require_group()
        if group.scheduled_capture_time is None:
            logger.warning("No scheduled capture time, using local countdown.")
            return CaptureCountdown.local(clock=self.clock, **kwargs)
        return CaptureCountdown(group.scheduled_capture_time, clock=self.clock, **kwargs)

    def _photo_taking(self, group: Group) -> Group:
        """``group`` moved to photo_taking, once its capture time has been reached."""
        if group.status == GroupStatus.PHOTO_TAKING:
            return group
        if group.scheduled_capture_time is not None and group.scheduled_capture_time > self.clock():
            raise TransitionError("The capture time has not been reached yet.")
        return sm.transition(group, GroupStatus.PHOTO_TAKING, self.clock())

    def begin_photo_taking(self) -> Group:
        updated = self._photo_taking(self._require_group())
        self._set_group(updated)
        return updated

    def frame_index_for(self, user_id: str) -> Optional[int]:
        group = self._require_group()
        for index, member in enumerate(group.members):
            if member.user_id == user_id:
                return index
        return None

    async def upload_photo(self, group_id: str, user_id: str, frame_index: int, photo: bytes) -> Group:
        async with self._user_action("upload_photo"):
            group = self._require_group(group_id)
            if not group.has_member(user_id):
                raise TransitionError("Only group members can upload photos.")
            if group.status not in (GroupStatus.COUNTDOWN, GroupStatus.PHOTO_TAKING):
                raise TransitionError("Photos can only be uploaded during the shoot.")
            if not 0 <= frame_index < group.member_count:
                raise ValidationError(f"Frame index {frame_index} is out of range.")
            if not photo:
                raise ValidationError("Photo must not be empty.")
            self._photo_taking(group)

            await self.group_api.upload_photo(group_id, user_id, frame_index, photo)
            logger.info(f"Photo for frame {frame_index} uploaded to group {group_id}.")

            self.uploaded_frames.add(frame_index)
            updated = self._photo_taking(self._require_group(group_id))
            if len(self.uploaded_frames) >= updated.member_count:
                updated = sm.transition(updated, GroupStatus.COMPLETED, self.clock())
            self._set_group(updated)
            return updated

    def complete_session(self, owner_id: str) -> Group:
        group = self._require_group()
        if not group.is_owner(owner_id):
            raise TransitionError("Only the group owner can complete the session.")
        if group.status == GroupStatus.COUNTDOWN:
            group = sm.transition(group, GroupStatus.PHOTO_TAKING, self.clock())
        updated = sm.transition(group, GroupStatus.COMPLETED, self.clock())
        self._set_group(updated)
        return updated

    async def leave_group(self, group_id: str, user_id: str) -> None:
        async with self._user_action("leave_group"):
            await self.group_api.leave_group(group_id, user_id)
            self._clear()
            logger.info(f"User {user_id} left group {group_id}.")

    async def delete_group(self, group_id: str, user_id: str) -> None:
        async with self._user_action("delete_group"):
            if self._group is not None and self._group.id == group_id:
                sm.ensure_can_delete(self._group, user_id)
            await self.group_api.delete_group(group_id, user_id)
            self._clear()
            logger.info(f"Group {group_id} deleted.")

    def reset(self) -> None:
        self._clear()

    def _clear(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None
        self.uploaded_frames.clear()
        self._set_group(None)

    # --- reconciliation ---

    async def refresh_members(self, group_id: str) -> bool:
        """Pull a full snapshot from the server. Failures are logged, never raised."""
        group = self._group
        if group is None or group.id != group_id:
            return False
        if self._is_local(group):
            return True
        try:
            remote = await self.group_api.get_group(group_id)
            members = await self.group_api.get_group_members(group_id)
        except CameraTogetherError as e:
            logger.warning(f"Refresh of group {group_id} failed, keeping local state: {e.message}")
            return False

        local = self._group
        if local is None or local.id != group_id:
            return False
        status = remote.status
        if status != GroupStatus.EXPIRED and local.status in _STAGE_ORDER and status in _STAGE_ORDER:
            if _STAGE_ORDER[local.status] > _STAGE_ORDER[status]:
                status = local.status
        snapshot = remote.model_copy(
            update={"members": sm.merge_ready_flags(local.members, members), "status": status}
        )
        self._set_group(snapshot)
        return True

    def start_polling(self, group_id: Optional[str] = None) -> asyncio.Task:
        group_id = group_id or self._require_group().id
        if self._poll_task is not None and not self._poll_task.done():
            return self._poll_task
        self._poll_task = asyncio.create_task(self._poll_loop(group_id))
        return self._poll_task

    async def stop_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is None or task.done():
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def _poll_loop(self, group_id: str) -> None:
        logger.info(f"Polling group {group_id} every {self.poll_interval}s.")
        while True:
            await asyncio.sleep(self.poll_interval)
            if self._group is None or self._group.id != group_id:
                logger.info(f"Group {group_id} is gone; polling stopped.")
                return
            await self.refresh_members(group_id)
