# cameratogether/domain/group_directory.py
import logging
from typing import List, Optional

from cameratogether.domain import state_machine as sm
from cameratogether.domain.errors import CameraTogetherError
from cameratogether.domain.models import Group, GroupKind, GroupStatus
from cameratogether.domain.protocols import GroupAPI

logger = logging.getLogger(__name__)


class GroupDirectory:
    """List of groups shown on the home screen."""

    def __init__(self, group_api: GroupAPI):
        self.group_api = group_api
        self.groups: List[Group] = []
        self.is_loading = False
        self.error_message: Optional[str] = None

    async def fetch_groups(self, owner_user_id: Optional[str] = None, limit: int = 10, offset: int = 0) -> List[Group]:
        self.is_loading = True
        self.error_message = None
        try:
            self.groups = await self.group_api.list_groups(owner_user_id=owner_user_id, limit=limit, offset=offset)
        except CameraTogetherError as e:
            self.error_message = f"Failed to load groups: {e.message}"
            logger.warning(self.error_message)
        finally:
            self.is_loading = False
        return self.groups

    async def create_group(self, owner_user_id: str, name: str, kind: GroupKind = GroupKind.GLOBAL_TEMPORARY) -> Group:
        name, kind = sm.validate_new_group(owner_user_id, name, kind)
        self.is_loading = True
        self.error_message = None
        try:
            group = await self.group_api.create_group(owner_user_id, name, kind)
        except CameraTogetherError as e:
            self.error_message = f"Failed to create group: {e.message}"
            raise
        finally:
            self.is_loading = False
        self.groups.insert(0, group)
        return group

    async def delete_group(self, group_id: str, user_id: str) -> None:
        self.is_loading = True
        self.error_message = None
        try:
            await self.group_api.delete_group(group_id, user_id)
        except CameraTogetherError as e:
            self.error_message = f"Failed to delete group: {e.message}"
            raise
        finally:
            self.is_loading = False
        self.groups = [g for g in self.groups if g.id != group_id]

    def filter_by_status(self, status: GroupStatus) -> List[Group]:
        return [g for g in self.groups if g.status == status]

    def owned_by(self, user_id: str) -> List[Group]:
        return [g for g in self.groups if g.owner_id == user_id]
