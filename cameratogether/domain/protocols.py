# cameratogether/domain/protocols.py
from typing import List, Optional, Protocol

from cameratogether.domain.models import Group, GroupKind, Member, Template


class GroupAPI(Protocol):
    """Remote group/member store the coordinator reconciles against."""

    async def list_groups(self, owner_user_id: Optional[str] = None, limit: int = 10, offset: int = 0) -> List[Group]: ...

    async def create_group(self, owner_user_id: str, name: str, group_type: GroupKind) -> Group: ...

    async def get_group(self, group_id: str) -> Group: ...

    async def get_group_by_invitation(self, invitation_token: str) -> Group: ...

    async def join_group(self, invitation_token: str, user_id: str) -> Group: ...

    async def get_group_members(self, group_id: str) -> List[Member]: ...

    async def finalize_group(self, group_id: str, user_id: str) -> Group: ...

    async def start_countdown(self, group_id: str, user_id: str, template_id: str) -> Group: ...

    async def mark_ready(self, group_id: str, user_id: str) -> None: ...

    async def leave_group(self, group_id: str, user_id: str) -> None: ...

    async def delete_group(self, group_id: str, user_id: str) -> None: ...

    async def upload_photo(self, group_id: str, user_id: str, frame_index: int, photo: bytes) -> None: ...


class TemplateAPI(Protocol):
    async def list_templates(self) -> List[Template]: ...

    async def list_templates_by_photo_count(self, photo_count: int) -> List[Template]: ...

    async def get_template(self, template_id: str) -> Template: ...
