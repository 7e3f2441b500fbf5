# cameratogether/infrastructure/api/group_api.py
from typing import List, Optional

import aiohttp

from cameratogether.delivery.schemas.body import (
    CreateGroupBody,
    GroupListPayload,
    GroupPayload,
    MemberListPayload,
    StartCountdownBody,
    UserActionBody,
)
from cameratogether.domain.models import Group, GroupKind, Member
from cameratogether.infrastructure.api.base import APIClientBase


class GroupAPIClient(APIClientBase):
    """HTTP client for the ``/groups`` endpoints of the backend."""

    async def list_groups(self, owner_user_id: Optional[str] = None, limit: int = 10, offset: int = 0) -> List[Group]:
        payload = await self.perform_request(
            "GET",
            self.url("groups"),
            expecting=GroupListPayload,
            params={"limit": limit, "offset": offset, "owner_user_id": owner_user_id},
        )
        return [g.to_domain() for g in payload.groups]

    async def create_group(self, owner_user_id: str, name: str, group_type: GroupKind) -> Group:
        body = CreateGroupBody(owner_user_id=owner_user_id, name=name, group_type=group_type)
        payload = await self.perform_request(
            "POST",
            self.url("groups"),
            expecting=GroupPayload,
            success_status=201,
            json_body=body.model_dump(mode="json"),
        )
        return payload.to_domain()

    async def get_group(self, group_id: str) -> Group:
        payload = await self.perform_request("GET", self.url("groups", group_id), expecting=GroupPayload)
        return payload.to_domain()

    async def get_group_by_invitation(self, invitation_token: str) -> Group:
        payload = await self.perform_request(
            "GET",
            self.url("groups", "by-invitation"),
            expecting=GroupPayload,
            params={"invitation_token": invitation_token},
        )
        return payload.to_domain()

    async def join_group(self, invitation_token: str, user_id: str) -> Group:
        # 409 means the caller is already a member; the coordinator recovers from it.
        payload = await self.perform_request(
            "POST",
            self.url("groups", "join", invitation_token),
            expecting=GroupPayload,
            json_body=UserActionBody(user_id=user_id).model_dump(),
        )
        return payload.to_domain()

    async def get_group_members(self, group_id: str) -> List[Member]:
        payload = await self.perform_request(
            "GET", self.url("groups", group_id, "members"), expecting=MemberListPayload
        )
        return [m.to_domain() for m in payload.members]

    async def finalize_group(self, group_id: str, user_id: str) -> Group:
        payload = await self.perform_request(
            "POST",
            self.url("groups", group_id, "finalize"),
            expecting=GroupPayload,
            json_body=UserActionBody(user_id=user_id).model_dump(),
        )
        return payload.to_domain()

    async def start_countdown(self, group_id: str, user_id: str, template_id: str) -> Group:
        payload = await self.perform_request(
            "POST",
            self.url("groups", group_id, "start-countdown"),
            expecting=GroupPayload,
            json_body=StartCountdownBody(user_id=user_id, template_id=template_id).model_dump(),
        )
        return payload.to_domain()

    async def mark_ready(self, group_id: str, user_id: str) -> None:
        await self.perform_request(
            "POST",
            self.url("groups", group_id, "ready"),
            json_body=UserActionBody(user_id=user_id).model_dump(),
        )

    async def leave_group(self, group_id: str, user_id: str) -> None:
        await self.perform_request("DELETE", self.url("groups", group_id, "leave"), params={"user_id": user_id})

    async def delete_group(self, group_id: str, user_id: str) -> None:
        await self.perform_request("DELETE", self.url("groups", group_id), params={"user_id": user_id})

    async def upload_photo(
        self,
        group_id: str,
        user_id: str,
        frame_index: int,
        photo: bytes,
        filename: str = "photo.jpg",
        content_type: str = "image/jpeg",
    ) -> None:
        form = aiohttp.FormData()
        form.add_field("user_id", user_id)
        form.add_field("frame_index", str(frame_index))
        form.add_field("photo", photo, filename=filename, content_type=content_type)
        await self.perform_request("POST", self.url("groups", group_id, "photos"), success_status=201, data=form)
