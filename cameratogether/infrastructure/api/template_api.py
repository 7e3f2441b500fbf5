# cameratogether/infrastructure/api/template_api.py
from typing import List

from cameratogether.delivery.schemas.body import TemplateListPayload
from cameratogether.domain.models import Template
from cameratogether.infrastructure.api.base import APIClientBase


class TemplateAPIClient(APIClientBase):
    async def list_templates(self) -> List[Template]:
        payload = await self.perform_request("GET", self.url("template-data"), expecting=TemplateListPayload)
        return payload.templates

    async def list_templates_by_photo_count(self, photo_count: int) -> List[Template]:
        payload = await self.perform_request(
            "GET",
            self.url("template-data", "filter"),
            expecting=TemplateListPayload,
            params={"photo_count": photo_count},
        )
        return payload.templates

    async def get_template(self, template_id: str) -> Template:
        return await self.perform_request("GET", self.url("template-data", template_id), expecting=Template)
