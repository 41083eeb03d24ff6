"""TemplateService -- 序列模板管理

创建模板、追加步骤、复制、启用/停用。模板修改不影响已生成的实例和任务。
"""

from datetime import UTC, datetime

import structlog
from agencybrain.core.exceptions import NotFoundError, ValidationError
from agencybrain.core.models import ActionType, SequenceStep, SequenceTemplate, TargetType
from agencybrain.core.store import StoreGroup, create_template_with_steps, duplicate_template
from pydantic import BaseModel, Field
from ulid import ULID

log = structlog.get_logger()


class StepSpec(BaseModel):
    """新增步骤的输入"""

    day_number: int = Field(ge=0)
    action_type: ActionType
    title: str
    description: str = ""
    script_template: str = ""
    sort_order: int | None = Field(default=None, description="为空时追加到末尾")


class TemplateService:
    """序列模板业务服务"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group

    async def create_template(
        self,
        agency_id: str,
        name: str,
        steps: list[StepSpec],
        description: str = "",
        target_type: TargetType = TargetType.ONBOARDING,
        is_active: bool = True,
    ) -> SequenceTemplate:
        """创建模板及其初始步骤（单事务）"""
        name = name.strip()
        if not name:
            raise ValidationError("Template name is required", field="name")

        now = datetime.now(UTC)
        template_id = str(ULID())
        template = SequenceTemplate(
            template_id=template_id,
            agency_id=agency_id,
            name=name,
            description=description,
            target_type=target_type,
            is_active=is_active,
            created_at=now,
            updated_at=now,
            steps=[
                self._build_step(template_id, spec, index)
                for index, spec in enumerate(steps)
            ],
        )
        await create_template_with_steps(
            self._stores.conn, self._stores.template_store, template
        )
        log.info("template_created", template_id=template_id, step_count=len(steps))
        return template

    async def add_step(self, template_id: str, spec: StepSpec) -> SequenceStep:
        await self._require(template_id)
        async with self._stores.write_lock:
            sort_order = spec.sort_order
            if sort_order is None:
                sort_order = await self._stores.template_store.next_sort_order(template_id)
            step = self._build_step(template_id, spec, sort_order)
            try:
                await self._stores.template_store.add_step(step)
                await self._stores.conn.commit()
            except Exception:
                await self._stores.conn.rollback()
                raise
        return step

    async def get_template(self, template_id: str) -> SequenceTemplate:
        return await self._require(template_id)

    async def list_templates(self, agency_id: str, active_only: bool = False) -> list[SequenceTemplate]:
        return await self._stores.template_store.list_templates(agency_id, active_only)

    async def duplicate(self, template_id: str) -> SequenceTemplate:
        """复制模板，副本默认停用"""
        source = await self._require(template_id)
        copy = await duplicate_template(
            self._stores.conn,
            self._stores.template_store,
            source,
            datetime.now(UTC),
        )
        log.info("template_duplicated", source_id=template_id, template_id=copy.template_id)
        return copy

    async def set_active(self, template_id: str, is_active: bool) -> SequenceTemplate:
        async with self._stores.write_lock:
            try:
                updated = await self._stores.template_store.set_active(
                    template_id, is_active, datetime.now(UTC).isoformat()
                )
                await self._stores.conn.commit()
            except Exception:
                await self._stores.conn.rollback()
                raise
        if not updated:
            raise NotFoundError("template", template_id)
        return await self._require(template_id)

    async def _require(self, template_id: str) -> SequenceTemplate:
        template = await self._stores.template_store.get_template(template_id)
        if template is None:
            raise NotFoundError("template", template_id)
        return template

    @staticmethod
    def _build_step(template_id: str, spec: StepSpec, default_order: int) -> SequenceStep:
        title = spec.title.strip()
        if not title:
            raise ValidationError("Step title is required", field="title")
        return SequenceStep(
            step_id=str(ULID()),
            template_id=template_id,
            day_number=spec.day_number,
            action_type=spec.action_type,
            title=title,
            description=spec.description,
            script_template=spec.script_template,
            sort_order=spec.sort_order if spec.sort_order is not None else default_order,
        )
