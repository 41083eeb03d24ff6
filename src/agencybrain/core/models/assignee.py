"""负责人与关联对象 -- 标签联合类型

数据库层用两列可空外键（staff / user、contact / sale）保存，
领域层统一转换为带 kind 判别字段的 pydantic 联合类型，
从而杜绝“两列都为空”或“两列都有值”的状态。
"""

from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter

from .enums import AssigneeKind


class StaffAssignee(BaseModel):
    """员工账号负责人"""

    kind: Literal["staff"] = "staff"
    staff_id: str = Field(description="员工账号 ID")

    @property
    def assignee_id(self) -> str:
        return self.staff_id


class UserAssignee(BaseModel):
    """平台用户负责人"""

    kind: Literal["user"] = "user"
    user_id: str = Field(description="平台用户 ID")

    @property
    def assignee_id(self) -> str:
        return self.user_id


Assignee = Annotated[StaffAssignee | UserAssignee, Field(discriminator="kind")]

_assignee_adapter: TypeAdapter[StaffAssignee | UserAssignee] = TypeAdapter(Assignee)


def make_assignee(kind: AssigneeKind | str, assignee_id: str) -> StaffAssignee | UserAssignee:
    """按类型构造负责人"""
    if AssigneeKind(kind) == AssigneeKind.STAFF:
        return StaffAssignee(staff_id=assignee_id)
    return UserAssignee(user_id=assignee_id)


def assignee_from_columns(
    staff_id: str | None,
    user_id: str | None,
) -> StaffAssignee | UserAssignee:
    """从两列可空字段恢复负责人

    Raises:
        ValueError: 两列同时为空或同时有值
    """
    if bool(staff_id) == bool(user_id):
        raise ValueError("exactly one of staff_id / user_id must be set")
    if staff_id:
        return StaffAssignee(staff_id=staff_id)
    return UserAssignee(user_id=user_id or "")


def assignee_to_columns(
    assignee: StaffAssignee | UserAssignee | None,
) -> tuple[str | None, str | None]:
    """将负责人拆分为 (staff_id, user_id) 两列"""
    if assignee is None:
        return None, None
    if isinstance(assignee, StaffAssignee):
        return assignee.staff_id, None
    return None, assignee.user_id


def parse_assignee(data: dict) -> StaffAssignee | UserAssignee:
    """从 dict（如事件 payload）解析负责人"""
    return _assignee_adapter.validate_python(data)


class ContactRef(BaseModel):
    """关联联系人"""

    kind: Literal["contact"] = "contact"
    contact_id: str


class SaleRef(BaseModel):
    """关联保单销售记录"""

    kind: Literal["sale"] = "sale"
    sale_id: str


SubjectRef = Annotated[ContactRef | SaleRef, Field(discriminator="kind")]


def subject_from_columns(
    contact_id: str | None,
    sale_id: str | None,
) -> ContactRef | SaleRef | None:
    """从两列可空字段恢复关联对象，联系人优先"""
    if contact_id:
        return ContactRef(contact_id=contact_id)
    if sale_id:
        return SaleRef(sale_id=sale_id)
    return None


def subject_to_columns(
    subject: ContactRef | SaleRef | None,
) -> tuple[str | None, str | None]:
    """将关联对象拆分为 (contact_id, sale_id) 两列"""
    if subject is None:
        return None, None
    if isinstance(subject, ContactRef):
        return subject.contact_id, None
    return None, subject.sale_id
