"""Row-level access policy for tenant-scoped data.

Every service calls into this module before reading or writing a business
row. The rule is:

    super_admin may read anything,
    super_admin may write School and BillingRecord rows,
    anyone may do anything to rows of their own school,

with the per-entity refinements encoded in ``is_allowed``. List reads are
constrained with ``scope_query`` so another tenant's rows never show up.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlalchemy import false
from sqlalchemy.sql import Select

from schoolfee.application.errors import ForbiddenError
from schoolfee.domain.roles import AppRole
from schoolfee.infrastructure.logging import get_logger

logger = get_logger(__name__)


class Operation(str, Enum):
    read = "read"
    insert = "insert"
    update = "update"
    delete = "delete"


class ProtectedEntity(str, Enum):
    school = "school"
    student = "student"
    fee_structure = "fee_structure"
    payment = "payment"
    billing_record = "billing_record"
    notification = "notification"
    user_role = "user_role"


SUPER_ADMIN_WRITABLE = frozenset({ProtectedEntity.school, ProtectedEntity.billing_record})


@dataclass(frozen=True)
class Principal:
    user_id: int
    school_id: int | None
    roles: frozenset[AppRole] = field(default_factory=frozenset)

    @property
    def is_super_admin(self) -> bool:
        return AppRole.super_admin in self.roles

    def has_role(self, role: AppRole) -> bool:
        return role in self.roles

    def owns(self, school_id: int | None) -> bool:
        return self.school_id is not None and school_id is not None and self.school_id == school_id


def is_allowed(
    principal: Principal,
    operation: Operation,
    entity: ProtectedEntity,
    *,
    school_id: int | None = None,
    owner_user_id: int | None = None,
) -> bool:
    if entity == ProtectedEntity.user_role:
        return operation == Operation.read and owner_user_id == principal.user_id

    if entity == ProtectedEntity.notification:
        if operation == Operation.insert:
            return principal.is_super_admin
        if operation in (Operation.read, Operation.update):
            return principal.owns(school_id)
        return False

    if entity == ProtectedEntity.school:
        if operation == Operation.insert:
            return False
        if operation == Operation.delete:
            return principal.is_super_admin
        return principal.is_super_admin or principal.owns(school_id)

    if entity == ProtectedEntity.billing_record and operation in (Operation.update, Operation.delete):
        return principal.is_super_admin

    if principal.is_super_admin:
        if operation == Operation.read:
            return True
        if entity in SUPER_ADMIN_WRITABLE:
            return True
    return principal.owns(school_id)


def ensure_allowed(
    principal: Principal,
    operation: Operation,
    entity: ProtectedEntity,
    *,
    school_id: int | None = None,
    owner_user_id: int | None = None,
) -> None:
    if is_allowed(principal, operation, entity, school_id=school_id, owner_user_id=owner_user_id):
        return
    logger.warning(
        "access_denied",
        user_id=principal.user_id,
        operation=operation.value,
        entity=entity.value,
    )
    raise ForbiddenError()


def ensure_super_admin(principal: Principal) -> None:
    if principal.is_super_admin:
        return
    logger.warning("access_denied_super_admin_required", user_id=principal.user_id)
    raise ForbiddenError()


def scope_query(query: Select, principal: Principal, entity: ProtectedEntity, school_column: Any) -> Select:
    """Constrain a read query to the rows the principal may see."""
    if entity != ProtectedEntity.notification and principal.is_super_admin:
        return query
    if principal.school_id is None:
        return query.where(false())
    return query.where(school_column == principal.school_id)
