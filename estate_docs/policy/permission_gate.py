import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from core.errors import AuthorizationDenied, ValidationError
from models.enums import (
    ConditionField,
    OwnershipScope,
    PermissionAction,
    PermissionResource,
    UserRole,
)
from repos.actor_repo import ActorRepo

from .permission_table import (
    KNOWN_PERMISSIONS,
    ROLE_PERMISSIONS,
    OwnershipCondition,
    PermissionRule,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PermissionTarget:
    """Ids describing the thing being acted on."""

    property_id: Optional[uuid.UUID] = None
    user_id: Optional[uuid.UUID] = None
    vendor_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class PermissionRequest:
    action: PermissionAction
    resource: PermissionResource
    target: PermissionTarget = field(default_factory=PermissionTarget)


@dataclass(frozen=True)
class ActorContext:
    id: uuid.UUID
    role: UserRole
    owned_property_ids: frozenset = frozenset()
    assigned_property_ids: frozenset = frozenset()
    vendor_id: Optional[uuid.UUID] = None


def condition_holds(
    condition: Optional[OwnershipCondition],
    actor: ActorContext,
    target: PermissionTarget,
) -> bool:
    if condition is None:
        return True

    if condition.field == ConditionField.PROPERTY_ID:
        if target.property_id is None:
            return False
        if condition.scope == OwnershipScope.OWN:
            return target.property_id in actor.owned_property_ids
        return target.property_id in actor.assigned_property_ids

    if condition.field == ConditionField.USER_ID:
        return target.user_id is not None and target.user_id == actor.id

    if condition.field == ConditionField.VENDOR_ID:
        return actor.vendor_id is not None and target.vendor_id == actor.vendor_id

    return False


def evaluate(
    rules: list[PermissionRule], actor: ActorContext, request: PermissionRequest
) -> bool:
    return any(
        rule.action == request.action
        and rule.resource == request.resource
        and condition_holds(rule.condition, actor, request.target)
        for rule in rules
    )


class PermissionGate:
    def __init__(self, db):
        self.actors: ActorRepo = ActorRepo(db)

    async def load_actor(self, actor_id: uuid.UUID) -> Optional[ActorContext]:
        user = await self.actors.get_user(actor_id)
        if not user or not user.is_active:
            return None

        owned = await self.actors.owned_property_ids(actor_id)
        managed = await self.actors.managed_property_ids(actor_id)
        rented = await self.actors.tenancy_property_ids(actor_id)

        return ActorContext(
            id=user.id,
            role=UserRole(user.role),
            owned_property_ids=frozenset(owned),
            assigned_property_ids=frozenset(managed | rented),
            vendor_id=user.vendor_id,
        )

    async def check(self, actor_id: uuid.UUID, request: PermissionRequest) -> bool:
        if (request.action, request.resource) not in KNOWN_PERMISSIONS:
            raise ValidationError(
                f"Unknown permission {request.action.value}:{request.resource.value}"
            )

        actor = await self.load_actor(actor_id)
        if actor is None:
            logger.info("Permission check for unknown actor %s", actor_id)
            return False

        return evaluate(ROLE_PERMISSIONS.get(actor.role, []), actor, request)

    async def require(self, actor_id: uuid.UUID, request: PermissionRequest) -> None:
        if not await self.check(actor_id, request):
            raise AuthorizationDenied(
                f"Not allowed to {request.action.value} {request.resource.value}",
                actor_id=actor_id,
            )

    async def require_document(
        self,
        actor_id: uuid.UUID,
        action: PermissionAction,
        resource: PermissionResource,
        property_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
    ) -> None:
        await self.require(
            actor_id,
            PermissionRequest(
                action,
                resource,
                PermissionTarget(property_id=property_id, user_id=user_id),
            ),
        )
