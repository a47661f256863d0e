from dataclasses import dataclass
from typing import Optional

from models.enums import (
    ConditionField,
    OwnershipScope,
    PermissionAction,
    PermissionResource,
    UserRole,
)

A = PermissionAction
R = PermissionResource


@dataclass(frozen=True)
class OwnershipCondition:
    field: ConditionField
    scope: OwnershipScope


@dataclass(frozen=True)
class PermissionRule:
    action: PermissionAction
    resource: PermissionResource
    condition: Optional[OwnershipCondition] = None


PROPERTY_OWN = OwnershipCondition(ConditionField.PROPERTY_ID, OwnershipScope.OWN)
PROPERTY_ASSIGNED = OwnershipCondition(
    ConditionField.PROPERTY_ID, OwnershipScope.ASSIGNED
)
USER_OWN = OwnershipCondition(ConditionField.USER_ID, OwnershipScope.OWN)
VENDOR_OWN = OwnershipCondition(ConditionField.VENDOR_ID, OwnershipScope.OWN)


def _rules(resource, actions, condition=None) -> list[PermissionRule]:
    return [PermissionRule(action, resource, condition) for action in actions]


CRUD = (A.CREATE, A.READ, A.UPDATE, A.DELETE)

ROLE_PERMISSIONS: dict[UserRole, list[PermissionRule]] = {
    UserRole.ADMIN: [
        *_rules(R.TICKET, CRUD),
        *_rules(R.PROPERTY, CRUD),
        *_rules(R.VENDOR, CRUD),
        *_rules(R.SETTINGS, CRUD),
        *_rules(R.USER, CRUD),
        *_rules(R.DOCUMENT, (*CRUD, A.APPROVE)),
        *_rules(R.WORKFLOW, (*CRUD, A.APPROVE)),
        *_rules(R.SIGNATURE, CRUD),
        *_rules(R.VERIFICATION, CRUD),
        PermissionRule(A.READ, R.AUDIT_LOG),
    ],
    UserRole.LANDLORD: [
        *_rules(R.TICKET, CRUD, PROPERTY_OWN),
        *_rules(R.PROPERTY, CRUD, USER_OWN),
        PermissionRule(A.READ, R.VENDOR),
        *_rules(R.SETTINGS, (A.CREATE, A.READ, A.UPDATE), PROPERTY_OWN),
        *_rules(R.DOCUMENT, (*CRUD, A.APPROVE), PROPERTY_OWN),
        *_rules(R.WORKFLOW, (A.CREATE, A.READ, A.UPDATE, A.APPROVE), PROPERTY_OWN),
        *_rules(R.SIGNATURE, (A.CREATE, A.READ, A.UPDATE), PROPERTY_OWN),
        PermissionRule(A.SIGN, R.SIGNATURE, USER_OWN),
        *_rules(R.VERIFICATION, (A.CREATE, A.READ), PROPERTY_OWN),
        PermissionRule(A.READ, R.AUDIT_LOG, PROPERTY_OWN),
    ],
    UserRole.PROPERTY_MANAGER: [
        *_rules(R.TICKET, (A.CREATE, A.READ, A.UPDATE), PROPERTY_ASSIGNED),
        PermissionRule(A.READ, R.PROPERTY, PROPERTY_ASSIGNED),
        PermissionRule(A.READ, R.VENDOR),
        PermissionRule(A.READ, R.SETTINGS, PROPERTY_ASSIGNED),
        *_rules(R.DOCUMENT, (A.CREATE, A.READ, A.UPDATE), PROPERTY_ASSIGNED),
        *_rules(R.WORKFLOW, (A.CREATE, A.READ, A.UPDATE, A.APPROVE), PROPERTY_ASSIGNED),
        *_rules(R.SIGNATURE, (A.CREATE, A.READ, A.UPDATE), PROPERTY_ASSIGNED),
        *_rules(R.VERIFICATION, (A.CREATE, A.READ), PROPERTY_ASSIGNED),
        PermissionRule(A.READ, R.AUDIT_LOG, PROPERTY_ASSIGNED),
    ],
    UserRole.VENDOR: [
        *_rules(R.TICKET, (A.READ, A.UPDATE), VENDOR_OWN),
        PermissionRule(A.READ, R.PROPERTY, VENDOR_OWN),
    ],
    UserRole.TENANT: [
        *_rules(R.TICKET, (A.CREATE, A.READ, A.UPDATE), USER_OWN),
        *_rules(R.DOCUMENT, (A.CREATE, A.READ), PROPERTY_ASSIGNED),
        PermissionRule(A.READ, R.WORKFLOW, PROPERTY_ASSIGNED),
        PermissionRule(A.READ, R.SIGNATURE, PROPERTY_ASSIGNED),
        PermissionRule(A.SIGN, R.SIGNATURE, USER_OWN),
        PermissionRule(A.READ, R.VERIFICATION, PROPERTY_ASSIGNED),
    ],
}

# Every (action, resource) pair that some role can be granted.
KNOWN_PERMISSIONS: frozenset = frozenset(
    (rule.action, rule.resource)
    for rules in ROLE_PERMISSIONS.values()
    for rule in rules
)
