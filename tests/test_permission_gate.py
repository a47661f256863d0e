import uuid

import pytest

from core.errors import AuthorizationDenied, ValidationError
from models.enums import PermissionAction as A
from models.enums import PermissionResource as R
from models.enums import UserRole
from policy.permission_gate import (
    ActorContext,
    PermissionGate,
    PermissionRequest,
    PermissionTarget,
    evaluate,
)
from policy.permission_table import ROLE_PERMISSIONS

from .conftest import make_property, make_tenancy, make_user


def request(action, resource, **target):
    return PermissionRequest(action, resource, PermissionTarget(**target))


async def test_landlord_reads_documents_of_own_property_only(db, landlord, rental):
    gate = PermissionGate(db)
    other = await make_user(db, UserRole.LANDLORD)
    other_property = await make_property(db, other)

    assert await gate.check(landlord.id, request(A.READ, R.DOCUMENT, property_id=rental.id))
    assert not await gate.check(
        landlord.id, request(A.READ, R.DOCUMENT, property_id=other_property.id)
    )


async def test_tenant_reads_but_cannot_approve(db, tenant, rental):
    gate = PermissionGate(db)

    assert await gate.check(tenant.id, request(A.READ, R.WORKFLOW, property_id=rental.id))
    assert not await gate.check(
        tenant.id, request(A.APPROVE, R.WORKFLOW, property_id=rental.id)
    )


async def test_inactive_tenancy_grants_nothing(db, landlord):
    gate = PermissionGate(db)
    prop = await make_property(db, landlord)
    former = await make_user(db, UserRole.TENANT)
    await make_tenancy(db, former, prop, is_active=False)

    assert not await gate.check(former.id, request(A.READ, R.DOCUMENT, property_id=prop.id))


async def test_manager_acts_on_assigned_property(db, landlord):
    gate = PermissionGate(db)
    manager = await make_user(db, UserRole.PROPERTY_MANAGER)
    managed = await make_property(db, landlord, manager=manager)
    unmanaged = await make_property(db, landlord)

    assert await gate.check(
        manager.id, request(A.APPROVE, R.WORKFLOW, property_id=managed.id)
    )
    assert not await gate.check(
        manager.id, request(A.APPROVE, R.WORKFLOW, property_id=unmanaged.id)
    )
    assert not await gate.check(
        manager.id, request(A.DELETE, R.DOCUMENT, property_id=managed.id)
    )


async def test_signing_is_limited_to_the_named_signer(db, tenant, rental):
    gate = PermissionGate(db)

    assert await gate.check(tenant.id, request(A.SIGN, R.SIGNATURE, user_id=tenant.id))
    assert not await gate.check(
        tenant.id, request(A.SIGN, R.SIGNATURE, user_id=uuid.uuid4())
    )


async def test_unknown_permission_pair_is_rejected(db, landlord):
    with pytest.raises(ValidationError):
        await PermissionGate(db).check(landlord.id, request(A.SIGN, R.DOCUMENT))


async def test_unknown_or_inactive_actor_is_denied(db, rental):
    gate = PermissionGate(db)
    inactive_admin = await make_user(db, UserRole.ADMIN, is_active=False)

    assert not await gate.check(uuid.uuid4(), request(A.READ, R.DOCUMENT, property_id=rental.id))
    assert not await gate.check(
        inactive_admin.id, request(A.READ, R.DOCUMENT, property_id=rental.id)
    )


async def test_require_raises_authorization_denied(db, tenant, rental):
    with pytest.raises(AuthorizationDenied):
        await PermissionGate(db).require_document(
            tenant.id, A.DELETE, R.DOCUMENT, rental.id
        )


def test_vendor_rules_match_on_vendor_id():
    vendor_id = uuid.uuid4()
    actor = ActorContext(id=uuid.uuid4(), role=UserRole.VENDOR, vendor_id=vendor_id)
    rules = ROLE_PERMISSIONS[UserRole.VENDOR]

    assert evaluate(rules, actor, request(A.UPDATE, R.TICKET, vendor_id=vendor_id))
    assert not evaluate(rules, actor, request(A.UPDATE, R.TICKET, vendor_id=uuid.uuid4()))
    assert not evaluate(rules, actor, request(A.CREATE, R.TICKET, vendor_id=vendor_id))


def test_admin_rules_are_unconditional():
    actor = ActorContext(id=uuid.uuid4(), role=UserRole.ADMIN)
    rules = ROLE_PERMISSIONS[UserRole.ADMIN]

    assert evaluate(rules, actor, request(A.APPROVE, R.DOCUMENT, property_id=uuid.uuid4()))
    assert not evaluate(rules, actor, request(A.SIGN, R.SIGNATURE))
