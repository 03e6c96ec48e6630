from datetime import datetime, timedelta, timezone
import uuid

import pytest

from app.core.exceptions import InsufficientStock, NotFound
from app.core.roles import DelegationTarget, Role
from app.schemas.delegation_schemas import DelegationCreate
from app.schemas.sales_schemas import SaleCreate
from app.services.inventory.delegation_service import DelegationService
from app.services.sales.sales_service import SalesService
from app.utils.pagination import PaginationParams


def delegate(medicine, quantity, target=DelegationTarget.IPP, **kwargs):
    return DelegationCreate(
        medicine_id=medicine.id,
        quantity=quantity,
        delegated_to=target,
        **kwargs,
    )


async def test_delegation_moves_stock_out_of_central(db, medicine, store_officer):
    response = await DelegationService.create_delegation(
        db, delegate(medicine, 30), store_officer
    )

    assert medicine.quantity == 70
    assert response.original_quantity == 30
    assert response.quantity == 30
    assert response.remaining_quantity == 30
    assert response.sold_quantity == 0
    assert response.delegated_to == "ipp"
    assert response.medicine_name == medicine.name
    assert response.generic_name == "Paracetamol"


async def test_delegating_more_than_stock_is_rejected(db, medicine, store_officer):
    with pytest.raises(InsufficientStock) as exc_info:
        await DelegationService.create_delegation(db, delegate(medicine, 150), store_officer)

    assert exc_info.value.available == 100
    assert exc_info.value.requested == 150

    await db.refresh(medicine)
    assert medicine.quantity == 100

    page = await DelegationService.list_delegations(db, PaginationParams())
    assert page.total == 0
    inbox = await DelegationService.get_notifications(db, Role.IPP)
    assert inbox.unread_count == 0


async def test_delegating_unknown_medicine(db, store_officer, medicine):
    data = DelegationCreate(medicine_id=uuid.uuid4(), quantity=1, delegated_to=DelegationTarget.IPP)
    with pytest.raises(NotFound):
        await DelegationService.create_delegation(db, data, store_officer)


async def test_delegating_entire_stock_is_allowed(db, medicine, store_officer):
    await DelegationService.create_delegation(db, delegate(medicine, 100), store_officer)
    assert medicine.quantity == 0


async def test_ipp_and_dispensary_are_notified(db, medicine, store_officer):
    await DelegationService.create_delegation(db, delegate(medicine, 10), store_officer)
    await DelegationService.create_delegation(
        db, delegate(medicine, 5, DelegationTarget.DISPENSARY), store_officer
    )
    await DelegationService.create_delegation(
        db, delegate(medicine, 5, DelegationTarget.OTHER), store_officer
    )

    ipp_inbox = await DelegationService.get_notifications(db, Role.IPP)
    assert ipp_inbox.unread_count == 1
    assert ipp_inbox.notifications[0].quantity == 10
    assert medicine.name in ipp_inbox.notifications[0].message

    dispensary_inbox = await DelegationService.get_notifications(db, Role.DISPENSARY)
    assert dispensary_inbox.unread_count == 1

    other_inbox = await DelegationService.get_notifications(db, Role.OTHER)
    assert other_inbox.unread_count == 0
    assert other_inbox.notifications == []


async def test_mark_notifications_read(db, medicine, store_officer):
    for _ in range(3):
        await DelegationService.create_delegation(db, delegate(medicine, 1), store_officer)

    inbox = await DelegationService.get_notifications(db, Role.IPP)
    assert inbox.unread_count == 3

    updated = await DelegationService.mark_notification_read(
        db, inbox.notifications[0].id, Role.IPP
    )
    assert updated == 1
    assert (await DelegationService.get_notifications(db, Role.IPP)).unread_count == 2

    # Another role cannot touch IPP notifications
    with pytest.raises(NotFound):
        await DelegationService.mark_notification_read(
            db, inbox.notifications[1].id, Role.DISPENSARY
        )

    updated = await DelegationService.mark_all_notifications_read(db, Role.IPP)
    assert updated == 2
    assert (await DelegationService.get_notifications(db, Role.IPP)).unread_count == 0


async def test_sales_draw_oldest_delegation_first(db, medicine, store_officer, ipp_user):
    now = datetime.now(timezone.utc)
    older = await DelegationService.create_delegation(
        db, delegate(medicine, 10, delegation_date=now - timedelta(days=2)), store_officer
    )
    newer = await DelegationService.create_delegation(
        db, delegate(medicine, 10, delegation_date=now - timedelta(days=1)), store_officer
    )

    await SalesService.record_sale(
        db,
        SaleCreate(
            patient_name="Kofi Boateng",
            discount=0,
            medicines=[{"medicine_id": medicine.id, "quantity": 14, "selling_price": "10.00"}],
        ),
        ipp_user,
    )

    older = await DelegationService.get_delegation(db, older.id)
    newer = await DelegationService.get_delegation(db, newer.id)
    assert older.remaining_quantity == 0
    assert older.sold_quantity == 10
    assert newer.remaining_quantity == 6
    assert newer.sold_quantity == 4

    # Original quantities never move
    assert older.original_quantity == 10
    assert newer.original_quantity == 10

    units, active = await DelegationService.units_in_stock(db, Role.IPP)
    assert units == 6
    assert active == 1


async def test_list_delegations_filters(db, make_medicine, store_officer):
    first = await make_medicine(quantity=50, name="Amoxicillin 250mg")
    second = await make_medicine(quantity=50, name="Metformin 500mg")

    await DelegationService.create_delegation(db, delegate(first, 5), store_officer)
    await DelegationService.create_delegation(
        db, delegate(second, 5, DelegationTarget.DISPENSARY), store_officer
    )
    await DelegationService.create_delegation(db, delegate(second, 5), store_officer)

    page = await DelegationService.list_delegations(db, PaginationParams())
    assert page.total == 3

    page = await DelegationService.list_delegations(
        db, PaginationParams(), delegated_to=DelegationTarget.IPP
    )
    assert page.total == 2
    assert all(item.delegated_to == "ipp" for item in page.items)

    page = await DelegationService.list_delegations(
        db, PaginationParams(), medicine_id=second.id
    )
    assert page.total == 2
    assert {item.medicine_name for item in page.items} == {"Metformin 500mg"}


async def test_get_unknown_delegation(db):
    with pytest.raises(NotFound):
        await DelegationService.get_delegation(db, uuid.uuid4())
