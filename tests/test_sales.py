from datetime import datetime, timedelta, timezone
from decimal import Decimal
import uuid

import pytest

from app.core.exceptions import InsufficientStock, NotFound
from app.core.roles import DelegationTarget
from app.models.sales.sales_model import SaleStatus
from app.schemas.delegation_schemas import DelegationCreate
from app.schemas.sales_schemas import SaleCreate
from app.services.inventory.delegation_service import DelegationService
from app.services.sales.sales_service import SalesService
from app.utils.pagination import PaginationParams


def checkout(*lines, discount=None, unit=None, patient_name="Ama Mensah"):
    return SaleCreate(
        patient_name=patient_name,
        unit=unit,
        discount=discount,
        medicines=[
            {"medicine_id": medicine.id, "quantity": quantity, "selling_price": price}
            for medicine, quantity, price in lines
        ],
    )


async def test_central_sale_decrements_stock(db, medicine, store_officer):
    result = await SalesService.record_sale(
        db, checkout((medicine, 10, "12.50"), discount=0), store_officer
    )

    assert medicine.quantity == 90
    assert result.receipt_number.startswith("RCP-")
    assert result.subtotal == Decimal("125.00")
    assert result.total_amount == Decimal("125.00")

    [sale] = result.sales
    assert sale.status == SaleStatus.COMPLETED.value
    assert sale.sold_by_role == "store_officer"
    assert sale.medicine_name == medicine.name
    assert sale.outstanding_quantity == 10


async def test_multi_line_checkout_shares_receipt_and_splits_discount(
    db, make_medicine, store_officer
):
    first = await make_medicine(quantity=20, name="Amoxicillin 250mg")
    second = await make_medicine(quantity=20, name="Vitamin C 100mg")

    result = await SalesService.record_sale(
        db,
        checkout((first, 3, "100.00"), (second, 1, "100.00"), discount=Decimal("-100")),
        store_officer,
    )

    assert result.subtotal == Decimal("400.00")
    assert result.discount_amount == Decimal("100.00")
    assert result.total_amount == Decimal("300.00")

    assert {sale.receipt_number for sale in result.sales} == {result.receipt_number}
    assert [sale.discount for sale in result.sales] == [Decimal("75.00"), Decimal("25.00")]
    assert sum(sale.total_price for sale in result.sales) == result.total_amount


async def test_unit_discount_applies(db, medicine, store_officer):
    result = await SalesService.record_sale(
        db, checkout((medicine, 2, "1000.00"), unit="NHIS"), store_officer
    )
    assert result.total_amount == Decimal("1800.00")


async def test_receipt_numbers_increase(db, medicine, store_officer):
    first = await SalesService.record_sale(db, checkout((medicine, 1, "10")), store_officer)
    second = await SalesService.record_sale(db, checkout((medicine, 1, "10")), store_officer)

    assert first.receipt_number != second.receipt_number
    assert first.receipt_number.endswith("-0001")
    assert second.receipt_number.endswith("-0002")


async def test_insufficient_stock_aborts_whole_checkout(db, make_medicine, store_officer):
    plenty = await make_medicine(quantity=50, name="Ibuprofen 400mg")
    scarce = await make_medicine(quantity=2, name="Insulin Glargine")

    with pytest.raises(InsufficientStock) as exc_info:
        await SalesService.record_sale(
            db, checkout((plenty, 5, "10"), (scarce, 3, "80")), store_officer
        )
    assert exc_info.value.available == 2
    assert exc_info.value.requested == 3

    await db.refresh(plenty)
    await db.refresh(scarce)
    assert plenty.quantity == 50
    assert scarce.quantity == 2

    page = await SalesService.list_sales(db, PaginationParams())
    assert page.total == 0


async def test_repeated_medicine_lines_are_checked_together(db, make_medicine, store_officer):
    medicine = await make_medicine(quantity=5)
    with pytest.raises(InsufficientStock):
        await SalesService.record_sale(
            db, checkout((medicine, 3, "10"), (medicine, 3, "10")), store_officer
        )


async def test_unknown_medicine(db, medicine, store_officer):
    data = SaleCreate(
        patient_name="Ama Mensah",
        medicines=[{"medicine_id": uuid.uuid4(), "quantity": 1, "selling_price": "10"}],
    )
    with pytest.raises(NotFound):
        await SalesService.record_sale(db, data, store_officer)


async def test_delegated_sale_uses_delegation_not_central(db, medicine, store_officer, ipp_user):
    delegation = await DelegationService.create_delegation(
        db,
        DelegationCreate(medicine_id=medicine.id, quantity=30, delegated_to=DelegationTarget.IPP),
        store_officer,
    )
    assert medicine.quantity == 70

    result = await SalesService.record_sale(db, checkout((medicine, 10, "10")), ipp_user)

    assert medicine.quantity == 70
    assert result.sales[0].sold_by_role == "ipp"
    delegation = await DelegationService.get_delegation(db, delegation.id)
    assert delegation.remaining_quantity == 20

    allocations = await SalesService.get_allocations(db, result.sales[0].id)
    assert [(a.delegation_id, a.quantity) for a in allocations] == [(delegation.id, 10)]


async def test_delegated_sale_limited_to_own_delegations(
    db, medicine, store_officer, ipp_user, dispensary_user
):
    await DelegationService.create_delegation(
        db,
        DelegationCreate(medicine_id=medicine.id, quantity=30, delegated_to=DelegationTarget.IPP),
        store_officer,
    )

    single_unit = checkout((medicine, 1, "10"))
    over_delegation = checkout((medicine, 31, "10"))

    # Central stock is plentiful but the dispensary holds none of it
    with pytest.raises(InsufficientStock) as exc_info:
        await SalesService.record_sale(db, single_unit, dispensary_user)
    assert exc_info.value.available == 0

    with pytest.raises(InsufficientStock):
        await SalesService.record_sale(db, over_delegation, ipp_user)


async def test_list_sales_totals_and_filters(db, make_medicine, store_officer, other_user):
    first = await make_medicine(quantity=50, name="Amoxicillin 250mg")
    second = await make_medicine(quantity=50, name="Vitamin C 100mg")

    await SalesService.record_sale(db, checkout((first, 2, "50"), discount=0), store_officer)
    await SalesService.record_sale(db, checkout((second, 3, "10"), discount=0), other_user)

    page = await SalesService.list_sales(db, PaginationParams())
    assert page.total == 2
    assert page.totals.revenue == Decimal("130.00")
    assert page.totals.items_sold == 5
    assert page.totals.tx_count == 2

    page = await SalesService.list_sales(db, PaginationParams(), medicine_id=second.id)
    assert page.total == 1
    assert page.totals.revenue == Decimal("30.00")

    page = await SalesService.list_sales(db, PaginationParams(), sold_by_role="other")
    assert page.total == 1

    today = datetime.now(timezone.utc).date()
    page = await SalesService.list_sales(
        db, PaginationParams(), date_from=today - timedelta(days=1), date_to=today + timedelta(days=1)
    )
    assert page.total == 2

    page = await SalesService.list_sales(
        db, PaginationParams(), date_from=today + timedelta(days=2)
    )
    assert page.total == 0
    assert page.totals.revenue == Decimal("0.00")

    page = await SalesService.list_sales(db, PaginationParams(), status=SaleStatus.RETURNED)
    assert page.total == 0


async def test_get_sale(db, medicine, store_officer):
    result = await SalesService.record_sale(db, checkout((medicine, 1, "10")), store_officer)
    sale = await SalesService.get_sale(db, result.sales[0].id)
    assert sale.receipt_number == result.receipt_number

    with pytest.raises(NotFound):
        await SalesService.get_sale(db, uuid.uuid4())
