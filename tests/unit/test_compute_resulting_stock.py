import pytest

from app.stockroom.core.error_catalog import AppError, ErrorCatalog
from app.stockroom.db.models import INTEGER_MAX
from app.stockroom.schemas.stock_movements import StockMovementCreateRequest
from app.stockroom.services.stock_movements import compute_resulting_stock, validate_movement


@pytest.mark.parametrize(("current", "quantity"), [(0, 1), (5, 3), (10, 5)])
def test_in_adds(current, quantity):
    assert compute_resulting_stock("in", current, quantity=quantity) == current + quantity


@pytest.mark.parametrize(("current", "quantity"), [(5, 5), (15, 3)])
def test_out_subtracts(current, quantity):
    assert compute_resulting_stock("out", current, quantity=quantity) == current - quantity


def test_out_below_zero_raises_insufficient_stock():
    with pytest.raises(AppError) as exc_info:
        compute_resulting_stock("out", 15, quantity=20)

    assert exc_info.value.error is ErrorCatalog.INSUFFICIENT_STOCK
    assert exc_info.value.details["available"] == 15
    assert exc_info.value.details["requested"] == 20


@pytest.mark.parametrize("current", [0, 3, 1000])
def test_adjust_overrides(current):
    assert compute_resulting_stock("adjust", current, new_stock=7) == 7


def test_unknown_type_is_validation_error():
    with pytest.raises(AppError) as exc_info:
        compute_resulting_stock("transfer", 1, quantity=1)

    assert exc_info.value.error is ErrorCatalog.VALIDATION_ERROR


def test_validate_adjust_zeroes_quantity():
    command = validate_movement(
        StockMovementCreateRequest(product_id=3, type="adjust", new_stock=4, quantity=9, notes="count")
    )

    assert command.quantity == 0
    assert command.new_stock == 4
    assert command.notes == "count"


def test_validate_in_drops_new_stock():
    command = validate_movement(StockMovementCreateRequest(product_id=3, type="in", quantity=2, new_stock=50))

    assert command.quantity == 2
    assert command.new_stock is None


def test_validate_collects_every_field_error():
    with pytest.raises(AppError) as exc_info:
        validate_movement(StockMovementCreateRequest(product_id=0, type="out", quantity=0))

    fields = [item["field"] for item in exc_info.value.details["errors"]]
    assert fields == ["product_id", "quantity"]


def test_in_beyond_column_range_is_validation_error():
    with pytest.raises(AppError) as exc_info:
        compute_resulting_stock("in", 1, quantity=INTEGER_MAX)

    assert exc_info.value.error is ErrorCatalog.VALIDATION_ERROR
    assert exc_info.value.details["errors"][0]["field"] == "quantity"
    assert compute_resulting_stock("in", 0, quantity=INTEGER_MAX) == INTEGER_MAX


def test_adjust_beyond_column_range_is_validation_error():
    with pytest.raises(AppError):
        compute_resulting_stock("adjust", 0, new_stock=INTEGER_MAX + 1)
