"""
Order lifecycle tests.

Verifies:
- Totals are computed in minor units from snapshotted prices and the tax setting
- Creation is all-or-nothing across items
- Status updates append history, stamp timestamps and release tables
- The default transition policy is permissive; strict is opt-in
- Listing filters and pagination
"""

from datetime import timedelta

import pytest

from tablepos.errors import (
    EmptyOrder,
    InvalidStatus,
    InvalidTransition,
    OrderNotFound,
    ProductUnavailable,
    TableNotFound,
    ValidationError,
)
from tablepos.extensions import db
from tablepos.models import DiningTable, Order, OrderNotification, OrderStatusHistory, Product
from tablepos.services import order_service
from tablepos.services.order_service import compute_tax, generate_order_number
from tablepos.services.transition_policy import StrictTransitionPolicy
from tablepos.time_utils import utcnow


def _scenario_items(menu):
    return [
        {"product_id": menu['nasi_goreng'].id, "quantity": 1},
        {"product_id": menu['es_teh'].id, "quantity": 2},
    ]


# =============================================================================
# CREATION
# =============================================================================


class TestCreateOrder:
    def test_scenario_totals(self, components, menu):
        order = order_service.create_order(items=_scenario_items(menu), order_type="takeout")

        assert order.subtotal == 320000
        assert order.tax_amount == 35200
        assert order.total_amount == 355200
        assert order.discount_amount == 0
        assert order.status == "pending"
        assert [item.total_price for item in order.items] == [150000, 170000]

    def test_total_is_subtotal_plus_tax(self, components, make_product):
        product = make_product("Sate", 12345)
        order = order_service.create_order(
            items=[{"product_id": product.id, "quantity": 3}],
            order_type="delivery",
        )
        assert order.total_amount == order.subtotal + order.tax_amount - order.discount_amount
        # 37035 * 11% = 4073.85 -> 4074
        assert order.tax_amount == 4074

    def test_tax_rate_setting_overrides_default(self, components, menu, tax_rate):
        tax_rate("10")
        order = order_service.create_order(items=_scenario_items(menu), order_type="takeout")
        assert order.tax_amount == 32000
        assert order.total_amount == 352000

    def test_price_snapshot_survives_price_change(self, components, db_session, menu):
        order = order_service.create_order(items=_scenario_items(menu), order_type="takeout")

        product = db_session.get(Product, menu['nasi_goreng'].id)
        product.price = 999999
        db_session.commit()

        reloaded = order_service.get_order(order.id)
        assert reloaded.subtotal == 320000
        assert reloaded.items[0].unit_price == 150000
        assert reloaded.total_amount == 355200

    def test_empty_order_rejected(self, components):
        with pytest.raises(EmptyOrder):
            order_service.create_order(items=[], order_type="takeout")

    def test_unknown_order_type_rejected(self, components, menu):
        with pytest.raises(ValidationError) as excinfo:
            order_service.create_order(items=_scenario_items(menu), order_type="drive_thru")
        assert excinfo.value.code == "invalid_order_type"

    def test_dine_in_requires_table(self, components, menu):
        with pytest.raises(ValidationError) as excinfo:
            order_service.create_order(items=_scenario_items(menu), order_type="dine_in")
        assert excinfo.value.code == "table_required_for_dine_in"

    def test_unknown_table_rejected(self, components, menu):
        with pytest.raises(TableNotFound):
            order_service.create_order(items=_scenario_items(menu), order_type="dine_in", table_id=404)

    def test_unavailable_product_rolls_back_whole_order(self, components, db_session, menu, make_product, make_table):
        sold_out = make_product("Rendang", 90000, is_available=False)
        table = make_table("T1")

        items = _scenario_items(menu) + [{"product_id": sold_out.id, "quantity": 1}]
        with pytest.raises(ProductUnavailable) as excinfo:
            order_service.create_order(items=items, order_type="dine_in", table_id=table.id)

        assert excinfo.value.code == "product_not_available"
        assert db_session.query(Order).count() == 0
        assert db_session.get(DiningTable, table.id).is_occupied is False

    def test_missing_product_is_unavailable(self, components, menu):
        items = [{"product_id": 987654, "quantity": 1}]
        with pytest.raises(ProductUnavailable):
            order_service.create_order(items=items, order_type="takeout")

    @pytest.mark.parametrize("quantity", [0, -2, True, "1"])
    def test_bad_quantity_rejected_before_write(self, components, db_session, menu, quantity):
        items = [{"product_id": menu['nasi_goreng'].id, "quantity": quantity}]
        with pytest.raises(ValidationError) as excinfo:
            order_service.create_order(items=items, order_type="takeout")

        assert excinfo.value.code == "invalid_quantity"
        assert db_session.query(Order).count() == 0

    @pytest.mark.parametrize("item", [{"quantity": 1}, {"product_id": "7", "quantity": 1}, "nasi goreng"])
    def test_malformed_item_rejected_before_write(self, components, db_session, menu, item):
        with pytest.raises(ValidationError) as excinfo:
            order_service.create_order(items=[item], order_type="takeout")

        assert excinfo.value.code == "invalid_items"
        assert db_session.query(Order).count() == 0

    def test_prices_resolved_through_catalog(self, components, menu, monkeypatch):
        monkeypatch.setattr(components.catalog, "get_price", lambda product_id: 1000)
        order = order_service.create_order(items=_scenario_items(menu), order_type="takeout")

        assert order.subtotal == 3000
        assert [item.unit_price for item in order.items] == [1000, 1000]

    def test_dine_in_occupies_table(self, components, db_session, menu, make_table):
        table = make_table("T2")
        order = order_service.create_order(items=_scenario_items(menu), order_type="dine_in", table_id=table.id)

        assert order.table_id == table.id
        assert db_session.get(DiningTable, table.id).is_occupied is True

    def test_order_number_format(self, components, menu):
        order = order_service.create_order(items=_scenario_items(menu), order_type="takeout")
        assert order.order_number.startswith("ORD" + utcnow().strftime("%Y%m%d") + "-")
        assert len(order.order_number.split("-")[1]) == 8

    def test_special_instructions_kept_per_item(self, components, menu):
        items = [{"product_id": menu['es_teh'].id, "quantity": 1, "special_instructions": "Less sugar"}]
        order = order_service.create_order(items=items, order_type="takeout", notes="Window seat")
        assert order.items[0].special_instructions == "Less sugar"
        assert order.notes == "Window seat"


def test_generate_order_number_is_random():
    numbers = {generate_order_number() for _ in range(50)}
    assert len(numbers) == 50


def test_compute_tax_rounds_half_up():
    from decimal import Decimal

    assert compute_tax(320000, Decimal("11")) == 35200
    assert compute_tax(50, Decimal("11")) == 6  # 5.5 -> 6
    assert compute_tax(0, Decimal("11")) == 0


# =============================================================================
# STATUS UPDATES
# =============================================================================


class TestUpdateOrderStatus:
    @pytest.fixture
    def dine_in_order(self, components, menu, make_table):
        table = make_table("T10")
        return order_service.create_order(items=_scenario_items(menu), order_type="dine_in", table_id=table.id)

    def test_unknown_status_rejected(self, dine_in_order):
        with pytest.raises(InvalidStatus):
            order_service.update_order_status(dine_in_order.id, "teleported")

    def test_paid_is_not_staff_settable(self, dine_in_order):
        with pytest.raises(InvalidStatus):
            order_service.update_order_status(dine_in_order.id, "paid")

    def test_missing_order(self, components):
        with pytest.raises(OrderNotFound):
            order_service.update_order_status(424242, "confirmed")

    def test_history_appended(self, db_session, dine_in_order, make_user):
        chef = make_user("kitchen")
        order_service.update_order_status(dine_in_order.id, "preparing", user_id=chef.id, notes="Grill on")

        entries = order_service.get_order_status_history(dine_in_order.id)
        assert len(entries) == 1
        entry = entries[0].to_dict()
        assert entry["previous_status"] == "pending"
        assert entry["new_status"] == "preparing"
        assert entry["changed_by"] == chef.username
        assert entry["notes"] == "Grill on"

    def test_history_oldest_first_with_system_fallback(self, dine_in_order):
        order_service.update_order_status(dine_in_order.id, "confirmed")
        order_service.update_order_status(dine_in_order.id, "preparing")

        entries = [e.to_dict() for e in order_service.get_order_status_history(dine_in_order.id)]
        assert [e["new_status"] for e in entries] == ["confirmed", "preparing"]
        assert entries[0]["changed_by"] == "System"
        assert entries[0]["notes"] == ""

    def test_history_for_missing_order(self, components):
        with pytest.raises(OrderNotFound):
            order_service.get_order_status_history(31337)

    def test_served_and_completed_stamped(self, dine_in_order):
        served = order_service.update_order_status(dine_in_order.id, "served")
        assert served.served_at is not None
        assert served.completed_at is None

        completed = order_service.update_order_status(dine_in_order.id, "completed")
        assert completed.completed_at is not None

    @pytest.mark.parametrize("terminal", ["completed", "cancelled"])
    def test_terminal_status_releases_table(self, db_session, dine_in_order, terminal):
        table_id = dine_in_order.table_id
        assert db_session.get(DiningTable, table_id).is_occupied is True

        order_service.update_order_status(dine_in_order.id, terminal)

        db_session.expire_all()
        assert db_session.get(DiningTable, table_id).is_occupied is False

    def test_non_terminal_status_keeps_table(self, db_session, dine_in_order):
        order_service.update_order_status(dine_in_order.id, "ready")
        db_session.expire_all()
        assert db_session.get(DiningTable, dine_in_order.table_id).is_occupied is True

    def test_permissive_policy_allows_any_known_status(self, dine_in_order):
        # Staff corrections: completed back to pending is accepted
        order_service.update_order_status(dine_in_order.id, "completed")
        reopened = order_service.update_order_status(dine_in_order.id, "pending")
        assert reopened.status == "pending"

    def test_strict_policy_enforces_graph(self, components, dine_in_order):
        components.transition_policy = StrictTransitionPolicy()

        with pytest.raises(InvalidTransition):
            order_service.update_order_status(dine_in_order.id, "ready")

        order_service.update_order_status(dine_in_order.id, "confirmed")
        order_service.update_order_status(dine_in_order.id, "cancelled")
        with pytest.raises(InvalidTransition):
            order_service.update_order_status(dine_in_order.id, "pending")

    def test_rejected_transition_writes_nothing(self, components, db_session, dine_in_order):
        components.transition_policy = StrictTransitionPolicy()
        with pytest.raises(InvalidTransition):
            order_service.update_order_status(dine_in_order.id, "served")

        assert db_session.query(OrderStatusHistory).count() == 0
        assert db_session.get(Order, dine_in_order.id).status == "pending"

    def test_customer_notifications_for_key_statuses(self, db_session, dine_in_order):
        for status in ("confirmed", "preparing", "ready", "served", "completed"):
            order_service.update_order_status(dine_in_order.id, status)

        notes = (
            db_session.query(OrderNotification)
            .filter_by(order_id=dine_in_order.id)
            .order_by(OrderNotification.id)
            .all()
        )
        assert [n.status for n in notes] == ["preparing", "ready", "completed"]

    def test_notification_failure_does_not_fail_update(self, components, db_session, dine_in_order, monkeypatch):
        def broken(order_id, status):
            raise RuntimeError("push gateway down")

        monkeypatch.setattr(components.notifications, "notify_order_status", broken)
        order = order_service.update_order_status(dine_in_order.id, "ready")

        assert order.status == "ready"
        assert db_session.query(OrderStatusHistory).count() == 1


# =============================================================================
# LISTING
# =============================================================================


class TestListOrders:
    @pytest.fixture
    def orders(self, components, menu):
        items = [{"product_id": menu['es_teh'].id, "quantity": 1}]
        created = [order_service.create_order(items=items, order_type="takeout") for _ in range(5)]
        created.append(order_service.create_order(items=items, order_type="delivery"))
        order_service.update_order_status(created[0].id, "cancelled")
        return created

    def test_pagination_meta(self, orders):
        page, meta = order_service.list_orders(page=2, per_page=4)
        assert meta == {"current_page": 2, "per_page": 4, "total": 6, "total_pages": 2}
        assert len(page) == 2

    def test_newest_first(self, orders):
        page, _ = order_service.list_orders()
        assert page[0].id == orders[-1].id

    def test_filters(self, orders):
        cancelled, meta = order_service.list_orders(status="cancelled")
        assert [o.id for o in cancelled] == [orders[0].id]
        assert meta["total"] == 1

        delivery, _ = order_service.list_orders(order_type="delivery")
        assert [o.order_type for o in delivery] == ["delivery"]

    def test_date_range(self, db_session, orders):
        old = db_session.get(Order, orders[1].id)
        old.created_at = utcnow() - timedelta(days=10)
        db_session.commit()

        recent, meta = order_service.list_orders(date_from=utcnow() - timedelta(days=1))
        assert orders[1].id not in [o.id for o in recent]
        assert meta["total"] == 5

        past, _ = order_service.list_orders(date_to=utcnow() - timedelta(days=5))
        assert [o.id for o in past] == [orders[1].id]

    def test_empty_result_has_zero_pages(self, components):
        page, meta = order_service.list_orders()
        assert page == []
        assert meta["total_pages"] == 0

    @pytest.mark.parametrize("kwargs", [{"page": 0}, {"per_page": 0}, {"per_page": 101}, {"status": "lost"}])
    def test_invalid_params(self, components, kwargs):
        with pytest.raises(ValidationError):
            order_service.list_orders(**kwargs)

    def test_aggregate_includes_items_and_payments(self, orders):
        data = order_service.get_order(orders[2].id).to_dict()
        assert data["items"][0]["product"]["name"] == "Es Teh"
        assert data["payments"] == []

    def test_get_missing_order(self, components):
        with pytest.raises(OrderNotFound):
            order_service.get_order(99999)
