"""
Inventory ledger tests.

Verifies:
- Adjustments are all-or-nothing with exactly one history row per success
- Stock never goes negative
- Derived status, ordering and total value
- Low-stock alerts fan out after commit and never fail the adjustment
"""

import pytest

from tablepos.errors import InsufficientStock, ProductNotFound, ValidationError
from tablepos.models import InventoryHistory, InventoryRecord, Notification
from tablepos.services import inventory_service
from tablepos.services.inventory_service import stock_status


@pytest.fixture
def product(components, make_product):
    return make_product("Ayam Bakar", 65000)


def _adjust(product_id, operation, quantity, reason="manual_adjustment", **kwargs):
    return inventory_service.adjust_stock(
        product_id,
        operation=operation,
        quantity=quantity,
        reason=reason,
        **kwargs,
    )


class TestAdjustStock:
    def test_first_adjustment_creates_record(self, db_session, product):
        entry = _adjust(product.id, "add", 25, reason="purchase", notes="Weekly delivery")

        record = db_session.query(InventoryRecord).filter_by(product_id=product.id).one()
        assert record.current_stock == 25
        assert record.minimum_stock == 10
        assert record.maximum_stock == 100
        assert record.last_restocked_at is not None

        assert (entry.previous_stock, entry.new_stock, entry.quantity) == (0, 25, 25)
        assert entry.to_dict()["notes"] == "Weekly delivery"

    def test_remove_more_than_stock_fails_cleanly(self, db_session, product):
        _adjust(product.id, "add", 5, reason="purchase")

        with pytest.raises(InsufficientStock) as excinfo:
            _adjust(product.id, "remove", 10, reason="sale")

        assert excinfo.value.code == "insufficient_stock"
        db_session.expire_all()
        record = db_session.query(InventoryRecord).filter_by(product_id=product.id).one()
        assert record.current_stock == 5
        assert db_session.query(InventoryHistory).filter_by(product_id=product.id).count() == 1

    def test_remove_on_never_stocked_product(self, db_session, product):
        with pytest.raises(InsufficientStock):
            _adjust(product.id, "remove", 1)
        assert db_session.query(InventoryRecord).count() == 0
        assert db_session.query(InventoryHistory).count() == 0

    def test_remove_to_exactly_zero(self, product):
        _adjust(product.id, "add", 3)
        entry = _adjust(product.id, "remove", 3, reason="spoilage")
        assert entry.new_stock == 0

    def test_actor_recorded(self, product, make_user):
        manager = make_user("manager")
        entry = _adjust(product.id, "add", 1, user_id=manager.id)
        assert entry.to_dict()["adjusted_by"] == manager.username

    def test_unknown_product(self, components):
        with pytest.raises(ProductNotFound):
            _adjust(424242, "add", 1)

    @pytest.mark.parametrize("kwargs,code", [
        ({"operation": "steal", "quantity": 1, "reason": "theft"}, "invalid_operation"),
        ({"operation": "add", "quantity": 0, "reason": "purchase"}, "invalid_quantity"),
        ({"operation": "add", "quantity": -4, "reason": "purchase"}, "invalid_quantity"),
        ({"operation": "add", "quantity": 1, "reason": "gift"}, "invalid_reason"),
    ])
    def test_validation(self, product, kwargs, code):
        with pytest.raises(ValidationError) as excinfo:
            inventory_service.adjust_stock(product.id, **kwargs)
        assert excinfo.value.code == code


class TestLowStockAlerts:
    def test_fan_out_to_active_managers_and_admins(self, db_session, product, make_user):
        manager = make_user("manager")
        admin = make_user("admin")
        make_user("manager", is_active=False)
        make_user("server")

        _adjust(product.id, "add", 4, reason="purchase")

        notes = db_session.query(Notification).order_by(Notification.user_id).all()
        assert [n.user_id for n in notes] == [manager.id, admin.id]
        assert notes[0].type == "inventory"
        assert notes[0].title == "Low stock"
        assert notes[0].message == "Ayam Bakar has 4 left (minimum: 10)"

    def test_no_alert_at_or_above_minimum(self, db_session, product, make_user):
        make_user("manager")
        _adjust(product.id, "add", 10, reason="purchase")
        assert db_session.query(Notification).count() == 0

    def test_alert_failure_never_fails_adjustment(self, components, db_session, product, monkeypatch):
        def broken(name, current, minimum):
            raise RuntimeError("mail server down")

        monkeypatch.setattr(components.notifications, "notify_low_stock", broken)
        entry = _adjust(product.id, "add", 2, reason="purchase")

        assert entry.new_stock == 2
        db_session.expire_all()
        assert db_session.query(InventoryRecord).filter_by(product_id=product.id).one().current_stock == 2


class TestStockViews:
    def test_status_derivation(self):
        assert stock_status(0, 10) == "out"
        assert stock_status(0, 0) == "out"
        assert stock_status(9, 10) == "low"
        assert stock_status(10, 10) == "ok"

    def test_inventory_ordering_and_defaults(self, db_session, make_product):
        plenty = make_product("Bakso", 30000)
        low = make_product("Soto", 35000)
        never = make_product("Gado-Gado", 28000)
        make_product("Hidden", 1000, is_available=False)

        _adjust(plenty.id, "add", 50)
        _adjust(low.id, "add", 3)

        record = db_session.query(InventoryRecord).filter_by(product_id=plenty.id).one()
        record.unit_cost = 12000
        db_session.commit()

        items = inventory_service.get_inventory()
        assert [(i["product_name"], i["status"]) for i in items] == [
            ("Gado-Gado", "out"),
            ("Soto", "low"),
            ("Bakso", "ok"),
        ]
        by_name = {i["product_name"]: i for i in items}
        assert by_name["Gado-Gado"]["min_stock"] == 10
        assert by_name["Gado-Gado"]["max_stock"] == 100
        assert by_name["Gado-Gado"]["category_name"] == "Mains"
        assert by_name["Bakso"]["total_value"] == 50 * 12000

    def test_low_stock_excludes_ok(self, make_product):
        ok = make_product("Martabak", 40000)
        low = make_product("Pempek", 25000)
        _adjust(ok.id, "add", 20)
        _adjust(low.id, "add", 1)

        names = [i["product_name"] for i in inventory_service.get_low_stock()]
        assert names == ["Pempek"]

    def test_product_inventory(self, product):
        _adjust(product.id, "add", 12)
        view = inventory_service.get_product_inventory(product.id)
        assert view["current_stock"] == 12
        assert view["status"] == "ok"
        assert view["unit"] == "pcs"

    def test_product_inventory_missing(self, components):
        with pytest.raises(ProductNotFound):
            inventory_service.get_product_inventory(777)


class TestStockHistory:
    def test_newest_first(self, product):
        _adjust(product.id, "add", 10, reason="purchase")
        _adjust(product.id, "remove", 2, reason="sale")
        _adjust(product.id, "remove", 1, reason="damage")

        history = inventory_service.get_stock_history(product.id)
        assert [h.reason for h in history] == ["damage", "sale", "purchase"]
        assert history[0].to_dict()["adjusted_by"] == "System"

    def test_capped_at_one_hundred(self, db_session, product):
        _adjust(product.id, "add", 200)
        for _ in range(104):
            _adjust(product.id, "remove", 1, reason="sale")

        history = inventory_service.get_stock_history(product.id)
        assert len(history) == 100
        assert history[0].new_stock == 200 - 104

    def test_missing_product(self, components):
        with pytest.raises(ProductNotFound):
            inventory_service.get_stock_history(5150)
