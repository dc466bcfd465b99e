# Overview: SQL-backed adapters for product prices, tables and system settings.

"""
Catalog & Settings Adapters

The order and inventory services never query products, tables or settings
directly; they go through these adapters, which live on the app as injected
components. Tests can hand the services a different catalog or a fixed tax
rate without touching the database schema.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from flask import current_app, has_app_context

from ..errors import ProductNotFound, ValidationError
from ..extensions import db
from ..models import DiningTable, Product, SystemSetting
from ..time_utils import utcnow


TAX_RATE_KEY = "tax_rate"
FALLBACK_TAX_RATE = Decimal("11.0")


class ProductCatalog:
    def get_product(self, product_id: int) -> Product | None:
        return db.session.get(Product, product_id)

    def get_price(self, product_id: int) -> int:
        """Current price in minor units; ProductNotFound if the product does not exist."""
        product = self.get_product(product_id)
        if product is None:
            raise ProductNotFound()
        return int(product.price)

    def is_available(self, product_id: int) -> bool:
        product = self.get_product(product_id)
        return product is not None and bool(product.is_available)

    def get_table(self, table_id: int) -> DiningTable | None:
        return db.session.get(DiningTable, table_id)

    def get_table_by_qr(self, qr_code: str) -> DiningTable | None:
        return db.session.query(DiningTable).filter_by(qr_code=qr_code).first()


def _parse_rate(value) -> Decimal:
    try:
        rate = Decimal(str(value).strip())
    except (InvalidOperation, AttributeError):
        raise ValidationError("tax_rate must be a number", code="invalid_tax_rate")
    if not rate.is_finite() or rate < 0 or rate > 100:
        raise ValidationError("tax_rate must be between 0 and 100", code="invalid_tax_rate")
    return rate


class SettingsStore:
    def __init__(self, default_tax_rate=None):
        self._default_tax_rate = default_tax_rate

    def default_tax_rate(self) -> Decimal:
        if self._default_tax_rate is not None:
            return _parse_rate(self._default_tax_rate)
        if has_app_context():
            return _parse_rate(current_app.config.get("DEFAULT_TAX_RATE", FALLBACK_TAX_RATE))
        return FALLBACK_TAX_RATE

    def get_tax_rate(self) -> Decimal:
        """
        Tax rate as a percentage (e.g. Decimal("11.0")).

        Falls back to the configured default when no tax_rate setting exists
        or the stored value is unusable.
        """
        setting = db.session.query(SystemSetting).filter_by(setting_key=TAX_RATE_KEY).first()
        if setting is None:
            return self.default_tax_rate()
        try:
            return _parse_rate(setting.setting_value)
        except ValidationError:
            current_app.logger.warning(
                "Ignoring invalid tax_rate setting %r; using default", setting.setting_value
            )
            return self.default_tax_rate()

    def set_tax_rate(self, value) -> Decimal:
        rate = _parse_rate(value)
        setting = db.session.query(SystemSetting).filter_by(setting_key=TAX_RATE_KEY).first()
        if setting is None:
            setting = SystemSetting(setting_key=TAX_RATE_KEY, setting_value=str(rate))
            db.session.add(setting)
        else:
            setting.setting_value = str(rate)
            setting.updated_at = utcnow()
        db.session.commit()
        return rate

    def ensure_defaults(self) -> None:
        """Seed the tax_rate row if missing (used by `flask system init`)."""
        exists = db.session.query(SystemSetting.id).filter_by(setting_key=TAX_RATE_KEY).first()
        if exists is None:
            db.session.add(SystemSetting(setting_key=TAX_RATE_KEY, setting_value=str(self.default_tax_rate())))
            db.session.commit()
