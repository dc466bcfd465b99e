from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class User(db.Model):
    """
    Staff account used for attribution.

    WHY: Every order, payment and stock adjustment records who did it.
    Credentials live with the authentication provider; only identity and
    role are kept here.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)

    # admin, manager, server, counter, kitchen
    role = db.Column(db.String(32), nullable=False, default="server", index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role!r}>"

    def to_summary(self) -> dict:
        return {
            "username": self.username,
            "first_name": self.first_name,
            "last_name": self.last_name,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)


class Product(db.Model):
    """
    Menu item.

    MONEY: price is stored in integer minor units (e.g. 150000 = Rp 150.000).
    Order lines snapshot the price at order time, so later price changes
    never alter existing orders.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_available_name", "is_available", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    price = db.Column(db.Integer, nullable=False)
    is_available = db.Column(db.Boolean, nullable=False, default=True)
    preparation_time = db.Column(db.Integer, nullable=True)  # minutes

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} price={self.price}>"

    def to_snapshot(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "preparation_time": self.preparation_time,
        }


class DiningTable(db.Model):
    """
    Physical table in the dining room.

    is_occupied is set when a dine-in order is created for the table and
    cleared when that order reaches a terminal or paid state.
    """
    __tablename__ = "dining_tables"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    table_number = db.Column(db.String(16), nullable=False, unique=True)
    seating_capacity = db.Column(db.Integer, nullable=False, default=4)
    location = db.Column(db.String(64), nullable=True)

    # Printed on the table; customers scan it to self-order
    qr_code = db.Column(db.String(128), nullable=True, unique=True, index=True)

    is_occupied = db.Column(db.Boolean, nullable=False, default=False)

    def to_public_dict(self) -> dict:
        data = {
            "id": self.id,
            "table_number": self.table_number,
            "seating_capacity": self.seating_capacity,
        }
        if self.location:
            data["location"] = self.location
        return data


class SystemSetting(db.Model):
    """Key/value settings (e.g. tax_rate as a percentage string)."""
    __tablename__ = "system_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    setting_key = db.Column(db.String(64), nullable=False, unique=True)
    setting_value = db.Column(db.String(255), nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
