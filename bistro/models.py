"""
SQLAlchemy Database Models

Tables:
    - users: identities, unique by email
    - menu: catalog items
    - reviews: customer reviews (read-only through the API)
    - carts: pending, unpaid selections
    - payments / payment_menu_items: completed checkouts, the source of
      truth for revenue and order statistics

Author: Bistro Boss Team
Version: 1.0.0
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Float, DateTime, Text, Enum, ForeignKey, JSON, Uuid
from sqlalchemy.orm import relationship

from bistro.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, enum.Enum):
    """Identity roles."""
    CUSTOMER = "customer"
    ADMIN = "admin"


class User(Base):
    """An identity, keyed naturally by email."""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    role = Column(Enum(UserRole), default=UserRole.CUSTOMER, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def __repr__(self):
        return f"<User {self.email} - {self.role.value}>"


class MenuItem(Base):
    __tablename__ = "menu"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    recipe = Column(Text, nullable=True)
    image = Column(String(500), nullable=True)
    category = Column(String(50), nullable=False, index=True)
    price = Column(Float, nullable=False)

    def __repr__(self):
        return f"<MenuItem {self.name} - {self.category} - {self.price}>"


class Review(Base):
    __tablename__ = "reviews"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    details = Column(Text, nullable=True)
    rating = Column(Float, nullable=False, default=0.0)


class CartItem(Base):
    """
    A pending selection of one menu item by one identity.

    Destroyed by explicit removal or by the payment that covers it.
    """
    __tablename__ = "carts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, index=True)
    menu_item_id = Column(Uuid, nullable=False)
    name = Column(String(200), nullable=True)
    image = Column(String(500), nullable=True)
    price = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<CartItem {self.id} - {self.email} - {self.price}>"


class Payment(Base):
    """
    Durable proof that a set of cart entries was purchased.

    Immutable once written. transaction_id is the provider's transaction and
    identifies the checkout across retries.
    """
    __tablename__ = "payments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, index=True)
    price = Column(Float, nullable=False)
    transaction_id = Column(String(255), nullable=False, unique=True, index=True)
    cart_ids = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    items = relationship(
        "PaymentMenuItem",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="PaymentMenuItem.id",
    )

    @property
    def menu_item_ids(self) -> list[uuid.UUID]:
        return [item.menu_item_id for item in self.items]

    def __repr__(self):
        return f"<Payment {self.id} - {self.email} - {self.price}>"


class PaymentMenuItem(Base):
    """One purchased menu item of a payment; duplicates are separate rows."""
    __tablename__ = "payment_menu_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    payment_id = Column(Uuid, ForeignKey("payments.id", ondelete="CASCADE"), nullable=False, index=True)
    # No foreign key: menu items may be deleted after purchase
    menu_item_id = Column(Uuid, nullable=False, index=True)
