# food_explorer/models.py

from sqlalchemy import Column, Integer, String, Float, Boolean, Text, DateTime, ForeignKey
from datetime import datetime, timezone
from .database import Base


def utcnow():
    # naive UTC, same convention for every timestamp column
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"
    id         = Column(Integer, primary_key=True, index=True)
    name       = Column(String, nullable=False)
    email      = Column(String, unique=True, index=True, nullable=False)
    password   = Column(String, nullable=False)
    is_admin   = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)

class Dish(Base):
    __tablename__ = "dishes"
    id          = Column(Integer, primary_key=True, index=True)
    name        = Column(String, nullable=False)
    description = Column(Text)
    category    = Column(String)
    price       = Column(Float, nullable=False)
    image       = Column(String, nullable=True)
    created_by  = Column(Integer, ForeignKey("users.id"))
    updated_by  = Column(Integer, ForeignKey("users.id"))
    created_at  = Column(DateTime, default=utcnow)
    updated_at  = Column(DateTime, default=utcnow)

class Ingredient(Base):
    __tablename__ = "ingredients"
    id         = Column(Integer, primary_key=True, index=True)
    dish_id    = Column(Integer, ForeignKey("dishes.id"), nullable=False, index=True)
    name       = Column(String, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"))

class Cart(Base):
    __tablename__ = "carts"
    id         = Column(Integer, primary_key=True, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)

class CartItem(Base):
    __tablename__ = "cart_items"
    id       = Column(Integer, primary_key=True, index=True)
    cart_id  = Column(Integer, ForeignKey("carts.id"), nullable=False, index=True)
    dish_id  = Column(Integer, ForeignKey("dishes.id", ondelete="SET NULL"), nullable=True)
    name     = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)

class Order(Base):
    __tablename__ = "orders"
    id             = Column(Integer, primary_key=True, index=True)
    status         = Column(String, nullable=False)
    price          = Column(Float, nullable=False)
    payment_method = Column(String, nullable=False)
    created_by     = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at     = Column(DateTime, default=utcnow)
    updated_at     = Column(DateTime, default=utcnow)

class OrderItem(Base):
    __tablename__ = "order_items"
    id       = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    dish_id  = Column(Integer, ForeignKey("dishes.id", ondelete="SET NULL"), nullable=True)
    name     = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
