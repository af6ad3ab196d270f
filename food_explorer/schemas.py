from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import List, Optional

EMAIL_PATTERN = r'^[^@\s]+@[^@\s]+\.[^@\s]+$'

class UserCreate(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6)
    is_admin: bool = False

class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(default=None, min_length=6)
    old_password: Optional[str] = None
    is_admin: Optional[bool] = None

class UserSchema(BaseModel):
    id: int
    name: str
    email: str
    is_admin: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class SessionSchema(BaseModel):
    user: UserSchema
    token: str

class IngredientSchema(BaseModel):
    id: int
    dish_id: int
    name: str
    created_by: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)

class DishBase(BaseModel):
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    price: float

class DishCreate(DishBase):
    name: str = Field(min_length=1)
    price: float = Field(ge=0)
    ingredients: List[str] = []

class DishUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)

class DishSchema(DishBase):
    id: int
    image: Optional[str] = None
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    ingredients: List[IngredientSchema] = []

    model_config = ConfigDict(from_attributes=True)

class CartItemCreate(BaseModel):
    dish_id: int
    name: str
    quantity: int = Field(ge=1)

class CartCreate(BaseModel):
    cart_items: List[CartItemCreate]

class CartUpdate(CartCreate):
    pass

class CartItemSchema(CartItemCreate):
    id: int
    cart_id: int
    # null once the dish is removed from the catalog
    dish_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)

class CartSummary(BaseModel):
    id: int
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class CartSchema(CartSummary):
    created_by: int
    updated_at: Optional[datetime] = None
    cart_items: List[CartItemSchema] = []

class OrderItemCreate(BaseModel):
    dish_id: int
    quantity: int = Field(ge=1)

class OrderBase(BaseModel):
    status: str
    price: float = Field(ge=0)
    payment_method: str

class OrderCreate(OrderBase):
    order_items: List[OrderItemCreate]

class OrderUpdate(BaseModel):
    status: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    payment_method: Optional[str] = None

class OrderItemSchema(BaseModel):
    id: int
    order_id: int
    dish_id: Optional[int] = None
    name: str
    quantity: int

    model_config = ConfigDict(from_attributes=True)

class OrderItemSummary(BaseModel):
    name: str
    quantity: int

    model_config = ConfigDict(from_attributes=True)

class OrderSchema(OrderBase):
    id: int
    created_by: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class CreatedSchema(BaseModel):
    id: int
