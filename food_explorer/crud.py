import logging
from typing import Iterable, List, Optional

from fastapi import UploadFile
from pydantic import BaseModel
from sqlalchemy import select, update, delete, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from food_explorer.auth import get_password_hash, verify_password
from food_explorer.database import transaction
from food_explorer.exceptions import (
    AuthError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from food_explorer.models import (
    User, Dish, Ingredient, Cart, CartItem, Order, OrderItem, utcnow
)
from food_explorer.schemas import (
    UserCreate, UserUpdate,
    DishCreate, DishUpdate, DishSchema, IngredientSchema,
    CartCreate, CartUpdate, CartSchema, CartItemSchema, CartSummary,
    OrderCreate, OrderUpdate, OrderSchema, OrderItemSchema, OrderItemSummary,
)
from food_explorer.storage import DiskStorage

logger = logging.getLogger(__name__)

DISH_FIELDS = ("name", "description", "category", "price")
ORDER_FIELDS = ("status", "price", "payment_method")


def merge_patch(current, patch: BaseModel, fields: Iterable[str]) -> dict:
    """Values for ``fields``: supplied non-null patch values, else the stored ones."""
    supplied = patch.model_dump(include=set(fields), exclude_none=True)
    return {field: supplied.get(field, getattr(current, field)) for field in fields}


# --- users ---

async def get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalars().first()
    if not user:
        raise NotFoundError("User not found", details={"user_id": user_id})
    return user


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalars().first()


async def create_user(db: AsyncSession, user: UserCreate) -> User:
    if await get_user_by_email(db, user.email):
        raise ConflictError("Email already in use")
    db_user = User(
        name=user.name,
        email=user.email,
        password=get_password_hash(user.password),
        is_admin=user.is_admin,
    )
    try:
        async with transaction(db):
            db.add(db_user)
    except IntegrityError:
        raise ConflictError("Email already in use")
    logger.info(f"Registered user {db_user.id}")
    return db_user


async def update_user(
    db: AsyncSession,
    acting_user_id: int,
    patch: UserUpdate,
    target_user_id: Optional[int] = None,
) -> User:
    actor = await get_user(db, acting_user_id)
    if target_user_id is None or target_user_id == actor.id:
        target = actor
    else:
        target = await get_user(db, target_user_id)

    if "is_admin" in patch.model_fields_set and target.id != actor.id and not actor.is_admin:
        logger.warning(f"User {actor.id} tried to change is_admin of user {target.id}")
        raise PermissionDeniedError("You are not allowed to change the 'is_admin' field")
    if target.id != actor.id and not actor.is_admin:
        logger.warning(f"User {actor.id} tried to update user {target.id}")
        raise PermissionDeniedError("You are not allowed to update this user")

    if patch.email and patch.email != target.email:
        owner = await get_user_by_email(db, patch.email)
        if owner and owner.id != target.id:
            raise ConflictError("Email already in use")

    values = merge_patch(target, patch, ("name", "email", "is_admin"))
    values["password"] = target.password
    if patch.password:
        if not patch.old_password:
            raise ValidationError("The old password is required to set a new password")
        if not verify_password(patch.old_password, target.password):
            raise AuthError("Old password does not match")
        values["password"] = get_password_hash(patch.password)
    values["updated_at"] = utcnow()

    try:
        async with transaction(db):
            await db.execute(update(User).where(User.id == target.id).values(**values))
    except IntegrityError:
        raise ConflictError("Email already in use")
    await db.refresh(target)
    logger.info(f"User {target.id} updated by {actor.id}")
    return target


# --- dishes ---

async def _get_dish_row(db: AsyncSession, dish_id: int) -> Dish:
    result = await db.execute(select(Dish).where(Dish.id == dish_id))
    dish = result.scalars().first()
    if not dish:
        raise NotFoundError("Dish not found", details={"dish_id": dish_id})
    return dish


async def _ingredients_by_dish(db: AsyncSession, dish_ids: List[int]) -> dict:
    grouped = {dish_id: [] for dish_id in dish_ids}
    if not dish_ids:
        return grouped
    result = await db.execute(
        select(Ingredient).where(Ingredient.dish_id.in_(dish_ids)).order_by(Ingredient.id)
    )
    for ingredient in result.scalars().all():
        grouped[ingredient.dish_id].append(IngredientSchema.model_validate(ingredient))
    return grouped


def _dish_projection(dish: Dish, ingredients: List[IngredientSchema]) -> DishSchema:
    return DishSchema.model_validate(dish).model_copy(update={"ingredients": ingredients})


async def create_dish(
    db: AsyncSession,
    storage: DiskStorage,
    dish: DishCreate,
    image: Optional[UploadFile],
    user_id: int,
) -> int:
    filename = await storage.save_file(image) if image is not None else None
    try:
        async with transaction(db):
            db_dish = Dish(
                name=dish.name,
                description=dish.description,
                category=dish.category,
                price=dish.price,
                image=filename,
                created_by=user_id,
                updated_by=user_id,
            )
            db.add(db_dish)
            # Flush to get ID for the ingredient rows
            await db.flush()
            db.add_all([
                Ingredient(dish_id=db_dish.id, name=name, created_by=user_id)
                for name in dish.ingredients
            ])
    except Exception:
        if filename:
            await storage.delete_file(filename)
        raise
    logger.info(f"Dish {db_dish.id} created by user {user_id}")
    return db_dish.id


async def get_dish(db: AsyncSession, dish_id: int) -> DishSchema:
    dish = await _get_dish_row(db, dish_id)
    ingredients = await _ingredients_by_dish(db, [dish.id])
    return _dish_projection(dish, ingredients[dish.id])


async def update_dish(
    db: AsyncSession,
    storage: DiskStorage,
    dish_id: int,
    patch: DishUpdate,
    user_id: int,
    image: Optional[UploadFile] = None,
    ingredients: Optional[List[str]] = None,
) -> DishSchema:
    db_dish = await _get_dish_row(db, dish_id)
    old_image = db_dish.image

    values = merge_patch(db_dish, patch, DISH_FIELDS)
    values.update(updated_by=user_id, updated_at=utcnow())

    new_image = None
    if image is not None:
        new_image = await storage.save_file(image)
        values["image"] = new_image

    try:
        async with transaction(db):
            if ingredients is not None:
                await db.execute(delete(Ingredient).where(Ingredient.dish_id == dish_id))
                db.add_all([
                    Ingredient(dish_id=dish_id, name=name, created_by=db_dish.created_by)
                    for name in ingredients
                ])
            await db.execute(update(Dish).where(Dish.id == dish_id).values(**values))
    except Exception:
        if new_image:
            await storage.delete_file(new_image)
        raise

    # the old file goes only once the new filename is committed
    if new_image and old_image:
        await storage.delete_file(old_image)
    await db.refresh(db_dish)
    logger.info(f"Dish {dish_id} updated by user {user_id}")
    return await get_dish(db, dish_id)


async def delete_dish(db: AsyncSession, storage: DiskStorage, dish_id: int) -> None:
    db_dish = await _get_dish_row(db, dish_id)
    image = db_dish.image
    async with transaction(db):
        await db.execute(delete(Ingredient).where(Ingredient.dish_id == dish_id))
        await db.execute(delete(Dish).where(Dish.id == dish_id))
    if image:
        await storage.delete_file(image)
    logger.info(f"Dish {dish_id} deleted")


async def search_dishes(db: AsyncSession, search: Optional[str] = None) -> List[DishSchema]:
    query = select(Dish).order_by(Dish.name)
    keywords = [f"%{keyword}%" for keyword in (search or "").split()]
    if keywords:
        # one row per dish even when several ingredients match
        query = (
            query.outerjoin(Ingredient, Ingredient.dish_id == Dish.id)
            .where(or_(
                *[Dish.name.like(k) for k in keywords],
                *[Dish.description.like(k) for k in keywords],
                *[Ingredient.name.like(k) for k in keywords],
            ))
            .group_by(Dish.id)
        )
    result = await db.execute(query)
    dishes = result.scalars().all()
    ingredients = await _ingredients_by_dish(db, [d.id for d in dishes])
    return [_dish_projection(d, ingredients[d.id]) for d in dishes]


# --- carts ---

async def _get_cart_row(db: AsyncSession, cart_id: int) -> Optional[Cart]:
    result = await db.execute(select(Cart).where(Cart.id == cart_id))
    return result.scalars().first()


async def create_cart(db: AsyncSession, user_id: int, cart: CartCreate) -> int:
    async with transaction(db):
        db_cart = Cart(created_by=user_id)
        db.add(db_cart)
        await db.flush()
        db.add_all([
            CartItem(cart_id=db_cart.id, dish_id=item.dish_id, name=item.name, quantity=item.quantity)
            for item in cart.cart_items
        ])
    logger.info(f"Cart {db_cart.id} created by user {user_id}")
    return db_cart.id


async def get_cart(db: AsyncSession, cart_id: int):
    cart = await _get_cart_row(db, cart_id)
    result = await db.execute(
        select(CartItem).where(CartItem.cart_id == cart_id).order_by(CartItem.id)
    )
    items = [CartItemSchema.model_validate(i) for i in result.scalars().all()]
    if cart is None:
        return {"cart_items": items}
    return CartSchema.model_validate(cart).model_copy(update={"cart_items": items})


async def update_cart(db: AsyncSession, cart_id: int, cart: CartUpdate) -> None:
    if await _get_cart_row(db, cart_id) is None:
        raise NotFoundError("Cart not found", details={"cart_id": cart_id})

    async with transaction(db):
        result = await db.execute(select(CartItem.dish_id).where(CartItem.cart_id == cart_id))
        existing = set(result.scalars().all())
        pending = {}
        for item in cart.cart_items:
            if item.dish_id in existing:
                await db.execute(
                    update(CartItem)
                    .where(CartItem.cart_id == cart_id, CartItem.dish_id == item.dish_id)
                    .values(quantity=item.quantity)
                )
            elif item.dish_id in pending:
                pending[item.dish_id].quantity = item.quantity
            else:
                pending[item.dish_id] = CartItem(
                    cart_id=cart_id, dish_id=item.dish_id, name=item.name, quantity=item.quantity
                )
        db.add_all(pending.values())
        await db.execute(update(Cart).where(Cart.id == cart_id).values(updated_at=utcnow()))
    logger.info(f"Cart {cart_id} updated")


async def list_user_carts(db: AsyncSession, user_id: int) -> List[CartSummary]:
    result = await db.execute(
        select(Cart.id, Cart.created_at)
        .where(Cart.created_by == user_id)
        .order_by(Cart.created_at.desc(), Cart.id.desc())
    )
    return [CartSummary.model_validate(row) for row in result.all()]


async def delete_cart(db: AsyncSession, cart_id: int) -> None:
    async with transaction(db):
        await db.execute(delete(CartItem).where(CartItem.cart_id == cart_id))
        await db.execute(delete(Cart).where(Cart.id == cart_id))
    logger.info(f"Cart {cart_id} deleted")


# --- orders ---

async def create_order(db: AsyncSession, user_id: int, order: OrderCreate) -> int:
    dish_ids = {item.dish_id for item in order.order_items}
    names = {}
    if dish_ids:
        result = await db.execute(select(Dish.id, Dish.name).where(Dish.id.in_(dish_ids)))
        names = {row.id: row.name for row in result.all()}
    missing = sorted(dish_ids - names.keys())
    if missing:
        raise NotFoundError("Dish not found", details={"dish_ids": missing})

    async with transaction(db):
        db_order = Order(
            status=order.status,
            price=order.price,
            payment_method=order.payment_method,
            created_by=user_id,
        )
        db.add(db_order)
        await db.flush()
        db.add_all([
            OrderItem(
                order_id=db_order.id,
                dish_id=item.dish_id,
                name=names[item.dish_id],
                quantity=item.quantity,
            )
            for item in order.order_items
        ])
    logger.info(f"Order {db_order.id} created by user {user_id}")
    return db_order.id


async def get_order(db: AsyncSession, order_id: int):
    result = await db.execute(select(Order).where(Order.id == order_id))
    order = result.scalars().first()
    items = await _order_items_by_order(db, [order_id])
    if order is None:
        return {"order_items": items[order_id]}
    return {**OrderSchema.model_validate(order).model_dump(), "order_items": items[order_id]}


async def update_order(db: AsyncSession, order_id: int, patch: OrderUpdate) -> OrderSchema:
    result = await db.execute(select(Order).where(Order.id == order_id))
    db_order = result.scalars().first()
    if not db_order:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    values = merge_patch(db_order, patch, ORDER_FIELDS)
    values["updated_at"] = utcnow()
    async with transaction(db):
        await db.execute(update(Order).where(Order.id == order_id).values(**values))
    await db.refresh(db_order)
    logger.info(f"Order {order_id} updated")
    return OrderSchema.model_validate(db_order)


async def delete_order(db: AsyncSession, order_id: int) -> None:
    async with transaction(db):
        await db.execute(delete(OrderItem).where(OrderItem.order_id == order_id))
        await db.execute(delete(Order).where(Order.id == order_id))
    logger.info(f"Order {order_id} deleted")


async def _order_items_by_order(db: AsyncSession, order_ids: List[int], summary: bool = False) -> dict:
    grouped = {order_id: [] for order_id in order_ids}
    if not order_ids:
        return grouped
    result = await db.execute(
        select(OrderItem).where(OrderItem.order_id.in_(order_ids)).order_by(OrderItem.id)
    )
    schema = OrderItemSummary if summary else OrderItemSchema
    for item in result.scalars().all():
        grouped[item.order_id].append(schema.model_validate(item))
    return grouped


async def list_orders(db: AsyncSession, acting_user_id: int) -> list:
    user = await get_user(db, acting_user_id)
    if user.is_admin:
        query = (
            select(
                Order.id,
                Order.status,
                Order.price,
                Order.payment_method,
                User.name.label("created_by"),
                Order.created_at,
            )
            .join(User, User.id == Order.created_by)
        )
    else:
        query = (
            select(
                Order.id,
                Order.status,
                Order.price,
                Order.payment_method,
                Order.created_at,
            )
            .where(Order.created_by == user.id)
        )
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    result = await db.execute(query)
    orders = result.mappings().all()
    items = await _order_items_by_order(db, [o["id"] for o in orders], summary=not user.is_admin)
    return [{**order, "dishes": items[order["id"]]} for order in orders]
