import json
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Depends, File, Form, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.security import OAuth2PasswordRequestForm
from fastapi.staticfiles import StaticFiles
from sqlalchemy.ext.asyncio import AsyncSession

from food_explorer import config
from food_explorer.auth import authenticate_user, create_access_token, get_current_user
from food_explorer.crud import (
    create_user,
    update_user,
    create_dish,
    get_dish,
    update_dish,
    delete_dish,
    search_dishes,
    create_cart,
    get_cart,
    update_cart,
    list_user_carts,
    delete_cart,
    create_order,
    get_order,
    update_order,
    delete_order,
    list_orders,
)
from food_explorer.database import Database, get_db
from food_explorer.exceptions import AppError, AuthError, PermissionDeniedError, ValidationError
from food_explorer.models import User
from food_explorer.schemas import (
    UserCreate,
    UserUpdate,
    UserSchema,
    SessionSchema,
    DishCreate,
    DishUpdate,
    DishSchema,
    CartCreate,
    CartUpdate,
    CartSummary,
    OrderCreate,
    OrderUpdate,
    OrderSchema,
    CreatedSchema,
)
from food_explorer.storage import DiskStorage, get_storage

logger = logging.getLogger(__name__)


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        logger.warning(f"User {current_user.id} refused on an admin-only route")
        raise PermissionDeniedError("Not authorized")
    return current_user


def parse_ingredients(raw: Optional[str]) -> Optional[List[str]]:
    """Multipart forms carry the ingredient list as a JSON array of names."""
    if raw is None:
        return None
    try:
        ingredients = json.loads(raw or "[]")
    except json.JSONDecodeError:
        raise ValidationError("Ingredients must be a JSON list of names")
    if not isinstance(ingredients, list) or not all(isinstance(i, str) for i in ingredients):
        raise ValidationError("Ingredients must be a JSON list of names")
    return ingredients


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(database: Optional[Database] = None, storage: Optional[DiskStorage] = None) -> FastAPI:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    database = database or Database(config.DATABASE_URL, echo=config.SQL_ECHO)
    storage = storage or DiskStorage(config.UPLOAD_FOLDER)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await app.state.database.create_all()
        yield
        await app.state.database.dispose()

    app = FastAPI(title="Food Explorer API", lifespan=lifespan)
    app.state.database = database
    app.state.storage = storage

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
    app.mount("/files", StaticFiles(directory=storage.upload_folder), name="files")

    register_routes(app)
    return app


def register_routes(app: FastAPI):

    @app.get("/")
    async def read_root():
        return {"message": "Food Explorer API"}

    # --- users & sessions ---

    @app.post("/users", status_code=status.HTTP_201_CREATED)
    async def register(user: UserCreate, db: AsyncSession = Depends(get_db)):
        await create_user(db, user)
        return Response(status_code=status.HTTP_201_CREATED)

    @app.get("/users/me", response_model=UserSchema)
    async def read_current_user(current_user: User = Depends(get_current_user)):
        return current_user

    @app.put("/users", response_model=UserSchema)
    async def update_current_user(
        patch: UserUpdate,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        return await update_user(db, current_user.id, patch)

    @app.put("/users/{user_id}", response_model=UserSchema)
    async def update_other_user(
        user_id: int,
        patch: UserUpdate,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        return await update_user(db, current_user.id, patch, target_user_id=user_id)

    @app.post("/sessions", response_model=SessionSchema)
    async def login(
        form_data: OAuth2PasswordRequestForm = Depends(),
        db: AsyncSession = Depends(get_db),
    ):
        user = await authenticate_user(form_data.username, form_data.password, db)
        if not user:
            raise AuthError("Incorrect email or password")
        token = create_access_token(data={"sub": str(user.id)})
        return SessionSchema(user=UserSchema.model_validate(user), token=token)

    # --- dishes ---

    @app.post("/dishes", response_model=CreatedSchema, status_code=status.HTTP_201_CREATED)
    async def create_new_dish(
        name: str = Form(..., min_length=1),
        price: float = Form(..., ge=0),
        description: Optional[str] = Form(None),
        category: Optional[str] = Form(None),
        ingredients: Optional[str] = Form(None),
        image: UploadFile = File(...),
        db: AsyncSession = Depends(get_db),
        storage: DiskStorage = Depends(get_storage),
        current_user: User = Depends(require_admin),
    ):
        dish = DishCreate(
            name=name,
            description=description,
            category=category,
            price=price,
            ingredients=parse_ingredients(ingredients) or [],
        )
        dish_id = await create_dish(db, storage, dish, image, current_user.id)
        return {"id": dish_id}

    @app.get("/dishes", response_model=List[DishSchema])
    async def list_dishes(
        search: Optional[str] = None,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        return await search_dishes(db, search)

    @app.get("/dishes/{dish_id}", response_model=DishSchema)
    async def read_dish(
        dish_id: int,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        return await get_dish(db, dish_id)

    @app.put("/dishes/{dish_id}", response_model=DishSchema)
    async def update_existing_dish(
        dish_id: int,
        name: Optional[str] = Form(None),
        price: Optional[float] = Form(None, ge=0),
        description: Optional[str] = Form(None),
        category: Optional[str] = Form(None),
        ingredients: Optional[str] = Form(None),
        image: Optional[UploadFile] = File(None),
        db: AsyncSession = Depends(get_db),
        storage: DiskStorage = Depends(get_storage),
        current_user: User = Depends(require_admin),
    ):
        patch = DishUpdate(name=name, description=description, category=category, price=price)
        return await update_dish(
            db,
            storage,
            dish_id,
            patch,
            current_user.id,
            image=image,
            ingredients=parse_ingredients(ingredients),
        )

    @app.delete("/dishes/{dish_id}")
    async def delete_existing_dish(
        dish_id: int,
        db: AsyncSession = Depends(get_db),
        storage: DiskStorage = Depends(get_storage),
        current_user: User = Depends(require_admin),
    ):
        await delete_dish(db, storage, dish_id)
        return {"message": "Dish deleted"}

    # --- carts ---

    @app.post("/carts", response_model=CreatedSchema, status_code=status.HTTP_201_CREATED)
    async def create_new_cart(
        cart: CartCreate,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        return {"id": await create_cart(db, current_user.id, cart)}

    @app.get("/carts", response_model=List[CartSummary])
    async def list_carts(
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        return await list_user_carts(db, current_user.id)

    @app.get("/carts/{cart_id}")
    async def read_cart(
        cart_id: int,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        return await get_cart(db, cart_id)

    @app.put("/carts/{cart_id}")
    async def update_existing_cart(
        cart_id: int,
        cart: CartUpdate,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        await update_cart(db, cart_id, cart)
        return await get_cart(db, cart_id)

    @app.delete("/carts/{cart_id}")
    async def delete_existing_cart(
        cart_id: int,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        await delete_cart(db, cart_id)
        return {"message": "Cart deleted"}

    # --- orders ---

    @app.post("/orders", response_model=CreatedSchema, status_code=status.HTTP_201_CREATED)
    async def create_new_order(
        order: OrderCreate,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        return {"id": await create_order(db, current_user.id, order)}

    @app.get("/orders")
    async def list_all_orders(
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        return await list_orders(db, current_user.id)

    @app.get("/orders/{order_id}")
    async def read_order(
        order_id: int,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        return await get_order(db, order_id)

    @app.put("/orders/{order_id}", response_model=OrderSchema)
    async def update_existing_order(
        order_id: int,
        patch: OrderUpdate,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(require_admin),
    ):
        return await update_order(db, order_id, patch)

    @app.delete("/orders/{order_id}")
    async def delete_existing_order(
        order_id: int,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        await delete_order(db, order_id)
        return {"message": "Order deleted"}


app = create_app()
