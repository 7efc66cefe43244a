import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import get_current_user, require_admin
from config import Settings
from database import RecordStore, create_store
from errors import ShopError
from filtering import browse_products
from schemas import (
    DiscountCreate,
    DiscountUpdate,
    LoginRequest,
    OrderCreate,
    ProductCreate,
    ProductUpdate,
    QuoteRequest,
    RegisterRequest,
    StatusUpdate,
)
from services import (
    CatalogService,
    DiscountService,
    IdentityService,
    OrderService,
    seed_demo_data,
)

logger = logging.getLogger(__name__)


# ----------------------- Dependencies -----------------------
def get_catalog(request: Request) -> CatalogService:
    return request.app.state.catalog


def get_orders(request: Request) -> OrderService:
    return request.app.state.orders


def get_discounts(request: Request) -> DiscountService:
    return request.app.state.discounts


def get_identity(request: Request) -> IdentityService:
    return request.app.state.identity


# ----------------------- Products -----------------------
shop = APIRouter()


@shop.get("/products")
def list_products(catalog: CatalogService = Depends(get_catalog)):
    return {"products": catalog.list_products()}


@shop.get("/products/browse")
def browse(
    q: Optional[str] = None,
    category: Optional[List[str]] = Query(None),
    material: Optional[List[str]] = Query(None),
    min_price: float = 0,
    max_price: Optional[float] = None,
    sort: Literal["featured", "price-low", "price-high", "rating", "newest"] = "featured",
    catalog: CatalogService = Depends(get_catalog),
):
    products = browse_products(
        catalog.list_products(),
        query=q,
        categories=category,
        materials=material,
        min_price=min_price,
        max_price=max_price,
        sort=sort,
    )
    return {"products": products, "count": len(products)}


@shop.get("/products/{product_id}")
def get_product(product_id: str, catalog: CatalogService = Depends(get_catalog)):
    return {"product": catalog.get_product(product_id)}


@shop.post("/admin/products")
def create_product(body: ProductCreate, admin=Depends(require_admin), catalog: CatalogService = Depends(get_catalog)):
    product = catalog.create_product(body)
    return {"product": product, "message": "Product created successfully"}


@shop.put("/admin/products/{product_id}")
def update_product(
    product_id: str,
    body: ProductUpdate,
    admin=Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
):
    product = catalog.update_product(product_id, body)
    return {"product": product, "message": "Product updated successfully"}


@shop.delete("/admin/products/{product_id}")
def delete_product(product_id: str, admin=Depends(require_admin), catalog: CatalogService = Depends(get_catalog)):
    catalog.delete_product(product_id)
    return {"message": "Product deleted successfully"}


# ----------------------- Orders -----------------------
@shop.post("/orders/quote")
def quote_order(body: QuoteRequest, orders: OrderService = Depends(get_orders)):
    return orders.quote(body)


@shop.post("/orders/create")
def create_order(body: OrderCreate, user=Depends(get_current_user), orders: OrderService = Depends(get_orders)):
    order = orders.create_order(user["id"], body)
    return {"orderId": order["id"], "order": order, "message": "Order created successfully"}


@shop.get("/orders/user")
def list_user_orders(user=Depends(get_current_user), orders: OrderService = Depends(get_orders)):
    return {"orders": orders.list_orders_for_user(user["id"])}


@shop.get("/admin/orders")
def list_all_orders(admin=Depends(require_admin), orders: OrderService = Depends(get_orders)):
    return {"orders": orders.list_all_orders()}


@shop.put("/admin/orders/{order_id}/status")
def update_order_status(
    order_id: str,
    body: StatusUpdate,
    admin=Depends(require_admin),
    orders: OrderService = Depends(get_orders),
):
    order = orders.update_order_status(order_id, body)
    return {"order": order, "message": "Order updated successfully"}


@shop.get("/admin/payments")
def list_payments(admin=Depends(require_admin), orders: OrderService = Depends(get_orders)):
    return {"payments": orders.list_payments()}


# ----------------------- Discounts -----------------------
@shop.get("/admin/discounts")
def list_discounts(admin=Depends(require_admin), discounts: DiscountService = Depends(get_discounts)):
    return {"discounts": discounts.list_discounts()}


@shop.post("/admin/discounts")
def create_discount(
    body: DiscountCreate,
    admin=Depends(require_admin),
    discounts: DiscountService = Depends(get_discounts),
):
    discount = discounts.create_discount(body)
    return {"discount": discount, "message": "Discount created successfully"}


@shop.put("/admin/discounts/{discount_id}")
def update_discount(
    discount_id: str,
    body: DiscountUpdate,
    admin=Depends(require_admin),
    discounts: DiscountService = Depends(get_discounts),
):
    discount = discounts.update_discount(discount_id, body)
    return {"discount": discount, "message": "Discount updated successfully"}


@shop.delete("/admin/discounts/{discount_id}")
def delete_discount(
    discount_id: str,
    admin=Depends(require_admin),
    discounts: DiscountService = Depends(get_discounts),
):
    discounts.delete_discount(discount_id)
    return {"message": "Discount deleted successfully"}


# ----------------------- Auth -----------------------
@shop.post("/auth/register")
def register(body: RegisterRequest, identity: IdentityService = Depends(get_identity)):
    return identity.register(body)


session = APIRouter(prefix="/auth/v1")


@session.post("/token")
def login(body: LoginRequest, identity: IdentityService = Depends(get_identity)):
    return identity.login(body)


@session.get("/user")
def me(user=Depends(get_current_user)):
    return user


# ----------------------- Seed Demo Data -----------------------
@shop.post("/seed-demo-data")
def seed(request: Request):
    return seed_demo_data(request.app.state.store, request.app.state.identity)


# ----------------------- Health -----------------------
@shop.get("/health")
def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


health_router = APIRouter()


@health_router.get("/")
def root():
    return {"message": "Jewel Palace API running"}


@health_router.get("/test")
def test_database(request: Request):
    settings: Settings = request.app.state.settings
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "store": settings.store_backend,
        "database_url": "✅ Set" if settings.database_url else "❌ Not Set",
        "database_name": settings.database_name,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        info = request.app.state.store.describe()
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
        response["collections"] = info["collections"]
    except ShopError as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# ----------------------- Errors -----------------------
def _describe_validation(errors) -> str:
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ShopError)
    async def shop_error(request: Request, exc: ShopError):
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        message = "Not found" if exc.status_code == 404 else exc.detail
        return JSONResponse({"error": message}, status_code=exc.status_code, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse({"error": _describe_validation(exc.errors())}, status_code=400)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse({"error": "Internal server error"}, status_code=500)


# ----------------------- App -----------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    store: RecordStore = app.state.store
    store.init()
    logger.info("Record store ready: %s", store.name)
    try:
        yield
    finally:
        store.close()


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def create_app(settings: Optional[Settings] = None, store: Optional[RecordStore] = None) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings.log_level)
    store = store or create_store(settings)

    app = FastAPI(title="Jewel Palace API", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.catalog = CatalogService(store)
    app.state.discounts = DiscountService(store)
    app.state.orders = OrderService(store, app.state.discounts)
    app.state.identity = IdentityService(store, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    app.include_router(shop, prefix=settings.api_prefix)
    app.include_router(session)
    app.include_router(health_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
