import time
from contextlib import asynccontextmanager
from datetime import date
from typing import List, Literal, Optional

import structlog
from bson import ObjectId
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

import analytics
from auth import authenticate, get_settings, issue_token, public_admin, require_admin
from cache import TTLCache
from cart import DELIVERY_METHODS, Cart
from catalog import export_filter, export_products, merge_product_form, parse_export_fields, product_filter, product_from_form
from config import DEFAULT_JWT_SECRET, Settings, configure_logging
from database import connect, create_document, database_status, ensure_indexes, parse_object_id, to_serializable, utcnow
from errors import AppError, StorageError
from orders import OrderStatus, find_by_reference, materialize_order, set_status
from paystack import PaystackClient
from storage import ImageStore, read_image, remove_quietly

logger = structlog.get_logger(__name__)


# ---------- Request models ----------
class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class InitializePaymentRequest(BaseModel):
    email: Optional[str] = None
    amount: Optional[float] = Field(None, allow_inf_nan=False)
    orderData: Optional[dict] = None


class QuoteItemIn(BaseModel):
    product_id: str
    quantity: int = 1


class QuoteRequest(BaseModel):
    items: List[QuoteItemIn]
    delivery_method: Literal["home", "pickup"] = "home"


class UpdateStatusRequest(BaseModel):
    status: OrderStatus = Field(..., description="Target order status")


# ---------- Dependencies ----------
def get_db(request: Request) -> Database:
    db = request.app.state.db
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def get_gateway(request: Request) -> PaystackClient:
    return request.app.state.gateway


def get_images(request: Request):
    images = request.app.state.images
    if images is None:
        raise HTTPException(status_code=500, detail="Image storage not configured")
    return images


def get_cache(request: Request) -> TTLCache:
    return request.app.state.cache


def find_or_404(db: Database, collection: str, doc_id: str, label: str) -> dict:
    oid = parse_object_id(doc_id, f"{label.lower()} id")
    doc = db[collection].find_one({"_id": oid})
    if not doc:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return doc


def uploaded_file(value) -> Optional[UploadFile]:
    if isinstance(value, UploadFile) and value.filename:
        return value
    return None


router = APIRouter()


@router.get("/")
def read_root():
    return {"message": "Welcome to Glams API"}


@router.get("/test")
def test_database(request: Request):
    settings: Settings = request.app.state.settings
    response = database_status(request.app.state.db)
    response["paystack"] = "✅ Set" if settings.paystack_secret else "❌ Not Set"
    return response


# ---------------------------- AUTH ----------------------------
@router.post("/api/auth/admin/login")
def admin_login(payload: LoginRequest, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    admin = authenticate(db, payload.email, payload.password)
    token = issue_token(admin, settings)
    return {
        "success": True,
        "message": "Login successful",
        "token": token,
        "user": to_serializable(public_admin(admin)),
    }


@router.get("/api/auth/profile")
def get_profile(claims: dict = Depends(require_admin), db: Database = Depends(get_db)):
    admin_id = claims.get("id")
    user = None
    if ObjectId.is_valid(admin_id):
        user = db["admin"].find_one({"_id": ObjectId(admin_id)}, {"email": 1, "name": 1, "created_at": 1})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "user": to_serializable(user)}


# ---------------------------- PRODUCTS ----------------------------
@router.get("/api/products")
def list_products(category: Optional[str] = None, q: Optional[str] = None, db: Database = Depends(get_db)):
    products = db["product"].find(product_filter(category, q)).sort("created_at", DESCENDING)
    data = [to_serializable(p) for p in products]
    return {"success": True, "data": data, "count": len(data)}


@router.get("/api/products/export")
def export_product_list(
    format: Literal["csv", "json"] = "csv",
    fields: Optional[str] = None,
    category: Optional[List[str]] = Query(None),
    start: Optional[date] = None,
    end: Optional[date] = None,
    _: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    selected = parse_export_fields(fields)
    products = list(db["product"].find(export_filter(category, start, end)).sort("created_at", DESCENDING))
    if not products:
        raise HTTPException(status_code=404, detail="No products match the selected criteria")
    content, media_type = export_products(products, format, selected)
    filename = f"glams-products-{utcnow().date().isoformat()}.{format}"
    return Response(content=content, media_type=media_type, headers={"Content-Disposition": f'attachment; filename="{filename}"'})


@router.get("/api/products/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    return {"success": True, "data": to_serializable(find_or_404(db, "product", product_id, "Product"))}


def store_new_product(db: Database, images, doc: dict, upload: Optional[tuple]) -> dict:
    if upload:
        try:
            doc["image_url"] = images.upload(*upload)
        except Exception as e:
            logger.error("image_upload_failed", error=str(e))
            raise StorageError(detail=str(e))

    try:
        new_id = create_document(db, "product", doc)
    except PyMongoError:
        remove_quietly(images, doc.get("image_url"))
        raise
    return db["product"].find_one({"_id": ObjectId(new_id)})


def apply_product_update(db: Database, images, product_id: str, form, upload: Optional[tuple], clear_image: bool) -> dict:
    existing = find_or_404(db, "product", product_id, "Product")
    update = merge_product_form(existing, form)

    stale_image = None
    if upload:
        try:
            update["image_url"] = images.upload(*upload)
        except Exception as e:
            logger.error("image_upload_failed", error=str(e))
            raise StorageError("Failed to upload new image", detail=str(e))
        stale_image = existing.get("image_url")
    elif clear_image:
        update["image_url"] = None
        stale_image = existing.get("image_url")

    update["updated_at"] = utcnow()
    db["product"].update_one({"_id": existing["_id"]}, {"$set": update})
    remove_quietly(images, stale_image)
    return db["product"].find_one({"_id": existing["_id"]})


# multipart parsing is async; the pymongo and GridFS work runs in the threadpool
@router.post("/api/products", status_code=201)
async def create_product(
    request: Request,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
    images=Depends(get_images),
):
    form = await request.form()
    doc = product_from_form(form)
    image = uploaded_file(form.get("image"))
    upload = await read_image(image) if image else None

    created = await run_in_threadpool(store_new_product, db, images, doc, upload)
    logger.info("product_created", product_id=str(created["_id"]), admin_id=admin.get("id"))
    return {"success": True, "message": "Product created successfully", "data": to_serializable(created)}


@router.put("/api/products/{product_id}")
async def update_product(
    product_id: str,
    request: Request,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
    images=Depends(get_images),
):
    form = await request.form()
    image_field = form.get("image")
    image = uploaded_file(image_field)
    upload = await read_image(image) if image else None

    doc = await run_in_threadpool(apply_product_update, db, images, product_id, form, upload, image is None and image_field == "null")
    logger.info("product_updated", product_id=product_id, admin_id=admin.get("id"))
    return {"success": True, "message": "Product updated successfully", "data": to_serializable(doc)}


@router.delete("/api/products/{product_id}")
def delete_product(
    product_id: str,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
    images=Depends(get_images),
):
    existing = find_or_404(db, "product", product_id, "Product")
    # image cleanup never blocks the delete
    remove_quietly(images, existing.get("image_url"))
    db["product"].delete_one({"_id": existing["_id"]})
    logger.info("product_deleted", product_id=product_id, admin_id=admin.get("id"))
    return {"success": True, "message": "Product deleted successfully", "data": {"id": product_id}}


@router.get("/api/images/{filename}")
def get_image(filename: str, images=Depends(get_images)):
    found = images.open(filename)
    if found is None:
        raise HTTPException(status_code=404, detail="Image not found")
    data, content_type = found
    return Response(content=data, media_type=content_type)


# ---------------------------- CHECKOUT ----------------------------
@router.post("/api/checkout/quote")
def quote_checkout(payload: QuoteRequest, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    cart = Cart()
    for item in payload.items:
        product = find_or_404(db, "product", item.product_id, "Product")
        cart.add(to_serializable(product), item.quantity)
    if cart.is_empty:
        raise HTTPException(status_code=400, detail="Cart is empty")
    draft = cart.order_draft(payload.delivery_method, settings.delivery_fee)
    return {"success": True, "data": draft, "item_count": cart.item_count, "delivery_methods": list(DELIVERY_METHODS)}


# ---------------------------- PAYMENTS ----------------------------
@router.post("/api/payments/paystack/initialize")
def initialize_paystack(payload: InitializePaymentRequest, gateway: PaystackClient = Depends(get_gateway)):
    if not payload.email or not payload.amount:
        raise HTTPException(status_code=400, detail="Missing email or amount")
    if payload.amount < 0:
        raise HTTPException(status_code=400, detail="Amount must be positive")
    result = gateway.initialize_transaction(payload.email, payload.amount, payload.orderData)
    return {"success": True, **result}


@router.get("/api/payments/paystack/verify")
def verify_paystack(
    reference: Optional[str] = None,
    db: Database = Depends(get_db),
    gateway: PaystackClient = Depends(get_gateway),
    cache: TTLCache = Depends(get_cache),
):
    if not reference:
        raise HTTPException(status_code=400, detail="Missing reference")

    existing = find_by_reference(db, reference)
    if existing:
        return {"success": True, "message": "Payment already processed", "order": to_serializable(existing)}

    payment = gateway.verify_transaction(reference)
    order, created = materialize_order(db, payment, reference)
    if created:
        cache.invalidate(analytics.WEEKLY_SALES_KEY)
    message = "Payment verified and order saved" if created else "Payment already processed"
    return {"success": True, "message": message, "order": to_serializable(order)}


# ---------------------------- ORDERS (Admin) ----------------------------
@router.get("/api/orders")
def list_orders(status: Optional[OrderStatus] = None, _: dict = Depends(require_admin), db: Database = Depends(get_db)):
    query = {}
    if status:
        query["status"] = status.value
    orders = db["order"].find(query).sort("order_date", DESCENDING)
    data = [to_serializable(o) for o in orders]
    return {"success": True, "data": data, "count": len(data)}


@router.get("/api/orders/{order_id}")
def get_order(order_id: str, _: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return {"success": True, "data": to_serializable(find_or_404(db, "order", order_id, "Order"))}


@router.patch("/api/orders/{order_id}/status")
def update_order_status(
    order_id: str,
    payload: UpdateStatusRequest,
    _: dict = Depends(require_admin),
    db: Database = Depends(get_db),
    cache: TTLCache = Depends(get_cache),
):
    order = find_or_404(db, "order", order_id, "Order")
    updated = set_status(db, order, payload.status.value)
    cache.invalidate(analytics.WEEKLY_SALES_KEY)
    return {"success": True, "message": "Order status updated", "data": to_serializable(updated)}


# ---------------------------- ANALYTICS (Admin) ----------------------------
@router.get("/api/analytics")
def get_analytics(_: dict = Depends(require_admin), db: Database = Depends(get_db), cache: TTLCache = Depends(get_cache)):
    return {"success": True, "data": analytics.summary(db, cache)}


# ---------------------------- APP ----------------------------
def error_response(status_code: int, message: str, error=None, headers=None) -> JSONResponse:
    body = {"success": False, "message": message}
    if error is not None:
        body["error"] = error
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers)


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return error_response(exc.status_code, exc.message, exc.detail)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [{"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in exc.errors()]
        return error_response(400, "Invalid request", errors)

    @app.exception_handler(PyMongoError)
    async def database_error_handler(request: Request, exc: PyMongoError):
        logger.error("database_error", path=request.url.path, error=str(exc))
        return error_response(500, "Database error", str(exc))


@asynccontextmanager
async def lifespan(app: FastAPI):
    if app.state.db is not None:
        try:
            ensure_indexes(app.state.db)
        except PyMongoError as e:
            logger.error("ensure_indexes_failed", error=str(e))
    yield
    app.state.gateway.close()


def create_app(
    settings: Optional[Settings] = None,
    db: Optional[Database] = None,
    gateway: Optional[PaystackClient] = None,
    images=None,
    cache: Optional[TTLCache] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings)
    if settings.jwt_secret == DEFAULT_JWT_SECRET:
        logger.warning("default_jwt_secret_in_use")

    app = FastAPI(title="Glams API", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db if db is not None else connect(settings)
    app.state.gateway = gateway if gateway is not None else PaystackClient(
        settings.paystack_secret,
        base_url=settings.paystack_base_url,
        callback_url=settings.callback_url,
    )
    if images is None and app.state.db is not None:
        images = ImageStore(app.state.db, settings.public_url)
    app.state.images = images
    app.state.cache = cache if cache is not None else TTLCache(settings.analytics_cache_ttl)
    if not settings.paystack_secret:
        logger.warning("paystack_secret_not_set")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return response

    install_error_handlers(app)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
