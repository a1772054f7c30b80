import logging
import os
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

import pymongo
from fastapi import BackgroundTasks, Depends, FastAPI, File, HTTPException, Query, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from pymongo.errors import PyMongoError

import database
from auth import create_token, get_current_user, hash_password, require_admin
from cart import Cart, CartProduct, MongoCartStore
from catalog import (
    CATEGORIES,
    build_product_query,
    build_stock_matrix,
    sort_keys,
    total_stock,
    validate_product_input,
    variant_stock,
)
from checkout import MIN_FORM_DWELL_SECONDS, compute_totals, issue_form_token, read_form_token, submit_order
from database import collection, create_document, get_documents, parse_object_id, serialize_doc
from errors import (
    DatabaseNotConfiguredError,
    EmptyCartError,
    InvalidImageError,
    OrderNotFoundError,
    OutOfStockError,
    ProductNotFoundError,
    ProductUnavailableError,
    ShippingUnavailableError,
    SpamRejectedError,
    StoreError,
    ValidationFailedError,
)
from notifications import NotificationService
from orders import dashboard_stats, normalize_order, normalize_order_number, public_tracking_view
from regions import REGIONS, get_region
from schemas import (
    Category,
    OrderStatus,
    Product as ProductSchema,
    ProductStatus,
    ShippingRate as ShippingRateSchema,
    ShippingType,
    User as UserSchema,
)
from shipping import index_overrides, merged_rates, shipping_options
from storage import load_image, save_image

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        try:
            database.ensure_indexes()
        except PyMongoError as e:
            logger.error("Could not create indexes: %s", e)
    yield


app = FastAPI(title="Bytek Store API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----------------------- Errors -----------------------
ERROR_STATUS_CODES: Dict[type, int] = {
    ValidationFailedError: 422,
    SpamRejectedError: 400,
    ShippingUnavailableError: 422,
    EmptyCartError: 400,
    ProductNotFoundError: 404,
    ProductUnavailableError: 400,
    OrderNotFoundError: 404,
    OutOfStockError: 409,
    InvalidImageError: 400,
    DatabaseNotConfiguredError: 503,
}


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    content = {"detail": str(exc), "error_type": type(exc).__name__}
    if isinstance(exc, ValidationFailedError):
        content["errors"] = exc.errors
    return JSONResponse(status_code=status_code, content=content)


# ----------------------- Dependencies -----------------------
notifier = NotificationService()


def get_notifier() -> NotificationService:
    return notifier


def get_cart(cart_id: str) -> Cart:
    return Cart(MongoCartStore(cart_id))


def active_overrides():
    """Active shipping overrides; the static defaults apply if they cannot be read."""
    try:
        return index_overrides(get_documents("shipping_rate", {"is_active": True}))
    except PyMongoError as e:
        logger.error("Error fetching shipping rates, using static defaults: %s", e)
        return {}


def find_product(product_id: str) -> dict:
    oid = parse_object_id(product_id)
    item = collection("product").find_one({"_id": oid}) if oid else None
    if not item:
        raise ProductNotFoundError(product_id)
    return serialize_doc(item)


def find_order(order_id: str) -> dict:
    oid = parse_object_id(order_id)
    order = collection("order").find_one({"_id": oid}) if oid else None
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


# ----------------------- Models -----------------------
class LoginBody(BaseModel):
    email: EmailStr
    password: str


class ProductBody(BaseModel):
    name: str
    description: Optional[str] = None
    price: float
    original_price: Optional[float] = None
    images: List[str] = Field(default_factory=list, description="Uploaded image URLs, main image first")
    category: Category
    status: ProductStatus = "available"
    rating: float = Field(0, ge=0, le=5)
    reviews: int = Field(0, ge=0)
    sku: Optional[str] = None
    sizes: List[str] = Field(default_factory=lambda: ["One Size"])
    colors: List[str] = Field(default_factory=lambda: ["Default"])
    tags: List[str] = Field(default_factory=list)
    featured: bool = False
    track_inventory: bool = True
    total_stock: int = Field(10, ge=0)
    stock: Optional[Dict[str, Dict[str, int]]] = Field(None, description="Explicit size -> color -> units")


class BulkIdsBody(BaseModel):
    ids: List[str]


class BulkStatusBody(BulkIdsBody):
    status: ProductStatus


class CartItemBody(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    size: str
    color: str


class CartQuantityBody(BaseModel):
    product_id: str
    size: str
    color: str
    quantity: int


class CartLineRef(BaseModel):
    product_id: str
    size: str
    color: str


class QuoteBody(BaseModel):
    cart_id: str
    wilaya_id: Optional[int] = None
    shipping_type: ShippingType = "home_delivery"


class CheckoutBody(BaseModel):
    cart_id: str
    form_token: Optional[str] = None
    website: Optional[str] = Field(None, description="Honeypot, must stay empty")
    full_name: str = ""
    phone: str = ""
    email: Optional[str] = None
    address: str = ""
    city: str = ""
    wilaya_id: Optional[int] = None
    shipping_type: ShippingType = "home_delivery"
    notes: Optional[str] = None


class OrderUpdateBody(BaseModel):
    status: Optional[OrderStatus] = None
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[str] = None


class ShippingRateBody(BaseModel):
    wilaya_id: int
    home_delivery_cost: float = Field(..., ge=0)
    stop_desk_cost: float = Field(..., ge=0)
    is_active: bool = True


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "Bytek Store API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()[:10]
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# ----------------------- Auth -----------------------
@app.post("/auth/login")
def login(body: LoginBody):
    user = collection("user").find_one({"email": body.email})
    if not user or user.get("password_hash") != hash_password(body.password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    suser = serialize_doc(user)
    token = create_token({"id": suser["id"], "email": suser["email"], "is_admin": suser.get("is_admin", False)})
    return {"token": token, "user": {"id": suser["id"], "name": suser["name"], "email": suser["email"], "is_admin": suser.get("is_admin", False)}}


@app.get("/auth/me")
def me(user=Depends(get_current_user)):
    return {"user": user, "is_admin": bool(user.get("is_admin"))}


# ----------------------- Catalog -----------------------
@app.get("/categories")
def list_categories():
    return CATEGORIES


@app.get("/products")
def list_products(
    category: Optional[str] = None,
    q: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    stock: Optional[Literal["all", "in_stock", "out_of_stock"]] = None,
    featured: Optional[bool] = None,
    sort: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
):
    filt = build_product_query(category=category, q=q, min_price=min_price, max_price=max_price, stock=stock, featured=featured)
    items = collection("product").find(filt).sort(sort_keys(sort)).limit(limit)
    return [serialize_doc(i) for i in items]


@app.get("/products/{product_id}")
def get_product(product_id: str):
    product = find_product(product_id)
    if product.get("status") == "archived":
        raise ProductNotFoundError(product_id)
    return product


@app.get("/products/{product_id}/stock")
def get_variant_stock(product_id: str, size: str, color: str):
    product = find_product(product_id)
    return {"product_id": product_id, "size": size, "color": color, "available": variant_stock(product, size, color)}


# ----------------------- Shipping -----------------------
@app.get("/regions")
def list_regions():
    return [{"id": r.id, "name": r.name} for r in REGIONS]


@app.get("/shipping/quote")
def shipping_quote(wilaya_id: int):
    if get_region(wilaya_id) is None:
        raise HTTPException(status_code=404, detail="Unknown wilaya")
    return {"wilaya_id": wilaya_id, **shipping_options(wilaya_id, active_overrides())}


# ----------------------- Cart -----------------------
@app.get("/cart/{cart_id}")
def read_cart(cart_id: str):
    return get_cart(cart_id).to_dict()


@app.post("/cart/{cart_id}/items")
def add_to_cart(cart_id: str, body: CartItemBody):
    product = find_product(body.product_id)
    if product.get("status", "available") != "available":
        raise ProductUnavailableError(body.product_id, "This product is not available for purchase")
    if body.size not in product.get("sizes", []) or body.color not in product.get("colors", []):
        raise ProductUnavailableError(body.product_id, "Please select a valid size and color")

    cart = get_cart(cart_id)
    existing = cart.get_line(body.product_id, body.size, body.color)
    in_cart = existing.quantity if existing else 0
    if in_cart + body.quantity > variant_stock(product, body.size, body.color):
        raise OutOfStockError(body.product_id, body.size, body.color, in_cart + body.quantity)

    cart.add_item(
        CartProduct(id=product["id"], name=product["name"], price=product["price"], image=product.get("image")),
        body.quantity,
        body.size,
        body.color,
    )
    return cart.to_dict()


@app.put("/cart/{cart_id}/items")
def update_cart_quantity(cart_id: str, body: CartQuantityBody):
    cart = get_cart(cart_id)
    cart.set_quantity(body.product_id, body.size, body.color, body.quantity)
    return cart.to_dict()


@app.delete("/cart/{cart_id}/items")
def remove_from_cart(cart_id: str, body: CartLineRef):
    cart = get_cart(cart_id)
    cart.remove_item(body.product_id, body.size, body.color)
    return cart.to_dict()


@app.delete("/cart/{cart_id}")
def clear_cart(cart_id: str):
    cart = get_cart(cart_id)
    cart.clear()
    return cart.to_dict()


# ----------------------- Checkout -----------------------
@app.post("/checkout/session")
def checkout_session():
    overrides = active_overrides()
    return {
        "form_token": issue_form_token(),
        "honeypot_field": "website",
        "min_dwell_seconds": MIN_FORM_DWELL_SECONDS,
        "rates": [
            {"wilaya_id": r.id, "wilaya_name": r.name, **shipping_options(r.id, overrides)}
            for r in REGIONS
        ],
    }


@app.post("/checkout/quote")
def checkout_quote(body: QuoteBody):
    cart = get_cart(body.cart_id)
    totals = compute_totals(cart.subtotal(), body.wilaya_id, body.shipping_type, active_overrides())
    return totals.to_dict()


@app.post("/orders", status_code=201)
def create_order(body: CheckoutBody, background_tasks: BackgroundTasks, notifications: NotificationService = Depends(get_notifier)):
    loaded_at = read_form_token(body.form_token)
    cart = get_cart(body.cart_id)
    order = submit_order(cart, body.model_dump(), active_overrides(), loaded_at)
    background_tasks.add_task(notifications.notify_new_order, order)
    return order


@app.get("/orders/track/{order_number}")
def track_order(order_number: str):
    number = normalize_order_number(order_number)
    if not number:
        raise HTTPException(status_code=400, detail="Order number required")
    order = collection("order").find_one({"order_number": number})
    if not order:
        raise OrderNotFoundError(number)
    return public_tracking_view(serialize_doc(order))


# ----------------------- Admin: Products -----------------------
def _product_from_body(body: ProductBody) -> ProductSchema:
    data = body.model_dump()
    validate_product_input(data)
    sizes = body.sizes or ["One Size"]
    colors = body.colors or ["Default"]
    if body.stock is not None:
        stock = body.stock
    else:
        stock = build_stock_matrix(sizes, colors, body.total_stock, body.track_inventory)
    in_stock = sum(q for by_color in stock.values() for q in by_color.values()) > 0
    return ProductSchema(
        name=body.name.strip(),
        description=(body.description or "").strip() or None,
        price=body.price,
        original_price=body.original_price or None,
        image=body.images[0],
        images=body.images[1:],
        category=body.category,
        status=body.status,
        in_stock=in_stock,
        rating=body.rating,
        reviews=body.reviews,
        sku=(body.sku or "").strip() or None,
        stock=stock,
        sizes=sizes,
        colors=colors,
        tags=body.tags,
        featured=body.featured,
    )


@app.get("/admin/products")
def admin_list_products(q: Optional[str] = None, user=Depends(require_admin)):
    filt = build_product_query(q=q, include_archived=True)
    items = collection("product").find(filt).sort("created_at", pymongo.DESCENDING)
    result = []
    for item in items:
        doc = serialize_doc(item)
        doc["total_stock"] = total_stock(doc)
        result.append(doc)
    return result


@app.post("/products", status_code=201)
def create_product(body: ProductBody, user=Depends(require_admin)):
    pid = create_document("product", _product_from_body(body))
    return {"id": pid}


@app.put("/products/{product_id}")
def update_product(product_id: str, body: ProductBody, user=Depends(require_admin)):
    update = _product_from_body(body).model_dump()
    update["updated_at"] = datetime.now(timezone.utc)
    oid = parse_object_id(product_id)
    res = collection("product").update_one({"_id": oid}, {"$set": update}) if oid else None
    if res is None or res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"ok": True}


@app.delete("/products/{product_id}")
def delete_product(product_id: str, user=Depends(require_admin)):
    oid = parse_object_id(product_id)
    res = collection("product").delete_one({"_id": oid}) if oid else None
    if res is None or res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"ok": True}


def _object_ids(ids: List[str]) -> list:
    return [oid for oid in (parse_object_id(i) for i in ids) if oid is not None]


@app.post("/admin/products/bulk-delete")
def bulk_delete_products(body: BulkIdsBody, user=Depends(require_admin)):
    res = collection("product").delete_many({"_id": {"$in": _object_ids(body.ids)}})
    return {"deleted": res.deleted_count}


@app.post("/admin/products/bulk-status")
def bulk_update_status(body: BulkStatusBody, user=Depends(require_admin)):
    res = collection("product").update_many(
        {"_id": {"$in": _object_ids(body.ids)}},
        {"$set": {"status": body.status, "updated_at": datetime.now(timezone.utc)}},
    )
    return {"updated": res.modified_count}


# ----------------------- Images -----------------------
@app.post("/admin/images", status_code=201)
async def upload_image(file: UploadFile = File(...), user=Depends(require_admin)):
    data = await file.read()
    return {"url": save_image(data, file.filename, file.content_type)}


@app.get("/images/{file_id}")
def get_image(file_id: str):
    found = load_image(file_id)
    if found is None:
        raise HTTPException(status_code=404, detail="Image not found")
    data, content_type = found
    return Response(content=data, media_type=content_type)


# ----------------------- Admin: Orders -----------------------
@app.get("/admin/orders")
def admin_list_orders(status: Optional[str] = None, q: Optional[str] = None, user=Depends(require_admin)):
    filt = {}
    if status and status != "all":
        filt["status"] = status
    if q:
        pattern = {"$regex": re.escape(q.strip()), "$options": "i"}
        filt["$or"] = [{"order_number": pattern}, {"customer_name": pattern}, {"customer_phone": pattern}]
    orders = collection("order").find(filt).sort("created_at", pymongo.DESCENDING)
    return [normalize_order(serialize_doc(o)) for o in orders]


@app.get("/admin/orders/{order_id}")
def admin_get_order(order_id: str, user=Depends(require_admin)):
    return normalize_order(serialize_doc(find_order(order_id)))


@app.patch("/admin/orders/{order_id}")
def admin_update_order(order_id: str, body: OrderUpdateBody, user=Depends(require_admin)):
    order = find_order(order_id)
    update = body.model_dump(exclude_unset=True)
    for key in ("tracking_number", "estimated_delivery"):
        if key in update:
            update[key] = (update[key] or "").strip() or None
    if update.get("status") is None:
        update.pop("status", None)
    update["updated_at"] = datetime.now(timezone.utc)
    collection("order").update_one({"_id": order["_id"]}, {"$set": update})
    return normalize_order(serialize_doc(collection("order").find_one({"_id": order["_id"]})))


@app.delete("/admin/orders/{order_id}")
def admin_delete_order(order_id: str, user=Depends(require_admin)):
    order = find_order(order_id)
    collection("order").delete_one({"_id": order["_id"]})
    return {"ok": True}


# ----------------------- Admin: Shipping -----------------------
def _upsert_rate(body: ShippingRateBody) -> None:
    region = get_region(body.wilaya_id)
    if region is None:
        raise ValidationFailedError({"wilaya_id": f"Unknown wilaya: {body.wilaya_id}"}, "Invalid shipping rate")
    rate = ShippingRateSchema(
        wilaya_id=body.wilaya_id,
        wilaya_name=region.name,
        home_delivery_cost=body.home_delivery_cost,
        stop_desk_cost=body.stop_desk_cost,
        is_active=body.is_active,
    )
    collection("shipping_rate").update_one(
        {"wilaya_id": rate.wilaya_id},
        {
            "$set": {**rate.model_dump(), "updated_at": datetime.now(timezone.utc)},
            "$setOnInsert": {"created_at": datetime.now(timezone.utc)},
        },
        upsert=True,
    )


@app.get("/admin/shipping-rates")
def admin_list_rates(user=Depends(require_admin)):
    return merged_rates(get_documents("shipping_rate"))


@app.put("/admin/shipping-rates")
def admin_save_rates(body: List[ShippingRateBody], user=Depends(require_admin)):
    for rate in body:
        _upsert_rate(rate)
    return merged_rates(get_documents("shipping_rate"))


@app.put("/admin/shipping-rates/{wilaya_id}")
def admin_save_rate(wilaya_id: int, body: ShippingRateBody, user=Depends(require_admin)):
    if body.wilaya_id != wilaya_id:
        raise HTTPException(status_code=400, detail="wilaya_id mismatch")
    _upsert_rate(body)
    return {"ok": True}


# ----------------------- Admin: Dashboard -----------------------
@app.get("/admin/stats")
def admin_stats(user=Depends(require_admin)):
    orders = [serialize_doc(o) for o in collection("order").find({}).sort("created_at", pymongo.DESCENDING).limit(100)]
    products = [serialize_doc(p) for p in collection("product").find({}, {"name": 1, "image": 1, "stock": 1, "in_stock": 1})]
    return dashboard_stats(orders, products)


# ----------------------- Seed Demo Data -----------------------
DEMO_PRODUCTS = [
    {
        "name": "Logitech G Pro X Superlight 2",
        "description": "60g wireless esports mouse with HERO 2 sensor.",
        "price": 24500,
        "original_price": 27000,
        "images": ["https://images.unsplash.com/photo-1527814050087-3793815479db"],
        "category": "mice",
        "rating": 4.9,
        "reviews": 128,
        "sizes": ["One Size"],
        "colors": ["Black", "White"],
        "total_stock": 20,
        "featured": True,
    },
    {
        "name": "Razer Huntsman Mini",
        "description": "60% optical gaming keyboard.",
        "price": 18900,
        "images": ["https://images.unsplash.com/photo-1618384887929-16ec33fab9ef"],
        "category": "keyboards",
        "rating": 4.6,
        "reviews": 74,
        "sizes": ["US", "FR"],
        "colors": ["Black"],
        "total_stock": 12,
        "featured": True,
    },
    {
        "name": "Artisan Hayate Otsu",
        "description": "Glass-smooth speed mousepad.",
        "price": 9500,
        "images": ["https://images.unsplash.com/photo-1616763355548-1b606f439f86"],
        "category": "mousepads",
        "rating": 4.8,
        "reviews": 51,
        "sizes": ["M", "L", "XL"],
        "colors": ["Black", "Red"],
        "total_stock": 30,
    },
    {
        "name": "HyperX Cloud II",
        "description": "7.1 surround sound gaming headset.",
        "price": 14000,
        "images": ["https://images.unsplash.com/photo-1618366712010-f4ae9c647dcb"],
        "category": "headsets",
        "rating": 4.5,
        "reviews": 203,
        "sizes": ["One Size"],
        "colors": ["Red", "Gun Metal"],
        "total_stock": 16,
    },
    {
        "name": "Samsung 990 PRO 1TB",
        "description": "PCIe 4.0 NVMe SSD.",
        "price": 21000,
        "images": ["https://images.unsplash.com/photo-1597872200969-2b65d56bd16b"],
        "category": "ssds",
        "rating": 4.7,
        "reviews": 88,
        "sizes": ["1TB"],
        "colors": ["Default"],
        "total_stock": 8,
    },
    {
        "name": "AMD Ryzen 7 7800X3D",
        "description": "8-core gaming processor with 3D V-Cache.",
        "price": 72000,
        "images": ["https://images.unsplash.com/photo-1591799264318-7e6ef8ddb7ea"],
        "category": "cpu",
        "rating": 4.9,
        "reviews": 45,
        "sizes": ["One Size"],
        "colors": ["Default"],
        "total_stock": 4,
        "status": "coming_soon",
    },
]


@app.post("/seed")
def seed():
    if collection("product").count_documents({}) > 0:
        return {"seeded": False, "message": "Products already exist"}
    for p in DEMO_PRODUCTS:
        create_document("product", _product_from_body(ProductBody(**p)))
    # create admin user if none
    if collection("user").count_documents({"is_admin": True}) == 0:
        admin = UserSchema(
            name="Admin",
            email=os.getenv("ADMIN_EMAIL", "admin@bytekstore.com"),
            password_hash=hash_password(os.getenv("ADMIN_PASSWORD", "admin123")),
            is_admin=True,
        )
        create_document("user", admin)
    return {"seeded": True, "products": collection("product").count_documents({})}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
