"""
Database Schemas for the Bytek storefront

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name (ShippingRate -> "shipping_rate").
"""
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

Category = Literal["mice", "keyboards", "mousepads", "headsets", "ssds", "cpu"]
ProductStatus = Literal["available", "coming_soon", "archived"]
OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]
ShippingType = Literal["home_delivery", "stop_desk"]


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr
    password_hash: str = Field(..., description="Hashed password")
    is_admin: bool = False


class Product(BaseModel):
    name: str
    description: Optional[str] = None
    price: float = Field(..., gt=0)
    original_price: Optional[float] = Field(None, gt=0, description="Compare-at price")
    image: str = Field(..., description="Main image URL")
    images: List[str] = []
    category: Category
    status: ProductStatus = "available"
    in_stock: bool = True
    rating: float = Field(0, ge=0, le=5)
    reviews: int = Field(0, ge=0)
    sku: Optional[str] = None
    stock: Dict[str, Dict[str, int]] = Field(default_factory=dict, description="size -> color -> units")
    sizes: List[str] = ["One Size"]
    colors: List[str] = ["Default"]
    tags: List[str] = []
    featured: bool = False


class ShippingRate(BaseModel):
    wilaya_id: int = Field(..., ge=1)
    wilaya_name: str
    home_delivery_cost: float = Field(..., ge=0)
    stop_desk_cost: float = Field(..., ge=0)
    is_active: bool = True


class OrderItem(BaseModel):
    id: str
    name: str
    image: Optional[str] = None
    price: float
    quantity: int = Field(..., ge=1)
    size: str
    color: str
    subtotal: float


class Order(BaseModel):
    order_number: str
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    customer_address: str
    city: str
    wilaya_id: int
    wilaya_name: str
    shipping_type: ShippingType
    shipping_cost: float
    subtotal: float
    total: float
    items: List[OrderItem]
    notes: Optional[str] = None
    status: OrderStatus = "pending"
    payment_method: Literal["cod"] = "cod"
    payment_status: Literal["pending", "paid"] = "pending"
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[str] = Field(None, description="ISO date, e.g. 2025-03-14")
