"""
Database Schemas

Each Pydantic model represents a collection in the catalog store.
Model name is converted to lowercase for the collection name:
- Admin -> "admin" collection
- Product -> "product" collection
- Order -> "order" collection
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class Admin(BaseModel):
    """
    Admin accounts collection schema
    Collection name: "admin"
    """
    email: EmailStr = Field(..., description="Login email, unique")
    name: Optional[str] = Field(None, description="Display name")
    password_hash: str = Field(..., description="BCrypt hash of the admin's password")


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    name: str = Field(..., description="Product name")
    description: Optional[str] = Field(None, description="Product description")
    category: str = Field(..., description="e.g. Table Water, Premium Water")
    size_volume: str = Field(..., description="Size/volume label, e.g. 75cl, 1.5L")
    unit_type: Optional[str] = Field(None, description="bottle, pack, sachet...")
    price: float = Field(..., ge=0, allow_inf_nan=False, description="Price in NGN")
    cost_price: Optional[float] = Field(None, ge=0, allow_inf_nan=False, description="Cost price in NGN")
    stock_quantity: int = Field(..., ge=0, description="Units in stock")
    reorder_level: int = Field(50, ge=0, description="Low stock threshold")
    water_source: Optional[str] = None
    treatment_process: Optional[str] = None
    product_code: Optional[str] = None
    image_url: Optional[str] = Field(None, description="Public image URL")


class OrderItem(BaseModel):
    product_id: Optional[str] = Field(None, description="Product _id as string")
    name: str = Field("", description="Snapshot of product name at order time")
    size_volume: str = Field("", description="Snapshot of product size at order time")
    quantity: int = Field(0, ge=0)
    price: float = Field(0, ge=0, description="Unit price at order time")
    total: float = Field(0, ge=0)


class CustomerInfo(BaseModel):
    name: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""


class PaymentInfo(BaseModel):
    provider: str = "paystack"
    reference: str
    amount: float = Field(..., ge=0, allow_inf_nan=False, description="Amount paid in NGN")
    channel: Optional[str] = None
    paid_at: str


class Totals(BaseModel):
    subtotal: float = 0
    deliveryFee: float = 0
    total: float = 0


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "order"
    """
    items: List[OrderItem] = Field(default_factory=list)
    customer: CustomerInfo = Field(default_factory=CustomerInfo)
    payment: PaymentInfo
    totals: Totals = Field(default_factory=Totals)
    order_date: datetime
    status: str = Field("paid", description="pending, paid, processing, shipped, delivered, cancelled")
    delivery_method: str = "home"
    delivery_address: str = ""
    delivery_city: str = ""
    delivery_state: str = ""
    delivery_zip_code: str = ""
    special_instructions: str = ""
