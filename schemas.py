"""
API Schemas for the storefront

Pydantic models for request payloads and stored records. Field names are
snake_case in Python and camelCase on the wire (``imageUrl``,
``paymentMethod``...), matching what the storefront front end sends.
"""
from typing import List, Optional, Literal
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

PaymentMethod = Literal["stripe", "paypal", "manual"]
OrderStatus = Literal["pending", "placed", "paid", "failed", "refunded"]


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_api(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ProductIn(ApiModel):
    name: str = ""
    price: Optional[float] = Field(None, allow_inf_nan=False)
    category: str = ""
    icon: str = ""
    image_url: Optional[str] = ""
    description: str = ""

    @field_validator("name", "category", "icon", "description", "image_url", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class Product(ApiModel):
    id: int
    name: str
    price: float = Field(..., gt=0)
    category: str
    icon: str
    image_url: str = ""
    description: str
    created_at: datetime
    updated_at: datetime


class OrderItem(ApiModel):
    product_id: int
    name: str
    price: float = Field(..., ge=0, allow_inf_nan=False)
    quantity: int = Field(..., ge=1)


class Customer(ApiModel):
    name: str = ""
    email: str = ""
    address: str = ""

    @field_validator("name", "email", "address", mode="before")
    @classmethod
    def _strip(cls, v):
        if v is None:
            return ""
        return v.strip() if isinstance(v, str) else v


class OrderCreate(ApiModel):
    id: Optional[str] = None
    items: List[OrderItem] = []
    total: Optional[float] = Field(None, allow_inf_nan=False)
    customer: Optional[Customer] = None
    payment_method: Optional[str] = None
    payment_intent_id: Optional[str] = None


class Order(ApiModel):
    id: str
    items: List[OrderItem]
    total: float
    customer: Customer
    payment_method: PaymentMethod
    payment_intent_id: Optional[str] = None
    status: OrderStatus = "pending"
    created_at: datetime


class Client(ApiModel):
    email: str
    name: str
    address: str = ""
    total_orders: int = 0
    total_spend: float = 0
    last_order_id: Optional[str] = None
    last_order_at: Optional[datetime] = None


class MessageCreate(ApiModel):
    id: Optional[str] = None
    name: str = ""
    email: str = ""
    subject: str = ""
    message: str = ""

    @field_validator("name", "email", "subject", "message", mode="before")
    @classmethod
    def _strip(cls, v):
        if v is None:
            return ""
        return v.strip() if isinstance(v, str) else v


class Message(ApiModel):
    id: str
    name: str
    email: str
    subject: str
    message: str
    status: str = "new"
    created_at: datetime


class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""


class StripeIntentRequest(ApiModel):
    amount: float = 0
    currency: str = "usd"
    order_id: Optional[str] = None
    customer_email: Optional[EmailStr] = None
    description: Optional[str] = None


class StripeConfirmRequest(ApiModel):
    payment_intent_id: Optional[str] = None


class PayPalCreateRequest(ApiModel):
    amount: float = 0
    order_id: Optional[str] = None
    customer_email: Optional[str] = None
    items: List[dict] = []
    return_url: Optional[str] = None
    cancel_url: Optional[str] = None


class PayPalExecuteRequest(ApiModel):
    payment_id: Optional[str] = None
    payer_id: Optional[str] = None
