"""
Database Schemas for the Mobile Mania store

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name. Embedded models
(line items, shipping address, specs) are stored inside their parent.
"""
from datetime import datetime
from typing import List, Optional, Literal
from pydantic import BaseModel, Field, EmailStr

PAYMENT_METHODS = ("Cash on Delivery (COD)", "CreditCard")
PaymentMethod = Literal["Cash on Delivery (COD)", "CreditCard"]


class User(BaseModel):
    firstName: str = Field(..., description="First name")
    lastName: Optional[str] = None
    email: EmailStr
    password_hash: str = Field(..., description="bcrypt password hash")
    isAdmin: bool = False


class ProductSpecs(BaseModel):
    processor: Optional[str] = None
    ram: Optional[str] = None
    storage: Optional[str] = None
    display: Optional[str] = None
    camera: Optional[str] = None
    battery: Optional[str] = None
    graphicsCard: Optional[str] = None
    os: Optional[str] = None
    color: Optional[str] = None


class Product(BaseModel):
    name: str
    brand: str
    description: str
    price: float = Field(..., ge=0)
    images: List[str] = []
    category: str
    subcategory: Optional[str] = None
    countInStock: int = Field(0, ge=0)
    specs: ProductSpecs = ProductSpecs()
    rating: float = Field(0, ge=0, le=5, description="Derived from reviews")
    numReviews: int = Field(0, ge=0, description="Derived from reviews")
    user: Optional[str] = Field(None, description="Admin who created the product")


class OrderItem(BaseModel):
    name: str
    qty: int = Field(..., ge=1)
    price: float
    product: str


class ShippingAddress(BaseModel):
    name: str
    email: EmailStr
    mobileNumber: str
    address: str
    city: str
    postalCode: str
    country: str


class Order(BaseModel):
    user: str
    orderItems: List[OrderItem]
    shippingAddress: ShippingAddress
    paymentMethod: PaymentMethod
    itemsPrice: float = 0.0
    shippingPrice: float = 0.0
    taxPrice: float = 0.0
    totalPrice: float = 0.0
    isPaid: bool = False
    paidAt: Optional[datetime] = None
    isDelivered: bool = False
    deliveredAt: Optional[datetime] = None
    checkoutSessionId: Optional[str] = None


class Review(BaseModel):
    product: str
    user: str
    rating: float = Field(..., ge=1, le=5)
    comment: str
