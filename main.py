import logging
import os
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import bcrypt
import jwt
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, EmailStr, Field
from starlette.concurrency import run_in_threadpool

import catalog
import orders
import payments
import reviews
import settings
from database import create_document, get_db, serialize_doc, to_object_id
from errors import ShopError, ValidationError
from notifications import send_cod_confirmation, send_delivery_notice, send_invoice
from schemas import (
    PaymentMethod,
    Product as ProductSchema,
    ProductSpecs,
    ShippingAddress,
    User as UserSchema,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Mobile Mania API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_errors(exc)})


def jsonable_errors(exc: RequestValidationError):
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()]


# ----------------------- Auth -----------------------
security = HTTPBearer()


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def check_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode(), password_hash.encode())


def create_token(payload: dict) -> str:
    exp = datetime.now(timezone.utc) + timedelta(days=7)
    to_encode = {**payload, "exp": exp}
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGO)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security), db=Depends(get_db)):
    payload = decode_token(credentials.credentials)
    user_id = payload.get("id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    try:
        user = db["user"].find_one({"_id": to_object_id(user_id)})
    except ValidationError:
        user = None
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return serialize_doc(user)


def require_admin(user=Depends(get_current_user)):
    if not user.get("isAdmin"):
        raise HTTPException(status_code=401, detail="Not authorized as an admin")
    return user


def user_public(user: dict) -> dict:
    return {
        "id": user["id"],
        "firstName": user["firstName"],
        "lastName": user.get("lastName"),
        "email": user["email"],
        "isAdmin": user.get("isAdmin", False),
    }


# ----------------------- Models -----------------------
class SignupBody(BaseModel):
    firstName: str
    lastName: Optional[str] = None
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginBody(BaseModel):
    email: EmailStr
    password: str


class ProductCreateBody(BaseModel):
    name: str
    brand: str
    description: str
    price: float = Field(..., ge=0)
    images: List[str] = []
    category: str
    subcategory: Optional[str] = None
    countInStock: int = Field(0, ge=0)
    specs: ProductSpecs = ProductSpecs()


class ProductUpdateBody(BaseModel):
    name: Optional[str] = None
    brand: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    images: Optional[List[str]] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    countInStock: Optional[int] = Field(None, ge=0)
    specs: Optional[ProductSpecs] = None


class OrderItemBody(BaseModel):
    product: str
    qty: int = Field(..., ge=1)


class OrderCreateBody(BaseModel):
    orderItems: List[OrderItemBody]
    shippingAddress: ShippingAddress
    paymentMethod: PaymentMethod


class CheckoutSessionBody(BaseModel):
    orderId: str


class ReviewCreateBody(BaseModel):
    productId: str
    rating: float = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1)


class ReviewUpdateBody(BaseModel):
    rating: Optional[float] = Field(None, ge=1, le=5)
    comment: Optional[str] = None


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "Mobile Mania API running"}


@app.get("/test")
def test_database(db=Depends(get_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# ----------------------- Auth -----------------------
@app.post("/api/users/signup", status_code=201)
def signup(body: SignupBody, db=Depends(get_db)):
    email = body.email.lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email already registered")
    user = UserSchema(
        firstName=body.firstName,
        lastName=body.lastName,
        email=email,
        password_hash=hash_password(body.password),
        isAdmin=False,
    )
    user_id = create_document(db, "user", user)
    token = create_token({"id": user_id, "email": email, "isAdmin": False})
    return {"token": token, "user": {"id": user_id, "firstName": body.firstName, "lastName": body.lastName,
                                     "email": email, "isAdmin": False}}


@app.post("/api/users/login")
def login(body: LoginBody, db=Depends(get_db)):
    user = db["user"].find_one({"email": body.email.lower()})
    if not user or not check_password(body.password, user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    suser = serialize_doc(user)
    token = create_token({"id": suser["id"], "email": suser["email"], "isAdmin": suser.get("isAdmin", False)})
    return {"token": token, "user": user_public(suser)}


# ----------------------- Products -----------------------
@app.get("/api/products")
def list_products(q: Optional[str] = None, category: Optional[str] = None, brand: Optional[str] = None,
                  limit: int = 100, db=Depends(get_db)):
    items = catalog.list_products(db, q=q, category=category, brand=brand, limit=min(max(limit, 1), 100))
    return [serialize_doc(i) for i in items]


@app.get("/api/products/{product_id}")
def get_product(product_id: str, db=Depends(get_db)):
    return serialize_doc(catalog.get_product(db, product_id))


@app.post("/api/products", status_code=201)
def create_product(body: ProductCreateBody, user=Depends(require_admin), db=Depends(get_db)):
    product = ProductSchema(**body.model_dump(), user=user["id"])
    return serialize_doc(catalog.create_product(db, product))


@app.put("/api/products/{product_id}")
def update_product(product_id: str, body: ProductUpdateBody, user=Depends(require_admin), db=Depends(get_db)):
    return serialize_doc(catalog.update_product(db, product_id, body.model_dump(exclude_none=True)))


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, user=Depends(require_admin), db=Depends(get_db)):
    catalog.delete_product(db, product_id)
    return {"message": "Product removed"}


# ----------------------- Orders -----------------------
@app.post("/api/orders", status_code=201)
def create_order(body: OrderCreateBody, user=Depends(get_current_user), db=Depends(get_db)):
    order = orders.create_order(
        db,
        user,
        [i.model_dump() for i in body.orderItems],
        body.shippingAddress.model_dump(),
        body.paymentMethod,
    )
    if order["paymentMethod"] == "Cash on Delivery (COD)":
        send_cod_confirmation(order, user)
    return serialize_doc(order)


@app.get("/api/orders")
def list_orders(isPaid: Optional[bool] = None, isDelivered: Optional[bool] = None, user: Optional[str] = None,
                paymentMethod: Optional[str] = None, sortBy: Optional[str] = None, pageNumber: int = 1,
                pageSize: int = 10, admin=Depends(require_admin), db=Depends(get_db)):
    result = orders.list_orders(
        db,
        is_paid=isPaid,
        is_delivered=isDelivered,
        user_id=user,
        payment_method=paymentMethod,
        page=pageNumber,
        page_size=min(max(pageSize, 1), 100),
        oldest_first=sortBy == "oldest",
    )
    result["orders"] = [serialize_doc(o) for o in result["orders"]]
    return result


@app.get("/api/orders/myorders")
def my_orders(isPaid: Optional[bool] = None, user=Depends(get_current_user), db=Depends(get_db)):
    return [serialize_doc(o) for o in orders.list_user_orders(db, user["id"], is_paid=isPaid)]


@app.get("/api/orders/has-purchased/{product_id}")
def has_purchased(product_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    return {"hasPurchased": catalog.has_purchased(db, user["id"], product_id)}


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    order = orders.get_order(db, order_id)
    orders.ensure_owner_or_admin({**order, "user": order["user"]["id"]}, user, "view")
    return serialize_doc(order)


@app.put("/api/orders/{order_id}/pay")
def pay_order(order_id: str, admin=Depends(require_admin), db=Depends(get_db)):
    order = orders.mark_paid(db, order_id)
    owner = db["user"].find_one({"_id": to_object_id(order["user"])})
    if owner:
        send_invoice(order, owner)
    return serialize_doc(order)


@app.put("/api/orders/{order_id}/deliver")
def deliver_order(order_id: str, admin=Depends(require_admin), db=Depends(get_db)):
    order = orders.mark_delivered(db, order_id)
    owner = db["user"].find_one({"_id": to_object_id(order["user"])})
    if owner:
        send_delivery_notice(order, owner)
    return serialize_doc(order)


@app.delete("/api/orders/{order_id}")
def delete_order(order_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    orders.delete_order(db, order_id, user)
    return {"message": "Order removed successfully"}


# ----------------------- Payments -----------------------
@app.post("/api/payment/create-checkout-session")
def create_checkout_session(body: CheckoutSessionBody, user=Depends(get_current_user), db=Depends(get_db)):
    return payments.create_checkout_session(db, body.orderId, user)


@app.post("/api/webhook")
async def stripe_webhook(request: Request, db=Depends(get_db)):
    # Signature covers the exact bytes Stripe sent, so no body model here.
    payload = await request.body()
    signature = request.headers.get("stripe-signature", "")
    return await run_in_threadpool(payments.handle_webhook, db, payload, signature)


# ----------------------- Reviews -----------------------
@app.get("/api/reviews")
def list_reviews(productId: str, db=Depends(get_db)):
    return [serialize_doc(r) for r in reviews.list_reviews(db, productId)]


@app.get("/api/reviews/admin")
def list_all_reviews(admin=Depends(require_admin), db=Depends(get_db)):
    return [serialize_doc(r) for r in reviews.list_all_reviews(db)]


@app.post("/api/reviews", status_code=201)
def create_review(body: ReviewCreateBody, user=Depends(get_current_user), db=Depends(get_db)):
    review = reviews.create_review(db, body.productId, user, body.rating, body.comment)
    return serialize_doc(review)


@app.put("/api/reviews/{review_id}")
def update_review(review_id: str, body: ReviewUpdateBody, user=Depends(get_current_user), db=Depends(get_db)):
    return serialize_doc(reviews.update_review(db, review_id, user, body.rating, body.comment))


@app.delete("/api/reviews/{review_id}")
def delete_review(review_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    reviews.delete_review(db, review_id, user)
    return {"message": "Review removed"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
