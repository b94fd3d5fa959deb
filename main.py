import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional

from bson import ObjectId
from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import ValidationError as PydanticValidationError
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from database import create_document, db, ensure_indexes, get_documents
from errors import APIError, AuthError, NotFoundError, StorageError, ValidationError
from logging_config import setup_logging
from schemas import (
    ORDER_STATUSES,
    ROLES,
    LoginRequest,
    Order,
    OrderCreate,
    OrderUpdate,
    RegisterRequest,
    StatusUpdate,
    User,
)

logger = logging.getLogger(__name__)

# Security
SECRET_KEY = os.getenv("JWT_SECRET")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_DAYS = 1
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=10)
bearer_scheme = HTTPBearer(auto_error=False)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    if not SECRET_KEY:
        raise RuntimeError("JWT_SECRET is not set; refusing to start without a token-signing secret")
    if db is None:
        raise RuntimeError("DATABASE_URL is not set; refusing to start without a database")
    try:
        ensure_indexes(db)
        logger.info("MongoDB successfully connected")
    except PyMongoError as exc:
        logger.error("MongoDB connection error: %s", exc)
    yield


# App setup
app = FastAPI(title="Order & Auth API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE"],
    allow_headers=["*"],
)


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid request data.", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


# Helpers

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Sign ``data`` (user id and role) with an issue time and expiry, one day by default."""
    now = datetime.now(timezone.utc)
    to_encode = data.copy()
    to_encode.update({"iat": now, "exp": now + (expires_delta or timedelta(days=ACCESS_TOKEN_EXPIRE_DAYS))})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise AuthError("Could not validate credentials.") from exc


def serialize_doc(doc: dict) -> dict:
    out = dict(doc)
    if isinstance(out.get("_id"), ObjectId):
        out["_id"] = str(out["_id"])
    for key, value in out.items():
        if isinstance(value, datetime):
            out[key] = value.replace(tzinfo=timezone.utc).isoformat()
    return out


def order_filter(order_id: str) -> dict:
    # an id that can never exist is reported the same as a missing order
    if not ObjectId.is_valid(order_id):
        raise NotFoundError("Order not found.")
    return {"_id": ObjectId(order_id)}


def parse_date_bound(value: str, name: str) -> datetime:
    """Parse a YYYY-MM-DD or ISO-8601 query bound into naive UTC."""
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError(f"Invalid {name}: {value!r}") from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def validation_details(exc: PydanticValidationError) -> dict:
    return {"errors": [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]}


# Dependency: get current user
def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> dict:
    if credentials is None:
        raise AuthError("Not authenticated.")
    payload = decode_access_token(credentials.credentials)
    user_id = payload.get("id")
    if not user_id or not ObjectId.is_valid(user_id):
        raise AuthError("Could not validate credentials.")
    try:
        user = db["user"].find_one({"_id": ObjectId(user_id)}, {"password_hash": 0})
    except PyMongoError as exc:
        logger.exception("Error loading user %s", user_id)
        raise StorageError("Failed to load user") from exc
    if not user:
        raise AuthError("Could not validate credentials.")
    user["id"] = str(user.pop("_id"))
    return user


# Routes
@app.get("/")
def root():
    return {"message": "Order & Auth API running"}


@app.get("/test")
def test_database():
    if db is None:
        return {"backend": "ok", "database": "not configured"}
    try:
        collections = db.list_collection_names()
        return {"backend": "ok", "database": "ok", "collections": collections}
    except PyMongoError as e:
        return {"backend": "ok", "database": f"error: {str(e)[:80]}"}


# Orders
@app.post("/api/orders", status_code=201)
def create_order(payload: OrderCreate):
    if payload.billingDetails is None or payload.billingDetails.is_empty() or not payload.orderedProducts:
        raise ValidationError("Invalid order data: Missing billing details or products.")

    fields = payload.model_dump(exclude={"orderDate"})
    if payload.orderDate is not None:
        fields["orderDate"] = payload.orderDate
    order = Order(**fields)

    try:
        order_id = create_document("order", order)
    except PyMongoError as exc:
        logger.exception("Error saving order")
        raise StorageError("Failed to place order") from exc

    logger.info("Order successfully saved to DB: %s", order_id)
    return {"message": "Order placed successfully!", "orderId": order_id}


@app.get("/api/orders/all")
def list_orders(startDate: Optional[str] = None, endDate: Optional[str] = None):
    date_range = {}
    if startDate:
        date_range["$gte"] = parse_date_bound(startDate, "startDate")
    if endDate:
        end = parse_date_bound(endDate, "endDate")
        # exclusive bound at the start of the following day; none past the last representable day
        try:
            date_range["$lt"] = end + timedelta(days=1)
        except OverflowError:
            pass
    query = {"orderDate": date_range} if date_range else {}

    try:
        orders = get_documents("order", query, sort=[("orderDate", DESCENDING)])
    except PyMongoError as exc:
        logger.exception("Error fetching orders")
        raise StorageError("Failed to retrieve orders") from exc
    return [serialize_doc(o) for o in orders]


@app.put("/api/orders/{order_id}")
def update_order(order_id: str, payload: OrderUpdate):
    query = order_filter(order_id)
    changes = payload.model_dump(exclude_unset=True)

    try:
        order = db["order"].find_one(query)
        if not order:
            raise NotFoundError("Order not found")
        try:
            Order.model_validate({**order, **changes})
        except PydanticValidationError as exc:
            raise ValidationError("Invalid order data.", validation_details(exc)) from exc
        if changes:
            order = db["order"].find_one_and_update(query, {"$set": changes}, return_document=ReturnDocument.AFTER)
            if not order:
                raise NotFoundError("Order not found")
    except PyMongoError as exc:
        logger.exception("Error updating order %s", order_id)
        raise StorageError("Internal server error during update") from exc

    logger.info("Order %s updated: %s", order_id, ", ".join(changes) or "no changes")
    return {"message": "Order updated successfully", "order": serialize_doc(order)}


@app.patch("/api/orders/{order_id}/status")
def update_order_status(order_id: str, payload: StatusUpdate):
    new_status = payload.newStatus
    if not new_status:
        raise ValidationError("New status is required.")
    if new_status not in ORDER_STATUSES:
        raise ValidationError(f"Invalid status: {new_status}.", {"allowed": list(ORDER_STATUSES)})
    query = order_filter(order_id)

    try:
        order = db["order"].find_one_and_update(
            query, {"$set": {"status": new_status}}, return_document=ReturnDocument.AFTER
        )
    except PyMongoError as exc:
        logger.exception("Error updating order status %s", order_id)
        raise StorageError("Failed to update order status") from exc
    if not order:
        raise NotFoundError("Order not found.")

    logger.info("Order %s status set to %s", order_id, new_status)
    return {"message": "Order status updated successfully!", "order": serialize_doc(order)}


@app.delete("/api/orders/{order_id}")
def delete_order(order_id: str):
    query = order_filter(order_id)
    try:
        res = db["order"].delete_one(query)
    except PyMongoError as exc:
        logger.exception("Error deleting order %s", order_id)
        raise StorageError("Failed to delete order") from exc
    if res.deleted_count == 0:
        raise NotFoundError("Order not found.")

    logger.info("Order %s deleted", order_id)
    return {"message": "Order deleted successfully!", "orderId": order_id}


# Auth
@app.post("/api/auth/register", status_code=201)
def register(payload: RegisterRequest):
    # role is never taken from the request; new accounts are always "user"
    user = User(name=payload.name, email=payload.email, password_hash=hash_password(payload.password))
    try:
        if db["user"].find_one({"email": user.email}):
            raise ValidationError("Email already registered.")
        create_document("user", user)
    except DuplicateKeyError as exc:
        raise ValidationError("Email already registered.") from exc
    except PyMongoError as exc:
        logger.exception("Error registering user")
        raise StorageError("Failed to register user") from exc

    logger.info("User registered: %s", user.email)
    return {
        "message": "User registered successfully! Now you can login.",
        "user": user.email,
        "name": user.name,
        "role": user.role,
    }


@app.post("/api/auth/login")
def login(payload: LoginRequest):
    try:
        user = db["user"].find_one({"email": payload.email})
    except PyMongoError as exc:
        logger.exception("Error during login")
        raise StorageError("Failed to log in") from exc

    if user is None:
        # spend the same hashing time as a real check
        pwd_context.dummy_verify()
        valid = False
    else:
        valid = verify_password(payload.password, user.get("password_hash", ""))
    if not valid:
        logger.info("Failed login for %s", payload.email)
        raise AuthError("Invalid credentials.")

    role = user.get("role", "user")
    if role not in ROLES:
        logger.error("User %s has unknown role %r", user["_id"], role)
        raise AuthError("Invalid credentials.")

    token = create_access_token({"id": str(user["_id"]), "role": role})
    user_out = {"id": str(user["_id"]), "email": user.get("email"), "name": user.get("name"), "role": role}
    return {"status": "success", "token": token, "user": user_out}


@app.get("/api/auth/me")
def me(user=Depends(get_current_user)):
    return {"id": user["id"], "name": user.get("name"), "email": user.get("email"), "role": user.get("role")}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 3000))
    uvicorn.run(app, host="0.0.0.0", port=port)
