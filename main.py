import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, FastAPI, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

import database
from auth import get_current_user, hash_password, issue_token, verify_password
from config import Config
from database import MongoRecordStore, get_store
from errors import CarNotFound, PersistenceError, RentalAppError, Unauthorized, UserNotFound, ValidationError
from payments import PaymentManager
from rentals import RentalManager
from schemas import Car as CarSchema, CarStatus, PaymentStatus, User as UserSchema, UserRole

logging.basicConfig(
    level=Config.LOG_LEVEL,
    format='{"timestamp":"%(asctime)s","level":"%(levelname)s","service":"' + Config.SERVICE_NAME
    + '","logger":"%(name)s","message":"%(message)s"}',
)
logger = logging.getLogger(__name__)


# Utilities to serialize MongoDB documents
def serialize_value(v):
    if isinstance(v, ObjectId):
        return str(v)
    if isinstance(v, datetime):
        if v.tzinfo is None:
            # pymongo returns naive datetimes in UTC
            v = v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc).isoformat()
    if isinstance(v, Enum):
        return v.value
    return v


def serialize_doc(doc: dict):
    return {k: serialize_value(v) for k, v in doc.items() if k != "password"}


def require_object_id(value: str, name: str) -> str:
    if not ObjectId.is_valid(value):
        raise ValidationError(f"Invalid {name}")
    return value


def _check_object_id(value: Optional[str]) -> Optional[str]:
    if value is not None and not ObjectId.is_valid(value):
        raise ValueError("Invalid ObjectId")
    return value


def get_rental_manager(store: MongoRecordStore = Depends(get_store)) -> RentalManager:
    return RentalManager(store)


def get_payment_manager(store: MongoRecordStore = Depends(get_store)) -> PaymentManager:
    return PaymentManager(store)


app = FastAPI(title="Car Rental API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Origin", "Content-Type", "Accept", "Authorization"],
    expose_headers=["Authorization"],
)


@app.exception_handler(RentalAppError)
async def handle_app_error(request, exc: RentalAppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request, exc: RequestValidationError):
    errors = [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()]
    return JSONResponse(status_code=400, content={"detail": "Invalid input", "errors": errors})


@app.get("/")
def read_root():
    return {"message": "Car Rental Backend is running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "connection_status": "Not Connected",
        "collections": [],
    }
    if database.db is None:
        response["database"] = "⚠️  Not configured"
        return response
    try:
        response["collections"] = MongoRecordStore(database.db).collection_names()[:10]
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except PersistenceError as e:
        response["database"] = f"❌ Error: {e.message[:50]}"
    return response


# Auth Endpoints
class RegisterRequest(BaseModel):
    full_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    email: str
    password: str


def _create_customer(store: MongoRecordStore, payload: RegisterRequest) -> dict:
    email = payload.email.strip().lower()
    if store.find_one("user", {"email": email}):
        raise ValidationError("Email already registered")
    user = UserSchema(
        full_name=payload.full_name,
        email=email,
        password=hash_password(payload.password),
        phone=payload.phone,
        role=UserRole.customer,
    )
    user_id = store.create("user", user)
    logger.info("User %s registered", user_id)
    return store.get("user", user_id)


@app.post("/register")
def register_user(payload: RegisterRequest, store: MongoRecordStore = Depends(get_store)):
    return serialize_doc(_create_customer(store, payload))


@app.post("/login")
def login_user(payload: LoginRequest, store: MongoRecordStore = Depends(get_store)):
    user = store.find_one("user", {"email": payload.email.strip().lower()})
    if not user or not verify_password(payload.password, user.get("password")):
        raise Unauthorized("Invalid email or password")
    token = issue_token(str(user["_id"]), user["role"])
    return {"token": token, "role": user["role"]}


# Everything below requires a bearer token
protected = APIRouter(dependencies=[Depends(get_current_user)])


# Users Endpoints
class UpdateUserRequest(BaseModel):
    full_name: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = Field(None, min_length=3)
    password: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = Field(None, min_length=1)


@protected.get("/users")
def list_users(store: MongoRecordStore = Depends(get_store)):
    return [serialize_doc(u) for u in store.list("user")]


@protected.get("/users/me")
def get_me(claims: dict = Depends(get_current_user), store: MongoRecordStore = Depends(get_store)):
    user = store.get("user", claims["user_id"])
    if not user:
        raise UserNotFound()
    return serialize_doc(user)


@protected.get("/users/{user_id}")
def get_user(user_id: str, store: MongoRecordStore = Depends(get_store)):
    require_object_id(user_id, "user_id")
    user = store.get("user", user_id)
    if not user:
        raise UserNotFound()
    return serialize_doc(user)


@protected.post("/users")
def create_user(payload: RegisterRequest, store: MongoRecordStore = Depends(get_store)):
    return serialize_doc(_create_customer(store, payload))


@protected.put("/users/{user_id}")
def update_user(user_id: str, payload: UpdateUserRequest, store: MongoRecordStore = Depends(get_store)):
    require_object_id(user_id, "user_id")
    user = store.get("user", user_id)
    if not user:
        raise UserNotFound()

    changes = payload.model_dump(exclude_none=True)
    if "email" in changes:
        changes["email"] = changes["email"].strip().lower()
        existing = store.find_one("user", {"email": changes["email"]})
        if existing and existing["_id"] != user["_id"]:
            raise ValidationError("Email already registered")
    if "password" in changes:
        changes["password"] = hash_password(changes["password"])

    updated = store.update("user", user_id, changes) if changes else user
    if not updated:
        raise UserNotFound()
    return serialize_doc(updated)


@protected.delete("/users/{user_id}", status_code=204)
def delete_user(user_id: str, store: MongoRecordStore = Depends(get_store)):
    require_object_id(user_id, "user_id")
    if not store.delete("user", user_id):
        raise UserNotFound()
    return Response(status_code=204)


# Cars Endpoints
class CreateCarRequest(BaseModel):
    brand: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    year: int = Field(..., ge=1900, le=2100)
    license_plate: str = Field(..., min_length=1)
    price_per_day: float = Field(..., gt=0)
    status: CarStatus = CarStatus.available


class UpdateCarRequest(BaseModel):
    brand: Optional[str] = Field(None, min_length=1)
    model: Optional[str] = Field(None, min_length=1)
    year: Optional[int] = Field(None, ge=1900, le=2100)
    license_plate: Optional[str] = Field(None, min_length=1)
    price_per_day: Optional[float] = Field(None, gt=0)
    status: Optional[CarStatus] = None


@protected.get("/cars")
def list_cars(status: Optional[CarStatus] = None, store: MongoRecordStore = Depends(get_store)):
    query = {"status": status.value} if status else None
    return [serialize_doc(c) for c in store.list("car", query)]


@protected.get("/cars/{car_id}")
def get_car(car_id: str, store: MongoRecordStore = Depends(get_store)):
    require_object_id(car_id, "car_id")
    car = store.get("car", car_id)
    if not car:
        raise CarNotFound()
    return serialize_doc(car)


@protected.post("/cars")
def add_car(payload: CreateCarRequest, store: MongoRecordStore = Depends(get_store)):
    car_id = store.create("car", CarSchema(**payload.model_dump()))
    return serialize_doc(store.get("car", car_id))


@protected.put("/cars/{car_id}")
def update_car(car_id: str, payload: UpdateCarRequest, store: MongoRecordStore = Depends(get_store)):
    require_object_id(car_id, "car_id")
    car = store.get("car", car_id)
    if not car:
        raise CarNotFound()
    changes = payload.model_dump(exclude_none=True, mode="json")
    updated = store.update("car", car_id, changes) if changes else car
    if not updated:
        raise CarNotFound()
    return serialize_doc(updated)


@protected.delete("/cars/{car_id}", status_code=204)
def delete_car(car_id: str, store: MongoRecordStore = Depends(get_store)):
    require_object_id(car_id, "car_id")
    if not store.delete("car", car_id):
        raise CarNotFound()
    return Response(status_code=204)


# Rentals Endpoints
class CreateRentalRequest(BaseModel):
    user_id: Optional[str] = Field(None, description="Defaults to the authenticated user")
    car_id: str
    start_date: datetime
    end_date: datetime

    @field_validator("user_id", "car_id")
    @classmethod
    def check_ids(cls, v):
        return _check_object_id(v)


class UpdateRentalRequest(BaseModel):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


@protected.get("/rentals")
def list_rentals(
    user_id: Optional[str] = None,
    status: Optional[PaymentStatus] = None,
    rentals: RentalManager = Depends(get_rental_manager),
):
    return [serialize_doc(r) for r in rentals.list_rentals(user_id=user_id, status=status)]


@protected.get("/rentals/{rental_id}")
def get_rental(rental_id: str, rentals: RentalManager = Depends(get_rental_manager)):
    require_object_id(rental_id, "rental_id")
    return serialize_doc(rentals.get_rental(rental_id))


@protected.post("/rentals")
def create_rental(
    payload: CreateRentalRequest,
    claims: dict = Depends(get_current_user),
    rentals: RentalManager = Depends(get_rental_manager),
):
    user_id = payload.user_id or claims["user_id"]
    rental = rentals.create_rental(user_id, payload.car_id, payload.start_date, payload.end_date)
    return serialize_doc(rental)


@protected.put("/rentals/{rental_id}")
def update_rental(
    rental_id: str,
    payload: UpdateRentalRequest,
    rentals: RentalManager = Depends(get_rental_manager),
):
    require_object_id(rental_id, "rental_id")
    rental = rentals.update_rental(rental_id, start=payload.start_date, end=payload.end_date)
    return serialize_doc(rental)


@protected.delete("/rentals/{rental_id}", status_code=204)
def delete_rental(rental_id: str, rentals: RentalManager = Depends(get_rental_manager)):
    require_object_id(rental_id, "rental_id")
    rentals.delete_rental(rental_id)
    return Response(status_code=204)


# Payments Endpoints
class CreatePaymentRequest(BaseModel):
    rental_id: str
    payment_method: str = Field(..., min_length=1)
    amount: Optional[float] = Field(None, ge=0, description="Must equal the rental total when given")

    @field_validator("rental_id")
    @classmethod
    def check_rental_id(cls, v):
        return _check_object_id(v)


class UpdatePaymentRequest(BaseModel):
    payment_method: Optional[str] = Field(None, min_length=1)


@protected.get("/payments")
def list_payments(
    rental_id: Optional[str] = None,
    status: Optional[PaymentStatus] = None,
    payments: PaymentManager = Depends(get_payment_manager),
):
    return [serialize_doc(p) for p in payments.list_payments(rental_id=rental_id, status=status)]


@protected.get("/payments/{payment_id}")
def get_payment(payment_id: str, payments: PaymentManager = Depends(get_payment_manager)):
    require_object_id(payment_id, "payment_id")
    return serialize_doc(payments.get_payment(payment_id))


@protected.post("/payments")
def create_payment(payload: CreatePaymentRequest, payments: PaymentManager = Depends(get_payment_manager)):
    payment = payments.settle_payment(payload.rental_id, payload.payment_method, payload.amount)
    return serialize_doc(payment)


@protected.put("/payments/{payment_id}")
def update_payment(
    payment_id: str,
    payload: UpdatePaymentRequest,
    payments: PaymentManager = Depends(get_payment_manager),
):
    require_object_id(payment_id, "payment_id")
    return serialize_doc(payments.update_payment(payment_id, method=payload.payment_method))


@protected.delete("/payments/{payment_id}", status_code=204)
def delete_payment(payment_id: str, payments: PaymentManager = Depends(get_payment_manager)):
    require_object_id(payment_id, "payment_id")
    payments.delete_payment(payment_id)
    return Response(status_code=204)


app.include_router(protected)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=Config.PORT)
