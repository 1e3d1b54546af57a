"""
Database Schemas

Car Rental API schemas using Pydantic models.
Each Pydantic model maps to a MongoDB collection using the lowercase class name.
- User -> "user"
- Car -> "car"
- Rental -> "rental"
- Payment -> "payment"
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class UserRole(str, Enum):
    admin = "admin"
    customer = "customer"


class CarStatus(str, Enum):
    available = "available"
    rented = "rented"
    maintenance = "maintenance"


class PaymentStatus(str, Enum):
    """Settlement state shared by a rental and its payment."""
    unpaid = "unpaid"
    paid = "paid"


class User(BaseModel):
    """
    Registered users
    Collection: "user"
    """
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    full_name: str = Field(..., min_length=1, description="Full name")
    email: str = Field(..., min_length=3, description="Login email, unique")
    password: str = Field(..., description="bcrypt hash of the password")
    phone: str = Field(..., min_length=1, description="Contact phone number")
    role: UserRole = Field(UserRole.customer, description="admin | customer")


class Car(BaseModel):
    """
    Cars available for rent
    Collection: "car"
    """
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    brand: str = Field(..., min_length=1, description="Manufacturer, e.g., Toyota")
    model: str = Field(..., min_length=1, description="Model, e.g., Corolla")
    year: int = Field(..., ge=1900, le=2100, description="Year of manufacture")
    license_plate: str = Field(..., min_length=1, description="Registration number")
    price_per_day: float = Field(..., gt=0, description="Daily rental rate")
    status: CarStatus = Field(CarStatus.available, description="available | rented | maintenance")


class Rental(BaseModel):
    """
    Rental bookings
    Collection: "rental"
    """
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    user_id: str = Field(..., description="ID of the renting user")
    car_id: str = Field(..., description="ID of the rented car")
    start_date: datetime = Field(..., description="Rental start (UTC)")
    end_date: datetime = Field(..., description="Rental end (UTC)")
    total_price: float = Field(..., ge=0, description="Price computed at booking time")
    status: PaymentStatus = Field(PaymentStatus.unpaid, description="unpaid | paid")


class Payment(BaseModel):
    """
    Payment record, one per rental
    Collection: "payment"
    """
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    rental_id: str = Field(..., description="ID of the rental being paid")
    amount: float = Field(..., ge=0, description="Equals the rental total price")
    payment_method: str = Field("", description="Empty until the rental is settled")
    status: PaymentStatus = Field(PaymentStatus.unpaid, description="unpaid | paid")
