from pydantic import BaseModel, Field, field_validator
from typing import Dict, Generic, List, TypeVar
from decimal import Decimal
from enum import Enum
import datetime

T = TypeVar("T")


class Unit(str, Enum):
    PCS = "pcs"
    KG = "kg"
    LITRE = "litre"


class MovementType(str, Enum):
    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"


# --- Resources as returned by the backend ---
# Stock and quantities travel as decimal strings; Decimal keeps them exact.

class Item(BaseModel):
    id: int
    name: str
    sku: str
    unit: Unit
    current_stock: Decimal = Field(ge=0)
    inserted_at: datetime.datetime
    updated_at: datetime.datetime


class ItemSummary(BaseModel):
    id: int
    name: str
    sku: str
    unit: Unit


class Movement(BaseModel):
    id: int
    item_id: int
    quantity: Decimal = Field(gt=0)
    movement_type: MovementType
    created_at: datetime.datetime
    item: ItemSummary | None = None # Embedded for display, not always present


# --- Request bodies ---

class ItemCreate(BaseModel):
    name: str
    sku: str
    unit: Unit = Unit.PCS

    @field_validator("sku")
    @classmethod
    def _uppercase_sku(cls, v: str) -> str:
        return v.upper()


class MovementCreate(BaseModel):
    item_id: int
    quantity: float = Field(gt=0) # Sent as a JSON number parsed from the form input
    movement_type: MovementType


# --- Envelopes ---

class DataEnvelope(BaseModel, Generic[T]):
    data: T


class ErrorBody(BaseModel):
    code: str | None = None
    message: str | None = None
    details: Dict[str, List[str]] | None = None


class ErrorEnvelope(BaseModel):
    error: ErrorBody
