"""
Pydantic Models - boundary schemas for the cart

- ProductIn: a product handed to CartManager.add_to_cart
- CorruptSnapshotPolicy: what load() does with an unreadable snapshot
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CorruptSnapshotPolicy(str, Enum):
    """Handling of a snapshot that cannot be read or parsed at load time."""
    RESET = "reset"  # log and start with an empty cart
    RAISE = "raise"  # raise CorruptSnapshotError, keep the raw bytes


class ProductIn(BaseModel):
    """Product offered to the cart. Any supplied quantity is ignored."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1, description="Stable product identifier, stored verbatim")
    title: str = Field(..., description="Display name")
    image_url: str = Field(..., alias="imageUrl", description="Product image URL")
    price: Decimal = Field(..., ge=0, description="Unit price, opaque to the cart")
    quantity: Optional[int] = Field(None, description="Ignored; new entries start at 1")

    @field_validator("id")
    @classmethod
    def id_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("id must not be blank")
        return v
