"""Cart models and snapshot serialization."""
import json
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import List, Sequence

from gomarket.models import ProductIn


@dataclass
class CartItem:
    """Single product line in the cart."""
    id: str
    title: str
    image_url: str
    price: Decimal
    quantity: int = 1

    def copy(self) -> "CartItem":
        return replace(self)

    def to_dict(self) -> dict:
        """Convert to dictionary for the snapshot."""
        return {
            "id": self.id,
            "title": self.title,
            "image_url": self.image_url,
            "price": str(self.price),
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartItem":
        """
        Create from a snapshot record.

        Prices may be JSON numbers (snapshots written by the mobile app) or
        decimal strings (snapshots written by to_dict).

        Raises:
            KeyError, TypeError, ValueError: if the record is malformed
        """
        if not isinstance(data, dict):
            raise TypeError(f"cart record must be an object, got {type(data).__name__}")

        product_id = data["id"]
        if not isinstance(product_id, str) or not product_id:
            raise ValueError("cart record id must be a non-empty string")

        quantity = data["quantity"]
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValueError(f"cart record quantity must be a positive integer, got {quantity!r}")

        raw_price = data["price"]
        if isinstance(raw_price, bool) or not isinstance(raw_price, (int, float, str)):
            raise TypeError(f"cart record price must be a number, got {type(raw_price).__name__}")
        try:
            price = Decimal(str(raw_price))
        except InvalidOperation as e:
            raise ValueError(f"cart record price is not a number: {raw_price!r}") from e

        title = data["title"]
        image_url = data["image_url"]
        if not isinstance(title, str):
            raise TypeError(f"cart record title must be a string, got {type(title).__name__}")
        if not isinstance(image_url, str):
            raise TypeError(f"cart record image_url must be a string, got {type(image_url).__name__}")

        return cls(
            id=product_id,
            title=title,
            image_url=image_url,
            price=price,
            quantity=quantity,
        )

    @classmethod
    def from_product(cls, product: ProductIn) -> "CartItem":
        """New cart line for a validated product; always starts at quantity 1."""
        return cls(
            id=product.id,
            title=product.title,
            image_url=product.image_url,
            price=product.price,
            quantity=1,
        )


def dump_snapshot(items: Sequence[CartItem]) -> bytes:
    """Serialize the full cart to UTF-8 JSON."""
    return json.dumps([item.to_dict() for item in items], ensure_ascii=False).encode("utf-8")


def load_snapshot(data: bytes) -> List[CartItem]:
    """
    Deserialize a snapshot produced by dump_snapshot (or by the mobile app).

    Raises:
        ValueError: if the bytes are not a valid snapshot, including
            duplicate ids
    """
    try:
        records = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"snapshot is not valid JSON: {e}") from e

    if not isinstance(records, list):
        raise ValueError("snapshot must be a JSON array")

    items: List[CartItem] = []
    seen = set()
    for record in records:
        try:
            item = CartItem.from_dict(record)
        except (KeyError, TypeError) as e:
            raise ValueError(f"malformed cart record: {e}") from e
        if item.id in seen:
            raise ValueError(f"duplicate cart id in snapshot: {item.id}")
        seen.add(item.id)
        items.append(item)
    return items
