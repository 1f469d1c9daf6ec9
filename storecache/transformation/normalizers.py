"""
Payload Normalizers

Turn Shopify Admin API payloads into table rows:
- Product title quality filtering
- Variant rows with cost estimation
- Order rows with hashed customer email
- Line item rows with cart positions and synthetic ids for custom sales
"""

import hashlib
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import structlog

logger = structlog.get_logger(__name__)

# Shopify's title for the only variant of a product without options
DEFAULT_VARIANT_TITLE = "Default Title"

# Cart positions are 1-based
FIRST_POSITION = 1

CENTS = Decimal("0.01")


def as_utc(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse a timestamp into an aware UTC datetime.

    Naive values are taken to be UTC already (SQLite drops the offset).
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_decimal(value: Any) -> Optional[Decimal]:
    """Money strings from the API to Decimal; blanks become None."""
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Not a decimal amount: {value!r}")


def _id(value: Any) -> Optional[str]:
    return None if value is None or value == "" else str(value)


def is_quality_title(title: Optional[str]) -> bool:
    """
    A usable product title has at least one lower-case letter.

    All-caps titles (and titles with no letters at all) are data-entry
    artifacts and get skipped.
    """
    if not title:
        return False
    return any(ch.islower() for ch in title)


def clean_variant_title(title: Optional[str]) -> Optional[str]:
    """Empty for the "Default Title" sentinel."""
    if title is None:
        return None
    title = title.strip()
    if not title or title == DEFAULT_VARIANT_TITLE:
        return None
    return title


def display_name(product_title: str, variant_title: Optional[str]) -> str:
    """'Product - Variant', or just the product title."""
    variant_title = clean_variant_title(variant_title)
    if variant_title:
        return f"{product_title} - {variant_title}"
    return product_title


def estimate_cost(
    price: Optional[Decimal],
    compare_at_price: Optional[Decimal] = None,
    known_cost: Optional[Decimal] = None,
    cost_ratio: float = 0.6,
) -> Tuple[Optional[Decimal], bool]:
    """
    Cost for a variant, and whether it is an estimate.

    Known unit cost wins; otherwise the compare-at price; otherwise
    ``price * cost_ratio``.
    """
    if known_cost is not None:
        return known_cost, False
    if compare_at_price:
        return compare_at_price, True
    if price is None:
        return None, True
    return (price * Decimal(str(cost_ratio))).quantize(CENTS), True


def normalize_variant(
    product: Mapping[str, Any],
    variant: Mapping[str, Any],
    cost_ratio: float,
    unit_costs: Optional[Mapping[str, Decimal]] = None,
) -> Dict[str, Any]:
    """Build a product_variants row from a REST product and one of its variants."""
    price = to_decimal(variant.get("price")) or Decimal("0")
    compare_at = to_decimal(variant.get("compare_at_price"))
    inventory_item_id = _id(variant.get("inventory_item_id"))

    known_cost = to_decimal(variant.get("cost"))
    if known_cost is None and unit_costs and inventory_item_id:
        known_cost = unit_costs.get(inventory_item_id)

    cost, estimated = estimate_cost(price, compare_at, known_cost, cost_ratio)
    barcode = _id(variant.get("barcode"))
    if barcode is not None:
        barcode = barcode.strip() or None

    return {
        "variant_id": str(variant["id"]),
        "product_id": str(product["id"]),
        "product_title": product["title"].strip(),
        "variant_title": clean_variant_title(variant.get("title")),
        "barcode": barcode,
        "sku": variant.get("sku") or None,
        "price": price,
        "compare_at_price": compare_at,
        "cost": cost,
        "cost_is_estimated": estimated,
        "inventory_quantity": int(variant.get("inventory_quantity") or 0),
        "inventory_item_id": inventory_item_id,
        "vendor": product.get("vendor"),
        "tags": product.get("tags") or None,
        "created_at": as_utc(variant.get("created_at") or product.get("created_at")),
        "updated_at": as_utc(variant.get("updated_at") or product.get("updated_at")),
        "synced_at": datetime.now(timezone.utc),
    }


def normalize_products(
    products: List[Mapping[str, Any]],
    cost_ratio: float,
    unit_costs: Optional[Mapping[str, Decimal]] = None,
) -> Tuple[List[Dict[str, Any]], int]:
    """
    Variant rows for every product that passes the title filter.

    Returns:
        (rows, skipped_products)
    """
    rows: List[Dict[str, Any]] = []
    skipped = 0

    for product in products:
        if not is_quality_title(product.get("title")):
            skipped += 1
            logger.debug("Skipping product with low-quality title", product_id=product.get("id"), title=product.get("title"))
            continue
        for variant in product.get("variants") or []:
            try:
                rows.append(normalize_variant(product, variant, cost_ratio, unit_costs))
            except (KeyError, ValueError) as e:
                logger.warning(
                    "Skipping malformed variant",
                    product_id=product.get("id"),
                    variant_id=variant.get("id"),
                    error=str(e),
                )

    return rows, skipped


def hash_email(email: Optional[str]) -> Optional[str]:
    """SHA256 hex of the normalized email; the plaintext is never stored."""
    if not email or not email.strip():
        return None
    return hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()


def customer_id_of(order: Mapping[str, Any]) -> Optional[str]:
    """Remote customer id, absent for guest checkouts."""
    customer = order.get("customer") or {}
    return _id(customer.get("id"))


def normalize_order(order: Mapping[str, Any], is_returning: bool = False) -> Dict[str, Any]:
    """Build an orders row."""
    created_at = as_utc(order.get("created_at"))
    if created_at is None:
        raise ValueError(f"Order {order.get('id')} has no created_at")

    email = order.get("email") or (order.get("customer") or {}).get("email")

    return {
        "order_id": str(order["id"]),
        "order_number": _id(order.get("order_number") or order.get("name")),
        "customer_id": customer_id_of(order),
        "email_hash": hash_email(email),
        "total_price": to_decimal(order.get("total_price")) or Decimal("0"),
        "subtotal_price": to_decimal(order.get("subtotal_price")) or Decimal("0"),
        "total_tax": to_decimal(order.get("total_tax")) or Decimal("0"),
        "currency": order.get("currency"),
        "created_at": created_at,
        "is_returning_customer": is_returning,
        "synced_at": datetime.now(timezone.utc),
    }


def line_item_variant_id(order_id: str, item: Mapping[str, Any], position: int) -> str:
    """
    Variant id for a line item.

    Custom sales carry neither a variant nor a product id; they get an id
    unique to the order and cart position so (order, variant) stays unique.
    """
    variant_id = _id(item.get("variant_id"))
    if variant_id:
        return variant_id
    product_id = _id(item.get("product_id"))
    if product_id:
        return f"product-{product_id}"
    return f"custom-{order_id}-{position}"


def normalize_line_items(order_id: str, line_items: List[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """
    order_items rows for one order.

    Lines that share a variant are merged (quantities summed, first position
    kept) so there is one row per variant per order.
    """
    rows: Dict[str, Dict[str, Any]] = {}

    for position, item in enumerate(line_items, start=FIRST_POSITION):
        variant_id = line_item_variant_id(order_id, item, position)
        quantity = int(item.get("quantity") or 0)

        if variant_id in rows:
            rows[variant_id]["quantity"] += quantity
            continue

        rows[variant_id] = {
            "order_id": order_id,
            "variant_id": variant_id,
            "product_id": _id(item.get("product_id")),
            "title": item.get("title"),
            "variant_title": clean_variant_title(item.get("variant_title")),
            "quantity": quantity,
            "price": to_decimal(item.get("price")) or Decimal("0"),
            "position": position,
        }

    return list(rows.values())
