from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Union

from ageless.models_sqlalchemy.models import Book, Product
from ageless.utils.money import quantize


@dataclass
class LineItem:
    """A purchasable line as seen by pricing, coupons and checkout."""

    title: str
    unit_price: Decimal
    quantity: int = 1
    vendor_id: Optional[str] = None
    book_id: Optional[str] = None
    product_id: Optional[str] = None
    category_ids: List[str] = field(default_factory=list)

    @property
    def subtotal(self) -> Decimal:
        return quantize(self.unit_price * self.quantity)

    @property
    def item_type(self) -> str:
        return "book" if self.book_id else "product"


def effective_price(item: Union[Book, Product]) -> Decimal:
    if item.sale_price is not None and item.sale_price > 0:
        return quantize(item.sale_price)
    return quantize(item.price)


def line_item_for(item: Union[Book, Product], quantity: int = 1) -> LineItem:
    is_book = isinstance(item, Book)
    return LineItem(
        title=item.title,
        unit_price=effective_price(item),
        quantity=quantity,
        vendor_id=item.vendor_id,
        book_id=item.id if is_book else None,
        product_id=None if is_book else item.id,
        category_ids=[c.id for c in (item.categories or [])],
    )


def items_subtotal(items: List[LineItem]) -> Decimal:
    return quantize(sum((i.subtotal for i in items), Decimal("0")))
