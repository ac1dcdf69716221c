"""Pydantic models for cart contents and totals."""
from pydantic import BaseModel, ConfigDict, Field

from ..gst import DEFAULT_GST_RATE, GSTAmounts, calculate_gst


class CartItem(BaseModel):
    """One cart line, as captured when the product was added."""
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias="productId")
    variant_sku: str | None = Field(default=None, alias="variantSku")
    size: str | None = None
    color: str | None = None
    quantity: int = Field(default=1, ge=1)
    price: float = Field(ge=0)  # unit selling price, GST-inclusive
    mrp: float | None = None
    gst_rate: float | None = Field(default=None, alias="gstRate")
    name: str = ""
    image: str | None = None

    def resolved_sku(self) -> str:
        """The variant SKU, synthesized from product/size/color when missing."""
        if self.variant_sku:
            return self.variant_sku
        return f"{self.product_id}-{self.size or 'default'}-{self.color or 'default'}"

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


class CartSnapshot(BaseModel):
    """Read-only view of the cart consumed by checkout."""
    model_config = ConfigDict(frozen=True)

    items: tuple[CartItem, ...] = ()
    coupon_code: str | None = None
    discount: float = 0.0
    shipping_cost: float = 0.0

    @property
    def subtotal(self) -> float:
        return round(sum(item.line_total for item in self.items), 2)

    @property
    def applied_discount(self) -> float:
        """The coupon discount, capped at the current subtotal."""
        return round(min(self.discount, self.subtotal), 2)

    @property
    def total(self) -> float:
        return round(self.subtotal - self.applied_discount + self.shipping_cost, 2)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def gst_totals(self, default_rate: float = DEFAULT_GST_RATE) -> GSTAmounts:
        """Display-only CGST/SGST split of the (GST-inclusive) line totals."""
        taxable = cgst = sgst = 0.0
        for item in self.items:
            amounts = calculate_gst(item.line_total, item.gst_rate, default=default_rate)
            taxable += amounts.taxable_amount
            cgst += amounts.cgst
            sgst += amounts.sgst
        return GSTAmounts(
            taxable_amount=round(taxable, 2),
            cgst=round(cgst, 2),
            sgst=round(sgst, 2),
            total_gst=round(cgst + sgst, 2),
        )

    def summary(self, default_rate: float = DEFAULT_GST_RATE) -> dict:
        gst = self.gst_totals(default_rate)
        return {
            "items": [
                {
                    "product_id": item.product_id,
                    "sku": item.resolved_sku(),
                    "name": item.name,
                    "quantity": item.quantity,
                    "price": item.price,
                    "line_total": round(item.line_total, 2),
                }
                for item in self.items
            ],
            "subtotal": self.subtotal,
            "coupon_code": self.coupon_code,
            "discount": self.applied_discount,
            "shipping_cost": self.shipping_cost,
            "total": self.total,
            "gst": {"cgst": gst.cgst, "sgst": gst.sgst, "total": gst.total_gst},
        }
