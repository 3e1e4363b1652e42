"""
Guest cart

The storefront keeps the cart in the browser; this is the same behavior on
the server side so checkout totals can be quoted from live catalog prices.
"""

from typing import Any, Dict, List, Optional

HOME_DELIVERY = "home"
PICKUP = "pickup"
DELIVERY_METHODS = (HOME_DELIVERY, PICKUP)


class Cart:
    def __init__(self):
        self.lines: List[Dict[str, Any]] = []

    def _find(self, product_id: str) -> Optional[Dict[str, Any]]:
        for line in self.lines:
            if line["product"]["id"] == product_id:
                return line
        return None

    def add(self, product: Dict[str, Any], quantity: int = 1) -> None:
        """Add a product snapshot; a product already in the cart gets its quantity bumped."""
        line = self._find(product["id"])
        if line:
            line["quantity"] += quantity
        else:
            self.lines.append({"product": dict(product), "quantity": quantity})
        line = self._find(product["id"])
        if line["quantity"] <= 0:
            self.remove(product["id"])

    def update_quantity(self, product_id: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove(product_id)
            return
        line = self._find(product_id)
        if line:
            line["quantity"] = quantity

    def remove(self, product_id: str) -> None:
        self.lines = [line for line in self.lines if line["product"]["id"] != product_id]

    def clear(self) -> None:
        self.lines = []

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def item_count(self) -> int:
        return sum(line["quantity"] for line in self.lines)

    @property
    def subtotal(self) -> float:
        return sum(float(line["product"].get("price", 0)) * line["quantity"] for line in self.lines)

    def order_items(self) -> List[Dict[str, Any]]:
        items = []
        for line in self.lines:
            product = line["product"]
            price = float(product.get("price", 0))
            items.append({
                "productId": product["id"],
                "name": product.get("name"),
                "size_volume": product.get("size_volume"),
                "quantity": line["quantity"],
                "price": price,
                "total": price * line["quantity"],
            })
        return items

    def order_draft(self, delivery_method: str, delivery_fee: float) -> Dict[str, Any]:
        """Items and totals in the shape the storefront sends as Paystack metadata."""
        fee = 0.0 if delivery_method == PICKUP else float(delivery_fee)
        subtotal = self.subtotal
        return {
            "items": self.order_items(),
            "totals": {"subtotal": subtotal, "deliveryFee": fee, "total": subtotal + fee},
        }
