from cart import Cart

STILL = {"id": "p1", "name": "Still Water", "size_volume": "75cl", "price": 1500}
SPARKLING = {"id": "p2", "name": "Sparkling", "size_volume": "50cl", "price": "2500"}


def test_add_merges_by_product_id():
    cart = Cart()
    cart.add(STILL)
    cart.add(SPARKLING, 2)
    cart.add(STILL, 3)
    assert [(line["product"]["id"], line["quantity"]) for line in cart.lines] == [("p1", 4), ("p2", 2)]
    assert cart.item_count == 6
    assert cart.subtotal == 4 * 1500 + 2 * 2500


def test_update_quantity_to_zero_removes_line():
    cart = Cart()
    cart.add(STILL, 2)
    cart.add(SPARKLING)
    cart.update_quantity("p1", 5)
    assert cart.lines[0]["quantity"] == 5
    cart.update_quantity("p1", 0)
    assert [line["product"]["id"] for line in cart.lines] == ["p2"]
    cart.update_quantity("p2", -1)
    assert cart.is_empty


def test_remove_and_clear():
    cart = Cart()
    cart.add(STILL)
    cart.add(SPARKLING)
    cart.remove("p1")
    assert cart.item_count == 1
    cart.clear()
    assert cart.is_empty
    assert cart.subtotal == 0


def test_order_draft_totals():
    cart = Cart()
    cart.add(STILL, 2)
    home = cart.order_draft("home", 2000)
    assert home["totals"] == {"subtotal": 3000.0, "deliveryFee": 2000.0, "total": 5000.0}
    assert home["items"][0] == {"productId": "p1", "name": "Still Water", "size_volume": "75cl", "quantity": 2, "price": 1500.0, "total": 3000.0}
    assert cart.order_draft("pickup", 2000)["totals"]["total"] == 3000.0
