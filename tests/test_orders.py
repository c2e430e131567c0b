"""Tests for cart handling, checkout and purchase history."""

import pytest
from bson import ObjectId

import orders
from errors import ApiError


class TestPurchaseHistory:
    def test_has_purchased(self, db, seed):
        assert orders.has_purchased(db, seed.alice["_id"], seed.oxford["_id"]) is True
        assert orders.has_purchased(db, seed.alice["_id"], seed.linen["_id"]) is False
        assert orders.has_purchased(db, seed.bob["_id"], seed.oxford["_id"]) is False


class TestCart:
    def test_add_merges_quantity(self, db, seed, bob):
        first = orders.add_to_cart(db, bob, str(seed.linen["_id"]), 1)
        second = orders.add_to_cart(db, bob, str(seed.linen["_id"]), 2)
        assert first["status"] == "added"
        assert second == {"status": "updated", "id": first["id"]}
        cart = orders.get_cart(db, bob)
        assert len(cart) == 1
        assert cart[0]["quantity"] == 3
        assert cart[0]["product"]["name"] == "Linen Shirt"

    def test_add_inactive_product(self, db, seed, bob):
        with pytest.raises(ApiError) as exc:
            orders.add_to_cart(db, bob, str(seed.retired["_id"]), 1)
        assert exc.value.code == "PRODUCT_INACTIVE"

    def test_add_unknown_product(self, db, seed, bob):
        with pytest.raises(ApiError) as exc:
            orders.add_to_cart(db, bob, str(ObjectId()), 1)
        assert exc.value.code == "PRODUCT_NOT_FOUND"

    def test_carts_are_per_user(self, db, seed, alice, bob):
        orders.add_to_cart(db, bob, str(seed.linen["_id"]), 1)
        assert orders.get_cart(db, alice) == []

    def test_remove_only_own_items(self, db, seed, alice, bob):
        added = orders.add_to_cart(db, bob, str(seed.linen["_id"]), 1)
        with pytest.raises(ApiError) as exc:
            orders.remove_from_cart(db, alice, added["id"])
        assert exc.value.code == "ITEM_NOT_FOUND"
        assert orders.remove_from_cart(db, bob, added["id"]) == {"status": "removed"}
        assert orders.get_cart(db, bob) == []


class TestCheckout:
    def test_empty_cart(self, db, seed, bob, settings):
        with pytest.raises(ApiError) as exc:
            orders.checkout(db, bob, settings)
        assert exc.value.code == "CART_EMPTY"

    def test_places_order_and_reserves_stock(self, db, seed, bob, settings):
        orders.add_to_cart(db, bob, str(seed.linen["_id"]), 2)
        orders.add_to_cart(db, bob, str(seed.sneaker["_id"]), 1)
        result = orders.checkout(db, bob, settings)

        assert result["subtotal"] == 167.0
        assert result["tax"] == 13.36
        assert result["total"] == 180.36
        linen = db["product"].find_one({"_id": seed.linen["_id"]})
        assert linen["stock"] == 8
        assert linen["sold"] == 2
        assert orders.get_cart(db, bob) == []
        assert orders.has_purchased(db, seed.bob["_id"], seed.sneaker["_id"]) is True

    def test_insufficient_stock_rolls_back(self, db, seed, bob, settings):
        orders.add_to_cart(db, bob, str(seed.linen["_id"]), 2)
        orders.add_to_cart(db, bob, str(seed.sneaker["_id"]), 5)
        with pytest.raises(ApiError) as exc:
            orders.checkout(db, bob, settings)
        assert exc.value.code == "INSUFFICIENT_STOCK"
        assert exc.value.details[0]["productId"] == str(seed.sneaker["_id"])

        linen = db["product"].find_one({"_id": seed.linen["_id"]})
        assert linen["stock"] == 10
        assert linen["sold"] == 0
        assert db["order"].count_documents({"user": seed.bob["_id"]}) == 0
        assert len(orders.get_cart(db, bob)) == 2

    def test_product_deactivated_after_adding(self, db, seed, bob, settings):
        orders.add_to_cart(db, bob, str(seed.linen["_id"]), 1)
        db["product"].update_one({"_id": seed.linen["_id"]}, {"$set": {"is_active": False}})
        with pytest.raises(ApiError) as exc:
            orders.checkout(db, bob, settings)
        assert exc.value.details[0]["reason"] == "unavailable"
