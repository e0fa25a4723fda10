import threading
from decimal import Decimal

import pytest

from salon_booking.cart import CartStore, ItemType, SchedulingChoice


def test_add_item_merges_same_source_and_type(make_item):
    cart = CartStore()
    first = cart.add_item(make_item(source_id="svc-1", quantity=1))
    merged = cart.add_item(make_item(source_id="svc-1", quantity=2))

    assert merged.id == first.id
    assert merged.quantity == 3
    assert len(cart.items()) == 1


def test_same_source_with_other_type_is_a_new_line(make_item):
    cart = CartStore()
    cart.add_item(make_item(source_id="x", item_type=ItemType.SERVICE))
    cart.add_item(make_item(source_id="x", item_type=ItemType.PRODUCT))
    assert len(cart.items()) == 2


def test_find_item_and_gift_lines_return_copies(make_item):
    cart = CartStore()
    gift = cart.add_item(make_item(source_id="svc-1", is_gift=True))
    cart.add_item(make_item(source_id="p-1", item_type=ItemType.PRODUCT))

    found = cart.find_item("svc-1", ItemType.SERVICE)
    assert found.id == gift.id
    assert cart.find_item("svc-1", ItemType.PRODUCT) is None

    gifts = cart.get_gift_items()
    assert [g.id for g in gifts] == [gift.id]
    gifts[0].quantity = 9
    assert cart.get_item(gift.id).quantity == 1


def test_total_is_sum_of_lines(make_item):
    cart = CartStore()
    cart.add_item(make_item(source_id="a", unit_price="19.99", quantity=2))
    cart.add_item(make_item(source_id="b", unit_price="5.01", item_type=ItemType.PRODUCT))
    assert cart.get_total() == Decimal("44.99")
    assert cart.get_item_count() == 3


def test_update_quantity_to_zero_removes_line(make_item):
    cart = CartStore()
    item = cart.add_item(make_item())
    assert cart.update_item(item.id, {"quantity": 0}) is None
    assert cart.is_empty()


def test_update_quantity_negative_delta_removes_line(make_item):
    cart = CartStore()
    item = cart.add_item(make_item(quantity=2))
    assert cart.update_quantity(item.id, -1).quantity == 1
    assert cart.update_quantity(item.id, -1) is None
    assert cart.get_total() == Decimal("0.00")


def test_update_item_ignores_identity_fields(make_item):
    cart = CartStore()
    item = cart.add_item(make_item(source_id="svc-1"))
    updated = cart.update_item(item.id, {"source_id": "other", "id": "hack", "is_gift": True})
    assert updated.id == item.id
    assert updated.source_id == "svc-1"
    assert updated.is_gift is True


def test_update_unknown_item_raises(make_item):
    cart = CartStore()
    with pytest.raises(KeyError):
        cart.update_item("missing", {"quantity": 2})


def test_remove_and_clear(make_item):
    cart = CartStore()
    item = cart.add_item(make_item(source_id="a"))
    cart.add_item(make_item(source_id="b"))
    assert cart.remove_item(item.id) is True
    assert cart.remove_item(item.id) is False
    cart.clear()
    assert cart.is_empty()


def test_total_duration_skips_products_and_unscheduled(make_item):
    cart = CartStore()
    cart.add_item(make_item(source_id="a", duration_minutes=45))
    cart.add_item(make_item(source_id="b", duration_minutes=30, scheduling_choice=SchedulingChoice.LEAVE_UNSCHEDULED))
    cart.add_item(make_item(source_id="p", item_type=ItemType.PRODUCT))
    assert cart.get_total_duration_minutes() == 45


def test_items_are_copies(make_item):
    cart = CartStore()
    cart.add_item(make_item())
    snapshot = cart.items()
    snapshot[0].quantity = 99
    assert cart.items()[0].quantity == 1


def test_fingerprint_changes_with_content(make_item):
    cart = CartStore()
    cart.add_item(make_item())
    before = cart.fingerprint()
    cart.add_item(make_item())
    assert cart.fingerprint() != before


def test_concurrent_adds_keep_total_consistent(make_item):
    cart = CartStore()

    def worker():
        for _ in range(50):
            cart.add_item(make_item(source_id="svc-1", unit_price="1"))

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert cart.get_item_count() == 200
    assert cart.get_total() == Decimal("200.00")
