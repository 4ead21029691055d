import pytest

from farmvet.checkout.draft import (
    CartItem,
    ShippingInfo,
    build_draft,
    check_stock,
    compute_summary,
    normalize_phone,
    validate_shipping,
)
from farmvet.checkout.errors import CheckoutError, ErrorKind


def test_normalize_phone_keeps_digits_and_truncates():
    assert normalize_phone("010-1234-5678") == "01012345678"
    assert normalize_phone("0101234567899") == "01012345678"
    assert normalize_phone(None) == ""


def test_validate_shipping_reports_each_field():
    errors = validate_shipping(ShippingInfo(full_name="  ", phone="0201234567", address="", city=""))
    assert set(errors) == {"fullName", "phone", "address", "city"}


def test_validate_shipping_accepts_egyptian_mobile(valid_shipping):
    assert validate_shipping(ShippingInfo.model_validate(valid_shipping)) == {}


def test_compute_summary_adds_shipping_only_when_cart_has_items():
    items = [CartItem(id="a", price=50, quantity=2)]
    summary = compute_summary(items, shipping_fee=50)
    assert (summary.subtotal, summary.shipping, summary.total) == (100.0, 50.0, 150.0)

    empty = compute_summary([], shipping_fee=50)
    assert (empty.subtotal, empty.shipping, empty.total) == (0.0, 0.0, 0.0)


def test_cart_item_accepts_storefront_keys():
    item = CartItem.model_validate({"id": 7, "title": "Vaccin", "imageUrl": "https://img/x.png", "price": 12.5, "quantity": 3})
    assert item.id == "7"
    assert item.name == "Vaccin"
    assert item.thumbnail_url == "https://img/x.png"
    assert item.line_total == 37.5


def test_check_stock_flags_lines_over_stock():
    items = [CartItem(id="a", quantity=3, stock=2), CartItem(id="b", quantity=1, stock=5), CartItem(id="c", quantity=9)]
    assert check_stock(items) == ["a"]


def test_build_draft_recomputes_summary_and_user(valid_shipping):
    user = {"id": "u1", "email": "u1@example.com", "metadata": {"full_name": "U One"}}
    draft = build_draft([{"id": "p1", "name": "Feed", "price": 50, "quantity": 2}], valid_shipping, user, shipping_fee=50)
    assert draft.summary.total == 150.0
    assert draft.user_id == "u1"
    assert draft.user_name == "U One"
    assert draft.shipping.phone == "01012345678"


def test_build_draft_empty_cart_is_validation_error(valid_shipping):
    with pytest.raises(CheckoutError) as exc:
        build_draft([], valid_shipping)
    assert exc.value.kind == ErrorKind.VALIDATION
    assert exc.value.message == "Votre panier est vide"


def test_build_draft_invalid_shipping_lists_fields():
    with pytest.raises(CheckoutError) as exc:
        build_draft([{"id": "p1", "price": 10}], {"fullName": "A", "phone": "123", "address": "x", "city": "y"})
    assert exc.value.kind == ErrorKind.VALIDATION
    assert "phone" in exc.value.payload["fields"]


def test_build_draft_rejects_negative_price(valid_shipping):
    with pytest.raises(CheckoutError) as exc:
        build_draft([{"id": "p1", "price": -1}], valid_shipping)
    assert exc.value.status_code == 400
    assert "fields" in exc.value.payload


def test_build_draft_rejects_quantity_over_stock(valid_shipping):
    with pytest.raises(CheckoutError) as exc:
        build_draft([{"id": "p1", "price": 10, "quantity": 4, "stock": 2}], valid_shipping)
    assert exc.value.payload == {"items": ["p1"]}
