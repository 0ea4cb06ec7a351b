import pytest

from core.audit import AuditAction
from core.db import models
from core.db.repositories import audits as audit_repo
from core.db.repositories import orders as order_repo
from core.services.fulfillment_service import (
    FulfillmentService,
    country_code,
    items_from_metadata,
    map_order_to_gelato,
    print_url_for,
    product_uid_for,
)
from core.services.gelato_client import GelatoError
from core.utils.feature_flags import refresh_feature_flag_cache


class FakeGelatoClient:
    def __init__(self, response=None, error=None):
        self.response = response or {"id": "gelato-001", "fulfillmentStatus": "created"}
        self.error = error
        self.orders = []

    def create_order(self, order_data):
        self.orders.append(order_data)
        if self.error:
            raise self.error
        return self.response


@pytest.fixture
def gelato():
    return FakeGelatoClient()


@pytest.fixture
def service(db_session, gelato):
    return FulfillmentService(db_session, client=gelato)


def test_country_code_mapping():
    assert country_code("United Kingdom") == "GB"
    assert country_code("Germany") == "DE"
    assert country_code("US") == "US"
    assert country_code("Atlantis") == "GB"
    assert country_code(None) == "GB"


def test_product_uid_prefers_sku_then_medium():
    assert product_uid_for({"gelato_sku": "custom-uid"}) == "custom-uid"
    assert product_uid_for({"medium": "Acrylic"}) == "acrylic-prints_acrylic-print-3mm"
    assert product_uid_for({"medium": "Velvet"}).startswith("premium-canvas-prints")
    assert product_uid_for({}).startswith("premium-canvas-prints")


def test_print_url_resolution_order(make_image, monkeypatch):
    with_variant = make_image(image_variants={"original": {"url": "https://cdn.pawtraits.test/full.jpg"}})
    with_public_id = make_image(cloudinary_public_id="pets/rex")
    bare = make_image(public_url=None)

    assert print_url_for(with_variant) == "https://cdn.pawtraits.test/full.jpg"
    assert print_url_for(with_public_id) == "https://cdn.pawtraits.test/rex.jpg"
    monkeypatch.setenv("CLOUDINARY_CLOUD_NAME", "pawcloud")
    assert print_url_for(with_public_id) == "https://res.cloudinary.com/pawcloud/image/upload/pets/rex"
    assert print_url_for(bare) is None
    assert print_url_for(None) is None


def test_items_from_metadata_reads_numbered_slots():
    items = items_from_metadata({
        "item1_id": "img-1",
        "item1_qty": "2",
        "item1_unit_price": "2500",
        "item1_medium": "Metal",
        "item3_id": "img-3",
        "item3_title": "Bella",
    })

    assert [item["image_id"] for item in items] == ["img-1", "img-3"]
    assert items[0]["quantity"] == 2
    assert items[0]["unit_price"] == 2500
    assert items[0]["original_price"] == 2500
    assert items[0]["medium"] == "Metal"
    assert items[1]["title"] == "Bella"
    assert items[1]["quantity"] == 1
    assert items[1]["width_cm"] == 30


def test_map_order_to_gelato_partner_client_order(make_order):
    order = make_order(order_number="PW-100")
    items = [{"quantity": 2, "print_url": "https://cdn/x.jpg", "medium": "Paper"}]
    metadata = {
        "isPartnerOrder": "true",
        "partnerDiscount": "15",
        "businessName": "Happy Paws",
        "isForClient": "true",
        "clientName": "Alex",
        "clientEmail": "alex@example.com",
    }

    payload = map_order_to_gelato(order, items, metadata)

    assert payload["orderReferenceId"] == "PW-100"
    assert payload["customerReferenceId"] == order.customer_email
    assert payload["orderType"] == "order"
    assert payload["shippingAddress"]["country"] == "GB"
    assert payload["shippingAddress"]["postCode"] == "N1 1AA"
    assert payload["items"] == [{
        "itemReferenceId": "PW-100-1",
        "productUid": "premium-posters_premium-poster-portrait-210gsm",
        "files": [{"type": "default", "url": "https://cdn/x.jpg"}],
        "quantity": 2,
    }]
    assert payload["metadata"]["isPartnerOrder"] is True
    assert payload["metadata"]["businessName"] == "Happy Paws"
    assert payload["metadata"]["clientEmail"] == "alex@example.com"


def test_map_order_to_gelato_customer_order_has_no_partner_fields(make_order):
    payload = map_order_to_gelato(make_order(), [], {})

    assert payload["metadata"]["isPartnerOrder"] is False
    assert "businessName" not in payload["metadata"]


def test_dispatch_from_cart(service, gelato, db_session, make_order, make_profile, make_image):
    image = make_image()
    profile = make_profile()
    db_session.add(models.CartItem(
        user_profile_id=profile.id,
        product_id="prod-1",
        image_id=image.id,
        image_title="Rex",
        quantity=1,
        price_pence=4500,
        product_data={"gelato_sku": "canvas-30x30", "medium": {"name": "Canvas"}, "width_cm": 30, "height_cm": 30},
    ))
    db_session.commit()
    order = make_order(customer_email=profile.email)

    result = service.dispatch_order(order, 5000, {})

    assert result == {"id": "gelato-001", "fulfillmentStatus": "created"}
    assert gelato.orders[0]["items"][0]["productUid"] == "canvas-30x30"
    assert gelato.orders[0]["items"][0]["files"][0]["url"] == "https://cdn.pawtraits.test/rex.jpg"
    db_session.refresh(order)
    assert order.gelato_order_id == "gelato-001"
    assert order.gelato_status == "created"
    assert order.status == "confirmed"
    rows = order_repo.list_order_items(db_session, order.id)
    assert len(rows) == 1
    assert rows[0].unit_price == 4500
    assert rows[0].image_id == image.id
    assert rows[0].product_data["medium"] == "Canvas"
    audits = audit_repo.get_audit_logs(db_session, target_type="order", target_id=order.id)
    assert audits[0].action_type == AuditAction.FULFILLMENT_DISPATCH.value


def test_dispatch_from_metadata_splits_missing_prices(service, db_session, make_order, make_image):
    first = make_image()
    second = make_image()
    order = make_order()
    metadata = {"item1_id": str(first.id), "item1_qty": "1", "item2_id": str(second.id), "item2_qty": "2"}

    service.dispatch_order(order, 4500, metadata)

    rows = order_repo.list_order_items(db_session, order.id)
    assert sorted(row.quantity for row in rows) == [1, 2]
    assert {row.unit_price for row in rows} == {1500}
    assert sorted(row.total_price for row in rows) == [1500, 3000]


def test_dispatch_without_items_is_skipped(service, gelato, make_order):
    assert service.dispatch_order(make_order(), 5000, {}) is None
    assert gelato.orders == []


def test_dispatch_missing_image_marks_fulfillment_error(service, gelato, db_session, make_order):
    order = make_order()

    result = service.dispatch_order(order, 5000, {"item1_id": "00000000-0000-0000-0000-000000000000"})

    assert result is None
    assert gelato.orders == []
    db_session.refresh(order)
    assert order.status == "fulfillment_error"
    assert "No printable image" in order.error_message
    audits = audit_repo.get_audit_logs(db_session, action_type=AuditAction.FULFILLMENT_FAILED.value)
    assert audits[0].status == "failure"


def test_dispatch_gelato_rejection_marks_fulfillment_error(db_session, make_order, make_image):
    image = make_image()
    order = make_order()
    client = FakeGelatoClient(error=GelatoError("Gelato order creation failed: 400 Bad Request", status_code=400))

    result = FulfillmentService(db_session, client=client).dispatch_order(order, 5000, {"item1_id": str(image.id)})

    assert result is None
    db_session.refresh(order)
    assert order.status == "fulfillment_error"
    assert order.gelato_order_id is None
    assert order_repo.list_order_items(db_session, order.id) == []


def test_order_item_failure_keeps_dispatched_order(service, gelato, db_session, make_order, make_image, monkeypatch):
    image = make_image()
    order = make_order()

    def fail_items(*args, **kwargs):
        raise RuntimeError("order_items insert failed")

    monkeypatch.setattr(order_repo, "create_order_items", fail_items)

    result = service.dispatch_order(order, 5000, {"item1_id": str(image.id)})

    assert result == gelato.response
    db_session.refresh(order)
    assert order.status == "confirmed"
    assert order.gelato_order_id == "gelato-001"
    assert order.error_message is None
    assert audit_repo.get_audit_logs(db_session, action_type=AuditAction.FULFILLMENT_FAILED.value) == []


def test_dispatch_disabled_by_flag(service, gelato, make_order, make_image, monkeypatch):
    image = make_image()
    monkeypatch.setenv("FEATURE_FULFILLMENT_ENABLED", "false")
    refresh_feature_flag_cache()

    assert service.dispatch_order(make_order(), 5000, {"item1_id": str(image.id)}) is None
    assert gelato.orders == []
