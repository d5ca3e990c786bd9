from app.pdv.core.deps import get_fiscal, get_payment_capture
from app.pdv.core.error_catalog import ErrorCatalog
from tests.fakes import RecordingPaymentCapture, StubFiscal
from tests.pdv_helpers import auth, create_customer, create_operator, create_product, login, operator_with_session


def _sale_payload(product, qty=2, payments=None, **extra):
    payload = {
        "lines": [{"product_id": str(product.id), "qty": qty}],
        "payments": payments if payments is not None else [{"method": "cash", "received_amount": "10.00"}],
    }
    payload.update(extra)
    return payload


def test_quote_computes_totals_and_change(client, db_session):
    _operator, token, _session = operator_with_session(client, db_session, suffix="quote")
    product = create_product(db_session, sku="Q-1", price="3.50")

    response = client.post("/pdv/sales/quote", headers=auth(token), json=_sale_payload(product))

    assert response.status_code == 200
    body = response.json()
    assert body["subtotal"] == "7.00"
    assert body["total"] == "7.00"
    assert body["change"] == "3.00"
    assert body["can_complete"] is True
    assert body["tenders"] == [
        {
            "method": "cash",
            "amount": "7.00",
            "received_amount": "10.00",
            "change_amount": "3.00",
            "transaction_id": None,
            "authorization_code": None,
        }
    ]


def test_quote_clamps_percentage_discount(client, db_session):
    _operator, token, _session = operator_with_session(client, db_session, suffix="quote-clamp")
    product = create_product(db_session, sku="Q-2", price="100.00")

    response = client.post(
        "/pdv/sales/quote",
        headers=auth(token),
        json=_sale_payload(product, qty=1, payments=[], discount={"kind": "percentage", "value": "110"}),
    )

    assert response.status_code == 200
    assert response.json()["discount_amount"] == "100.00"
    assert response.json()["total"] == "0.00"


def test_complete_and_fetch_sale(client, db_session):
    _operator, token, session = operator_with_session(client, db_session, suffix="complete")
    product = create_product(db_session, sku="S-1", price="3.50", stock=5)

    created = client.post("/pdv/sales", headers=auth(token), json=_sale_payload(product))

    assert created.status_code == 201
    body = created.json()
    assert body["warnings"] == []
    sale = body["sale"]
    assert sale["status"] == "completed"
    assert sale["cashier_session_id"] == session["id"]
    assert sale["change_amount"] == "3.00"
    assert sale["fiscal_document_type"] == "none"
    assert [line["quantity"] for line in sale["lines"]] == [2]

    fetched = client.get(f"/pdv/sales/{sale['id']}", headers=auth(token))
    assert fetched.status_code == 200
    assert fetched.json()["total"] == "7.00"


def test_complete_without_session_fails(client, db_session):
    operator = create_operator(db_session, suffix="complete-nosession")
    token = login(client, operator.username)
    product = create_product(db_session, sku="S-2", price="1.00")

    response = client.post("/pdv/sales", headers=auth(token), json=_sale_payload(product, qty=1))

    assert response.status_code == 422
    assert response.json()["code"] == ErrorCatalog.CASHIER_SESSION_NOT_OPEN.code


def test_complete_empty_cart_and_insufficient_payment(client, db_session):
    _operator, token, _session = operator_with_session(client, db_session, suffix="complete-empty")
    product = create_product(db_session, sku="S-3", price="30.00")

    empty = client.post("/pdv/sales", headers=auth(token), json={"lines": [], "payments": []})
    assert empty.status_code == 422
    assert empty.json()["code"] == ErrorCatalog.CART_EMPTY.code

    short = client.post("/pdv/sales", headers=auth(token), json=_sale_payload(product, qty=1))
    assert short.status_code == 422
    assert short.json()["code"] == ErrorCatalog.PAYMENT_INSUFFICIENT.code


def test_stock_shortfall_is_reported(client, db_session):
    _operator, token, _session = operator_with_session(client, db_session, suffix="complete-stock")
    product = create_product(db_session, sku="S-4", price="1.00", stock=1)

    response = client.post("/pdv/sales", headers=auth(token), json=_sale_payload(product, qty=3))

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == ErrorCatalog.STOCK_INSUFFICIENT.code
    assert body["kind"] == "dependency"
    assert body["details"]["items"][0]["product_id"] == str(product.id)


def test_unknown_product_and_customer(client, db_session):
    _operator, token, _session = operator_with_session(client, db_session, suffix="complete-unknown")
    product = create_product(db_session, sku="S-5", price="1.00")

    missing_product = client.post(
        "/pdv/sales/quote",
        headers=auth(token),
        json={"lines": [{"product_id": "00000000-0000-0000-0000-000000000001", "qty": 1}]},
    )
    assert missing_product.status_code == 404
    assert missing_product.json()["code"] == ErrorCatalog.PRODUCT_NOT_FOUND.code

    missing_customer = client.post(
        "/pdv/sales/quote",
        headers=auth(token),
        json=_sale_payload(product, customer_id="00000000-0000-0000-0000-000000000002"),
    )
    assert missing_customer.status_code == 404
    assert missing_customer.json()["code"] == ErrorCatalog.CUSTOMER_NOT_FOUND.code


def test_duplicate_cash_tender_rejected(client, db_session):
    _operator, token, _session = operator_with_session(client, db_session, suffix="dup-cash")
    product = create_product(db_session, sku="S-6", price="1.00")

    response = client.post(
        "/pdv/sales/quote",
        headers=auth(token),
        json=_sale_payload(product, qty=1, payments=[{"method": "cash"}, {"method": "cash"}]),
    )

    assert response.status_code == 409
    assert response.json()["code"] == ErrorCatalog.CASH_TENDER_DUPLICATE.code


def test_card_payment_is_captured_and_decline_surfaces(client, db_session):
    capture = RecordingPaymentCapture()
    client.app.dependency_overrides[get_payment_capture] = lambda: capture
    _operator, token, _session = operator_with_session(client, db_session, suffix="card")
    product = create_product(db_session, sku="S-7", price="10.00")

    ok = client.post(
        "/pdv/sales",
        headers=auth(token),
        json=_sale_payload(product, qty=1, payments=[{"method": "card_debit"}]),
    )
    assert ok.status_code == 201
    payment = ok.json()["sale"]["payments"][0]
    assert payment["method"] == "card_debit"
    assert payment["amount"] == "10.00"
    assert payment["transaction_id"] == "TX-1"

    capture.decline_methods.add("pix")
    declined = client.post(
        "/pdv/sales",
        headers=auth(token),
        json=_sale_payload(product, qty=1, payments=[{"method": "pix", "amount": "10.00"}]),
    )
    assert declined.status_code == 402
    assert declined.json()["code"] == ErrorCatalog.PAYMENT_DECLINED.code
    client.app.dependency_overrides.clear()


def test_fiscal_failure_completes_with_warning(client, db_session):
    client.app.dependency_overrides[get_fiscal] = lambda: StubFiscal(fail_issue=True)
    _operator, token, _session = operator_with_session(client, db_session, suffix="fiscal")
    product = create_product(db_session, sku="S-8", price="3.50")

    response = client.post("/pdv/sales", headers=auth(token), json=_sale_payload(product, fiscal_document_type="nfce"))

    assert response.status_code == 201
    body = response.json()
    assert body["sale"]["status"] == "completed"
    assert body["sale"]["fiscal_document_status"] == "pending"
    assert [warning["step"] for warning in body["warnings"]] == ["fiscal"]
    client.app.dependency_overrides.clear()


def test_cancel_sale_round_trip(client, db_session):
    _operator, token, _session = operator_with_session(client, db_session, suffix="cancel-api")
    product = create_product(db_session, sku="S-9", price="3.50", stock=5)
    customer = create_customer(db_session, name="Dani")
    sale = client.post(
        "/pdv/sales",
        headers=auth(token),
        json=_sale_payload(product, customer_id=str(customer.id)),
    ).json()["sale"]

    cancelled = client.post(f"/pdv/sales/{sale['id']}/cancel", headers=auth(token), json={"reason": "wrong size"})

    assert cancelled.status_code == 200
    assert cancelled.json()["sale"]["status"] == "cancelled"
    assert cancelled.json()["warnings"] == []

    summary = client.get("/pdv/cashier/session/summary", headers=auth(token)).json()
    assert summary["expected_cash_amount"] == "50.00"
    assert summary["refunds"] == "7.00"
    assert summary["sales_count"] == 0

    again = client.post(f"/pdv/sales/{sale['id']}/cancel", headers=auth(token), json={"reason": "again"})
    assert again.status_code == 409
    assert again.json()["code"] == ErrorCatalog.SALE_ALREADY_CANCELLED.code


def test_unknown_sale(client, db_session):
    _operator, token, _session = operator_with_session(client, db_session, suffix="unknown-sale")

    response = client.get("/pdv/sales/00000000-0000-0000-0000-0000000000ff", headers=auth(token))

    assert response.status_code == 404
    assert response.json()["code"] == ErrorCatalog.SALE_NOT_FOUND.code
