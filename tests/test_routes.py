"""JSON API: request checks, audit trail and advisory role headers."""

import threading
import time

import pytest

from tests.helpers import line


def post_entry(client, **overrides):
    body = {
        "vendorName": "Solar Parts India",
        "vendorAddress": "Jaipur",
        "vendorGstNo": "",
        "invoiceNumber": "INV-100",
        "invoiceDate": "2024-06-01",
        "projectId": "p1",
        "gstAvailable": False,
        "items": [line("540W Panel", 10, 12000)],
    }
    body.update(overrides)
    return client.post("/procurements/entries", json=body)


def test_index(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "ok"


def test_create_entry(client):
    resp = post_entry(client)
    assert resp.status_code == 201

    data = resp.get_json()
    assert data["entry"]["totalAmount"] == 120000
    assert data["entry"]["baseAmount"] == 120000
    assert data["entry"]["projectId"] == "p1"
    assert data["vendor"]["gstNo"] == "NA"
    assert data["entry"]["vendorId"] == data["vendor"]["id"]


def test_create_entry_with_gst(client):
    resp = post_entry(client, gstAvailable=True, cgst=10800, sgst=10800)
    assert resp.status_code == 201
    assert resp.get_json()["entry"]["totalAmount"] == 141600


def test_taxes_zeroed_without_gst(client):
    resp = post_entry(client, cgst=500)
    entry = resp.get_json()["entry"]
    assert (entry["cgst"], entry["totalAmount"]) == (0, 120000)


def test_same_vendor_reused_across_entries(client):
    first = post_entry(client).get_json()["vendor"]
    second = post_entry(client, vendorName=" solar parts INDIA ", vendorAddress="Jodhpur").get_json()["vendor"]

    assert second["id"] == first["id"]
    assert second["address"] == "Jodhpur"
    assert len(client.get("/procurements/vendors").get_json()["vendors"]) == 1


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"vendorName": "  "}, "Vendor name is required."),
        ({"invoiceNumber": ""}, "Invoice number is required."),
        ({"projectId": None}, "Please select a project."),
        ({"items": [line("", 5)]}, "Add at least one line item."),
        ({"items": [line("Inverter", -1)]}, "Quantity for 'Inverter' must be a non-negative number."),
        ({"items": [line("Inverter", 1, "abc")]}, "Unit price for 'Inverter' must be a non-negative number."),
    ],
)
def test_create_entry_rejects_bad_input(client, overrides, message):
    resp = post_entry(client, **overrides)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == message


def test_mismatched_total_creates_nothing(client):
    resp = post_entry(client, totalAmount=99999)
    assert resp.status_code == 400

    assert client.get("/procurements/vendors").get_json()["vendors"] == []
    assert client.get("/procurements/entries").get_json()["entries"] == []


def test_entry_detail_and_missing_entry(client):
    entry_id = post_entry(client).get_json()["entry"]["id"]

    detail = client.get(f"/procurements/entries/{entry_id}").get_json()
    assert detail["vendor"]["name"] == "Solar Parts India"
    assert detail["payments"] == []
    assert detail["balanceDue"] == 120000

    missing = client.get("/procurements/entries/nope")
    assert missing.status_code == 404
    assert missing.get_json() == {"error": "Entry not found."}


def test_payments_and_balance(client):
    entry_id = post_entry(client).get_json()["entry"]["id"]

    resp = client.post(f"/procurements/entries/{entry_id}/payments", json={"amount": "50000", "remarks": "advance"})
    assert resp.status_code == 201
    assert resp.get_json()["balanceDue"] == 70000

    bad = client.post(f"/procurements/entries/{entry_id}/payments", json={"amount": 0})
    assert bad.status_code == 400

    assert client.get(f"/procurements/entries/{entry_id}/balance").get_json()["balanceDue"] == 70000
    payments = client.get(f"/procurements/entries/{entry_id}/payments").get_json()["payments"]
    assert [p["remarks"] for p in payments] == ["advance"]

    rows = client.get("/procurements/entries?project_id=p1").get_json()["entries"]
    assert rows[0]["balanceDue"] == 70000

    summary = client.get("/procurements/summary").get_json()
    assert summary == {"entryCount": 1, "totalValue": 120000, "balanceDue": 70000}


def test_vendor_ledger_route(client):
    data = post_entry(client).get_json()
    vendor_id = data["vendor"]["id"]
    client.post(f"/procurements/entries/{data['entry']['id']}/payments", json={"amount": 20000})

    statement = client.get(f"/procurements/vendors/{vendor_id}/ledger").get_json()
    assert statement["grandTotal"] == 120000
    assert statement["grandPaid"] == 20000
    assert statement["grandBalance"] == 100000

    detail = client.get(f"/procurements/vendors/{vendor_id}").get_json()["vendor"]
    assert detail["stats"]["balance"] == 100000

    assert client.get("/procurements/vendors/nope/ledger").status_code == 404


def test_create_vendor_requires_name(client):
    assert client.post("/procurements/vendors", json={"name": ""}).status_code == 400

    resp = client.post("/procurements/vendors", json={"name": "Inverter Hub", "gstNo": "08abcde1234f1z5"})
    assert resp.get_json()["vendor"]["gstNo"] == "08ABCDE1234F1Z5"


def test_consumption_batch_is_all_or_nothing(client):
    post_entry(client, items=[line("540W Panel", 10, 12000), line("Inverter", 1, 55000, category="Inverter")])

    resp = client.post(
        "/stock/consumption",
        json={
            "projectId": "p1",
            "items": [
                {"itemName": "540W Panel", "quantityConsumed": 4},
                {"itemName": "Inverter", "quantityConsumed": 2},
            ],
        },
    )
    assert resp.status_code == 400
    assert resp.get_json()["error"] == 'Cannot consume 2 Nos of "Inverter"; only 1 in stock.'
    assert client.get("/stock/consumption").get_json()["records"] == []


def test_consumption_rows_summed_per_item(client):
    post_entry(client)

    resp = client.post(
        "/stock/consumption",
        json={
            "projectId": "p1",
            "items": [
                {"itemName": "540W Panel", "quantityConsumed": 6},
                {"itemName": "540w panel", "quantityConsumed": 5},
            ],
        },
    )
    assert resp.status_code == 400


def test_consumption_requires_a_quantity(client):
    post_entry(client)

    resp = client.post(
        "/stock/consumption",
        json={"projectId": "p1", "items": [{"itemName": "540W Panel", "quantityConsumed": 0}]},
    )
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Enter quantity consumed for at least one item."


def test_record_consumption(client):
    entry_id = post_entry(client).get_json()["entry"]["id"]

    resp = client.post(
        "/stock/consumption",
        headers={"X-Active-Role": "siteEngineer"},
        json={"projectId": "p1", "items": [{"itemName": "540w panel", "quantityConsumed": "4"}]},
    )
    assert resp.status_code == 201

    record = resp.get_json()["records"][0]
    assert record["itemName"] == "540W Panel"
    assert record["procurementEntryId"] == entry_id
    assert (record["category"], record["unit"]) == ("Solar Panel", "Nos")
    assert record["consumedBy"] == "siteEngineer"

    avail = client.get("/stock/availability", query_string={"item": "540W Panel"}).get_json()
    assert avail["available"] == 6

    rows = client.get("/stock/summary").get_json()["items"]
    assert (rows[0]["totalPurchased"], rows[0]["totalConsumed"], rows[0]["available"]) == (10, 4, 6)

    project = client.get("/stock/projects/p1").get_json()["items"]
    assert project[0]["stockAvailable"] == 6


def test_availability_requires_item(client):
    assert client.get("/stock/availability").status_code == 400


def test_role_gate_is_advisory(client):
    post_entry(client)

    resp = client.get("/procurements/entries", headers={"X-Active-Role": "siteEngineer"})
    assert resp.status_code == 200
    assert resp.headers["X-Access-Advisory"] == "restricted"
    assert len(resp.get_json()["entries"]) == 1

    resp = client.get("/procurements/entries", headers={"X-Active-Role": "procurement"})
    assert resp.headers["X-Access-Advisory"] == "allowed"

    resp = client.get("/stock/consumption", headers={"X-Active-Role": "procurement"})
    assert resp.headers["X-Access-Advisory"] == "restricted"


def test_session_defaults_to_owner(client):
    data = client.get("/admin/session", headers={"X-Active-Role": "intern"}).get_json()
    assert data["role"] == "owner"
    assert data["actor"] == "owner"
    assert data["capabilities"] == {"procurement": True, "vendor_ledger": True, "material_consumed": True}

    data = client.get("/admin/session", headers={"X-Active-Role": "admin", "X-User": "ravi"}).get_json()
    assert (data["role"], data["actor"]) == ("admin", "ravi")
    assert data["capabilities"]["procurement"] is False


def test_audit_log_newest_first(client):
    post_entry(client, vendorAddress="Jaipur", vendorGstNo="", items=[line("540W Panel", 1, 100)])
    post_entry(client, vendorAddress="Jodhpur", items=[line("540W Panel", 1, 100)])

    entries = client.get("/admin/audit-log").get_json()["entries"]
    assert [(e["entityType"], e["action"]) for e in entries] == [
        ("ProcurementEntry", "CREATE"),
        ("Vendor", "UPDATE"),
        ("ProcurementEntry", "CREATE"),
        ("Vendor", "CREATE"),
    ]
    assert entries[1]["before"]["address"] == "Jaipur"
    assert entries[1]["after"]["address"] == "Jodhpur"

    vendors_only = client.get("/admin/audit-log?entity_type=Vendor").get_json()["entries"]
    assert len(vendors_only) == 2


def test_unknown_route_is_json_404(client):
    resp = client.get("/no-such-page")
    assert resp.status_code == 404
    assert "error" in resp.get_json()


@pytest.mark.parametrize("flag", ["false", 0, None])
def test_gst_flag_must_be_boolean(client, flag):
    resp = post_entry(client, gstAvailable=flag, cgst=90)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "gstAvailable must be true or false."
    assert client.get("/procurements/entries").get_json()["entries"] == []


def run_concurrently(app, count, request):
    results = []

    def worker():
        results.append(request(app.test_client()))

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def test_concurrent_consumption_cannot_overdraw_stock(app, client, monkeypatch):
    post_entry(client)
    ledger = app.extensions["procurement_ledger"]
    check = ledger.get_stock_availability

    def slow_check(item_name):
        available = check(item_name)
        time.sleep(0.1)
        return available

    monkeypatch.setattr(ledger, "get_stock_availability", slow_check)

    codes = run_concurrently(
        app,
        2,
        lambda c: c.post(
            "/stock/consumption",
            json={"projectId": "p1", "items": [{"itemName": "540W Panel", "quantityConsumed": 6}]},
        ).status_code,
    )

    assert sorted(codes) == [201, 400]
    assert sum(m.quantity_consumed for m in ledger.get_material_consumed()) == 6


def test_concurrent_vendor_creates_audit_one_create(app, client, monkeypatch):
    ledger = app.extensions["procurement_ledger"]
    lookup = ledger.find_vendor

    def slow_lookup(name, gst_no="NA"):
        found = lookup(name, gst_no)
        time.sleep(0.05)
        return found

    monkeypatch.setattr(ledger, "find_vendor", slow_lookup)

    run_concurrently(
        app,
        4,
        lambda c: c.post("/procurements/vendors", json={"name": "Solar Parts India", "address": "Jaipur"}),
    )

    creates = client.get("/admin/audit-log?entity_type=Vendor").get_json()["entries"]
    assert [e["action"] for e in creates] == ["CREATE"]
    assert len(ledger.get_vendors()) == 1
