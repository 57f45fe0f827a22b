import pytest
from fastapi.testclient import TestClient

from invoice_tax.api.http import app
from invoice_tax.config import get_settings
from tests.fixtures.invoices import make_car_record, make_invoice_rows, make_standard_input


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["default_currency"] == "PLN"
    assert body["settings_path"] == get_settings().settings_path


def test_compute_with_explicit_config(client):
    response = client.post(
        "/tax-benefits/compute",
        json={
            "invoice": make_standard_input(),
            "config": {"pitRate": 0.12, "healthRate": 0.09, "isVatPayer": True},
        },
    )
    assert response.status_code == 200
    assert response.json()["result"] == {
        "vat_recovered": 230.0,
        "cost_base": 1000.0,
        "income_tax_saving": 120.0,
        "health_saving": 90.0,
        "total_tax_benefit": 440.0,
        "real_cost": 790.0,
    }


def test_compute_uses_stored_company_settings(client):
    put = client.put("/settings/company", json={"name": "Studio", "pitRate": 0.32})
    assert put.status_code == 200
    assert put.json()["ok"] is True

    body = client.post("/tax-benefits/compute", json={"invoice": make_standard_input()}).json()
    assert body["config"] == {"pit_rate": 0.32, "health_rate": 0.09, "is_vat_payer": True}
    assert body["result"]["income_tax_saving"] == 320.0
    assert body["result"]["total_tax_benefit"] == 640.0
    assert body["result"]["real_cost"] == 590.0


def test_compute_vehicle_invoice(client):
    invoice = {
        "grossAmount": 12300,
        "netAmount": 10000,
        "vatAmount": 2300,
        "car": {"value": 117000, "limit100k": 100000, "limit150k": 150000, "limit200k": 200000, "vatDeductionPercent": 0.5},
    }
    result = client.post("/tax-benefits/compute", json={"invoice": invoice}).json()["result"]
    assert result["total_tax_benefit"] == 3491.5
    assert result["real_cost"] == 8808.5


def test_unreadable_settings_fail_with_500(client):
    with open(get_settings().settings_path, "w", encoding="utf-8") as handle:
        handle.write("{broken")
    response = client.post("/tax-benefits/compute", json={"invoice": make_standard_input()})
    assert response.status_code == 500
    assert client.get("/settings/company").status_code == 500


@pytest.mark.parametrize(
    "car,limit,proportion",
    [
        ({"value": 120000}, 150000.0, 1.0),
        ({"value": 250000, "limit200k": 150000}, 150000.0, 0.6),
        ({"value": 0}, 100000.0, 1.0),
    ],
)
def test_car_limit(client, car, limit, proportion):
    body = client.post("/tax-benefits/car-limit", json={"car": car}).json()
    assert body["limit"] == limit
    assert body["proportion"] == pytest.approx(proportion)


def _report_body(**extra):
    body = {
        "invoices": make_invoice_rows(),
        "cars": [make_car_record().model_dump(mode="json")],
        "config": {"pitRate": 0.12, "healthRate": 0.09, "isVatPayer": True},
    }
    body.update(extra)
    return body


def test_report(client):
    response = client.post("/tax-benefits/report", json=_report_body(month=1, year=2026))
    assert response.status_code == 200
    body = response.json()
    assert body["period"] == "2026-01"
    assert [row["id"] for row in body["rows"]] == ["inv-1", "inv-2"]
    assert body["totals"]["PLN"]["total_tax_benefit"] == 3931.5


def test_report_rejects_bad_period(client):
    response = client.post("/tax-benefits/report", json=_report_body(month=13, year=2026))
    assert response.status_code == 400
    response = client.post("/tax-benefits/report", json=_report_body(month=1))
    assert response.status_code == 400


def test_report_pdf(client):
    response = client.post("/tax-benefits/report/pdf", json=_report_body(year=2026, out_path="api"))
    assert response.status_code == 200
    path = response.json()["pdf"]
    assert path.endswith("tax_benefits_2026.pdf")
    with open(path, "rb") as handle:
        assert handle.read(4) == b"%PDF"


def test_settings_round_trip(client):
    assert client.get("/settings/company").json()["pit_rate"] == 0.12
    response = client.put(
        "/settings/company",
        json={"name": " ACME ", "nip": "123-456 78 90", "isVatPayer": "false", "healthRate": 0.049},
    )
    company = response.json()["company"]
    assert company["name"] == "ACME"
    assert company["nip"] == "123-4567890"
    assert company["is_vat_payer"] is False
    assert client.get("/settings/company").json() == company


def test_create_car(client):
    response = client.post(
        "/cars",
        json={"payload": {"name": "Van", "value": 90000}, "existing": [make_car_record(sort_order=2).model_dump(mode="json")]},
    )
    assert response.status_code == 200
    car = response.json()
    assert car["name"] == "Van"
    assert car["limit_150k"] == 150000.0
    assert car["vat_deduction"] == "half"
    assert car["sort_order"] == 3


def test_create_car_requires_name(client):
    response = client.post("/cars", json={"payload": {"name": "", "value": 1}})
    assert response.status_code == 400
    assert response.json()["detail"]["field"] == "name"


def test_update_car(client):
    car = make_car_record().model_dump(mode="json")
    response = client.post("/cars/update", json={"car": car, "changes": {"vatDeductionPercent": 1}})
    assert response.status_code == 200
    assert response.json()["vat_deduction"] == "full"

    response = client.post("/cars/update", json={"car": car, "changes": {}})
    assert response.status_code == 400
    assert response.json()["detail"]["message"] == "No fields to update"
