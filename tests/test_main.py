"""
Tests for the HTTP layer (main.py) with the database mocked out.
"""
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

import database
import main


@pytest.fixture
def client():
    return TestClient(main.app)


@pytest.fixture
def mock_db(monkeypatch, make_collection):
    db = MagicMock(name="db")
    collections = {}

    def _collection(name):
        return collections.setdefault(name, make_collection([]))

    db.__getitem__.side_effect = _collection
    db.collections = collections
    monkeypatch.setattr(database, "db", db)
    return db


CALC_BODY = {"monthlyBill": 3000, "roofArea": 500, "financeOption": "cash"}


class TestRoot:
    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_database_diagnostics_without_db(self, client):
        response = client.get("/test")

        assert response.json()["connection_status"] == "Not Connected"


class TestSolarCalcEndpoint:
    def test_calculation_without_database(self, client):
        response = client.post("/api/calc/solar", json=CALC_BODY)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["systemSizeKw"] == 3.0
        assert data["flags"]["insufficientRoof"] is False
        assert data["details"]["region"] == "Default"
        assert "ETag" in response.headers

    def test_loan_calculation(self, client):
        body = dict(CALC_BODY, financeOption="loan", downPaymentPercent=0.3, tenureYears=4, pincode="400001")
        data = client.post("/api/calc/solar", json=body).json()["data"]

        assert data["details"]["region"] == "Maharashtra"
        assert data["details"]["tenureYears"] == 4
        assert data["monthlyLoanPayment"] > 0

    def test_bill_too_low_is_400(self, client):
        response = client.post("/api/calc/solar", json=dict(CALC_BODY, monthlyBill=100))

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "code": "ERR_BILL_RANGE",
            "field": "monthlyBill",
            "message": "Monthly bill must be at least 300",
        }

    def test_roof_too_small_is_400(self, client):
        response = client.post("/api/calc/solar", json=dict(CALC_BODY, roofArea=10))

        assert response.status_code == 400
        assert response.json()["code"] == "ERR_ROOF_RANGE"

    def test_bad_down_payment_is_400(self, client):
        body = dict(CALC_BODY, financeOption="loan", downPaymentPercent=1.5)
        response = client.post("/api/calc/solar", json=body)

        assert response.status_code == 400
        assert response.json()["field"] == "downPaymentPercent"

    def test_unknown_finance_option_is_rejected(self, client):
        response = client.post("/api/calc/solar", json=dict(CALC_BODY, financeOption="lease"))

        assert response.status_code == 422

    def test_calculation_is_recorded(self, client, mock_db, monkeypatch):
        created = []
        monkeypatch.setattr(database, "create_document", lambda name, doc: created.append((name, doc)) or "id")

        response = client.post("/api/calc/solar", json=CALC_BODY)

        assert response.status_code == 200
        assert created[0][0] == "calculation"
        assert created[0][1].region == "Default"
        update = mock_db.collections["stat"].update_one
        update.assert_called_once()
        assert update.call_args[0][1]["$inc"]["calculations"] == 1

    def test_storage_failure_does_not_fail_calculation(self, client, mock_db, monkeypatch):
        def boom(name, doc):
            raise RuntimeError("mongo down")

        monkeypatch.setattr(database, "create_document", boom)

        response = client.post("/api/calc/solar", json=CALC_BODY)

        assert response.status_code == 200


class TestContentEndpoint:
    def test_unknown_content_type(self, client):
        response = client.get("/api/content/unicorns")

        assert response.status_code == 404

    def test_no_database(self, client):
        response = client.get("/api/content/products")

        assert response.status_code == 503

    def test_list_products(self, client, mock_db):
        response = client.get(
            "/api/content/products",
            params={"category": "residential", "price[gte]": "100", "search": "panel", "page": "2", "limit": "5"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["pagination"] == {"page": 2, "limit": 5, "totalPages": 0}

        collection = mock_db.collections["product"]
        query_filter = collection.find.call_args[0][0]
        assert query_filter["is_active"] is True
        assert query_filter["category"] == "residential"
        assert query_filter["price"] == {"$gte": 100}
        assert "$or" in query_filter
        collection.count_documents.assert_called_once_with(query_filter)

    def test_blog_posts_use_published_filter(self, client, mock_db):
        client.get("/api/content/blog-posts")

        query_filter = mock_db.collections["blogpost"].find.call_args[0][0]
        assert query_filter == {"is_published": True}

    def test_operator_parameters_are_ignored(self, client, mock_db):
        response = client.get("/api/content/products", params={"$where": "sleep(5000) || true"})

        assert response.status_code == 200
        query_filter = mock_db.collections["product"].find.call_args[0][0]
        assert query_filter == {"is_active": True}


class TestStats:
    def test_stats_without_database(self, client):
        assert client.get("/api/stats").status_code == 503

    def test_stats(self, client, mock_db):
        stat = mock_db["stat"]
        stat.find_one.return_value = {"calculations": 4, "co2_saved_tons": 12.3456}

        response = client.get("/api/stats")

        assert response.json() == {"calculations": 4, "co2_saved_tons": 12.35}

    def test_stats_document_is_validated(self, client, mock_db):
        mock_db["stat"].find_one.return_value = {"_id": "abc", "calculations": "7"}

        response = client.get("/api/stats")

        assert response.json() == {"calculations": 7, "co2_saved_tons": 0}

    def test_stats_before_first_calculation(self, client, mock_db):
        mock_db["stat"].find_one.return_value = None

        response = client.get("/api/stats")

        assert response.json() == {"calculations": 0, "co2_saved_tons": 0}
