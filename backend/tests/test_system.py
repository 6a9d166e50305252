"""System endpoint and error envelope tests."""

from voltshop.errors import InsufficientStockError, ValidationError


def test_health(client, db_session):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json["status"] == "healthy"
    assert resp.json["database"]["details"]["orders"] == 0


def test_unknown_route_is_json(client, db_session):
    resp = client.get("/api/does-not-exist")

    assert resp.status_code == 404
    assert resp.json["success"] is False


def test_domain_error_envelope():
    err = InsufficientStockError(product_id=1, product_name="Pixel 8", available=1, requested=3)

    assert err.status_code == 400
    assert err.to_dict() == {
        "success": False,
        "message": "Insufficient stock for Pixel 8. Available: 1, requested: 3",
        "details": {"product_id": 1, "product_name": "Pixel 8", "available": 1, "requested": 3},
    }
    assert ValidationError("bad").to_dict() == {"success": False, "message": "bad"}


def test_cors_headers_for_allowed_origin(client, db_session):
    resp = client.get("/health", headers={"Origin": "http://localhost:5173"})
    assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

    other = client.get("/health", headers={"Origin": "https://evil.example"})
    assert "Access-Control-Allow-Origin" not in other.headers
