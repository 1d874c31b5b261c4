from fastapi.testclient import TestClient


REQUIRED_ROUTES = {
    "/api/cart/lines",
    "/api/checkout/quote",
    "/api/checkout",
    "/api/orders",
    "/api/orders/{order_id}",
    "/api/orders/{order_id}/cancel",
    "/api/orders/{order_id}/repay",
    "/api/customers/lookup",
    "/api/webhooks/bank-transfer",
    "/internal/metrics/requests",
    "/health",
}


def test_api_startup_and_router_registration(monkeypatch):
    from app import main

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)

    with TestClient(main.app) as client:
        response = client.get("/")
        health_response = client.get("/health", headers={"X-Request-ID": "req-123"})
        openapi_response = client.get("/openapi.json")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert health_response.json() == {"status": "healthy"}
    assert health_response.headers["X-Request-ID"] == "req-123"
    assert openapi_response.status_code == 200

    paths = {route.path for route in main.app.routes}
    assert REQUIRED_ROUTES.issubset(paths)


def test_protected_routes_require_a_token(monkeypatch):
    from app import main

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)

    with TestClient(main.app) as client:
        response = client.get("/api/orders")

    assert response.status_code == 401
