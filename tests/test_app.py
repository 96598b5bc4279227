from fastapi.testclient import TestClient

from devloop.app import SERVICE_NAME, app


def test_health():
    client = TestClient(app)
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["service"] == SERVICE_NAME
    assert body["timestamp"]
