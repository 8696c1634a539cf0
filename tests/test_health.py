from orbit_api.routes.health import overall_status


def test_overall_status():
    assert overall_status({"database": {"status": "healthy"}, "redis": {"status": "disabled"}}) == "healthy"
    assert overall_status({"database": {"status": "healthy"}, "redis": {"status": "unhealthy"}}) == "degraded"
    assert overall_status({"database": {"status": "unhealthy"}, "redis": {"status": "healthy"}}) == "unhealthy"


def test_health_endpoint(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    body = response.json()
    assert body["service"] == "orbit_api"
    assert body["environment"] == "testing"
    assert body["checks"]["database"]["status"] == "healthy"
    assert body["checks"]["redis"] == {"status": "disabled"}


def test_readiness_endpoint(client):
    response = client.get("/api/health/ready")

    assert response.status_code == 200
    assert response.json()["checks"] == {"database": "healthy", "redis": "disabled"}
