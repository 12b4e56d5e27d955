"""Smoke test for API health endpoint."""

from fastapi.testclient import TestClient

from cohort_tracker.main import app

client = TestClient(app)


def test_health_endpoint():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_jwks_published_at_well_known_location():
    response = client.get("/.well-known/jwks.json")
    assert response.status_code == 200
    assert response.json()["keys"][0]["alg"] == "RS256"
