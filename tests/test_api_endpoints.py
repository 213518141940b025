"""
Tests for API Endpoints

This test suite verifies:
- POST /register and POST /recognize against a real temporary store
- Error mapping: blank name / bad descriptor -> 422, store outage -> 503
- User management endpoints (list, delete)
- Health check and root endpoints

Run with: pytest tests/test_api_endpoints.py -v
"""

import os
import sys
import shutil
import tempfile
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fastapi.testclient import TestClient

from api.app import app
from api.dependencies import get_matcher, get_store
from core.enrollment_store import EnrollmentStore
from core.errors import StoreUnavailableError
from core.matching import EuclideanMatcher


DIM = 128


def vec(axis: int = 0, scale: float = 1.0) -> list:
    v = [0.0] * DIM
    v[axis] = scale
    return v


@pytest.fixture
def store():
    """Temporary enrollment store shared by the app under test."""
    temp_dir = tempfile.mkdtemp(prefix="api_test_")
    s = EnrollmentStore(db_path=os.path.join(temp_dir, "api.sqlite"), embedding_dim=DIM)
    yield s
    s.close()
    shutil.rmtree(temp_dir)


@pytest.fixture
def client(store):
    """Test client wired to the temporary store and a 0.6 threshold matcher."""
    matcher = EuclideanMatcher({"threshold": 0.6, "embedding_dim": DIM})
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_matcher] = lambda: matcher
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def broken_client():
    """Test client whose store is down."""
    broken = MagicMock(spec=EnrollmentStore)
    broken.snapshot.side_effect = StoreUnavailableError("database is locked")
    broken.enroll.side_effect = StoreUnavailableError("database is locked")
    broken.get_stats.side_effect = StoreUnavailableError("database is locked")
    broken.list_users.side_effect = StoreUnavailableError("database is locked")

    app.dependency_overrides[get_store] = lambda: broken
    app.dependency_overrides[get_matcher] = lambda: EuclideanMatcher({"embedding_dim": DIM})
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestRegisterEndpoint:
    """Tests for POST /register."""

    def test_register_success(self, client, store):
        response = client.post("/register", json={"name": "Alice", "embedding": vec(0)})
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is True
        assert data["name"] == "Alice"
        assert data["record_id"].startswith("rec_")
        assert data["records_for_name"] == 1
        assert store.count_records("Alice") == 1

    def test_register_same_name_appends(self, client):
        client.post("/register", json={"name": "Alice", "embedding": vec(0)})
        response = client.post("/register", json={"name": "Alice", "embedding": vec(1)})

        assert response.status_code == 200
        assert response.json()["records_for_name"] == 2

    def test_register_blank_name(self, client, store):
        response = client.post("/register", json={"name": "   ", "embedding": vec(0)})

        assert response.status_code == 422
        assert response.json()["code"] == "EMPTY_NAME"
        assert store.count_records() == 0

    def test_register_wrong_dimension(self, client):
        response = client.post("/register", json={"name": "Alice", "embedding": [0.1, 0.2]})

        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_EMBEDDING"

    def test_register_missing_field(self, client):
        response = client.post("/register", json={"name": "Alice"})
        assert response.status_code == 422

    def test_register_store_unavailable(self, broken_client):
        response = broken_client.post("/register", json={"name": "Alice", "embedding": vec(0)})

        assert response.status_code == 503
        assert response.json()["code"] == "STORE_UNAVAILABLE"

    def test_register_makes_no_reads_after_commit(self, client, store):
        """A stored enrollment is acknowledged even if later reads would fail."""
        failing = StoreUnavailableError("locked")
        with patch.object(store, "count_records", side_effect=failing), \
                patch.object(store, "list_users", side_effect=failing), \
                patch.object(store, "get_record", side_effect=failing):
            response = client.post("/register", json={"name": "Alice", "embedding": vec(0)})

        assert response.status_code == 200
        assert response.json()["records_for_name"] == 1
        assert store.count_records("Alice") == 1

    def test_register_replace_policy_count(self, tmp_path):
        replace_store = EnrollmentStore(
            db_path=str(tmp_path / "replace.sqlite"), embedding_dim=DIM, reenrollment="replace"
        )
        app.dependency_overrides[get_store] = lambda: replace_store
        try:
            client = TestClient(app)
            client.post("/register", json={"name": "Alice", "embedding": vec(0)})
            response = client.post("/register", json={"name": "Alice", "embedding": vec(1)})
        finally:
            app.dependency_overrides.clear()
            replace_store.close()

        assert response.json()["records_for_name"] == 1


class TestRecognizeEndpoint:
    """Tests for POST /recognize."""

    def test_empty_store(self, client):
        response = client.post("/recognize", json={"embedding": vec(0)})

        assert response.status_code == 200
        data = response.json()
        assert data["allowed"] is False
        assert data["name"] is None
        assert data["distance"] is None

    def test_enroll_then_verify_same_vector(self, client):
        client.post("/register", json={"name": "Alice", "embedding": vec(3, 0.5)})

        data = client.post("/recognize", json={"embedding": vec(3, 0.5)}).json()
        assert data["allowed"] is True
        assert data["name"] == "Alice"
        assert data["distance"] == pytest.approx(0.0)

    def test_alice_at_distance_point_three(self, client):
        alice = np.random.default_rng(3).normal(size=DIM)
        alice = (alice / np.linalg.norm(alice)).tolist()
        probe = list(alice)
        probe[10] += 0.3

        client.post("/register", json={"name": "Alice", "embedding": alice})
        data = client.post("/recognize", json={"embedding": probe}).json()

        assert data == {"allowed": True, "name": "Alice", "distance": pytest.approx(0.3, abs=1e-5)}

    def test_closer_to_bob(self, client):
        client.post("/register", json={"name": "Alice", "embedding": vec(0)})
        client.post("/register", json={"name": "Bob", "embedding": vec(1)})

        probe = vec(1)
        probe[2] = 0.25
        data = client.post("/recognize", json={"embedding": probe}).json()

        assert data["allowed"] is True
        assert data["name"] == "Bob"

    def test_not_recognized_is_success_shaped(self, client):
        client.post("/register", json={"name": "Alice", "embedding": vec(0)})

        response = client.post("/recognize", json={"embedding": vec(1)})
        assert response.status_code == 200
        assert response.json()["allowed"] is False
        assert response.json()["name"] is None

    def test_boundary_inclusive(self, client):
        client.post("/register", json={"name": "Alice", "embedding": vec(0, 0.0)})

        at = client.post("/recognize", json={"embedding": vec(0, 0.6)}).json()
        past = client.post("/recognize", json={"embedding": vec(0, 0.6000001)}).json()

        assert at["allowed"] is True
        assert past["allowed"] is False

    def test_verify_idempotent(self, client):
        client.post("/register", json={"name": "Alice", "embedding": vec(0)})
        client.post("/register", json={"name": "Bob", "embedding": vec(1)})

        probe = vec(0, 0.8)
        first = client.post("/recognize", json={"embedding": probe}).json()
        second = client.post("/recognize", json={"embedding": probe}).json()
        assert first == second

    def test_recognition_is_logged(self, client, store):
        client.post("/register", json={"name": "Alice", "embedding": vec(0)})
        client.post("/recognize", json={"embedding": vec(0)})
        client.post("/recognize", json={"embedding": vec(5)})

        stats = store.get_stats()
        assert stats["total_recognitions"] == 2
        assert stats["successful_recognitions"] == 1

    def test_wrong_dimension(self, client):
        response = client.post("/recognize", json={"embedding": [1.0] * 64})

        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_EMBEDDING"

    def test_store_unavailable_is_not_a_miss(self, broken_client):
        """An outage is a 503, never allowed=False."""
        response = broken_client.post("/recognize", json={"embedding": vec(0)})

        assert response.status_code == 503
        data = response.json()
        assert data["code"] == "STORE_UNAVAILABLE"
        assert "allowed" not in data

    def test_log_failure_keeps_decision(self):
        """Audit log failures do not change the answer."""
        store = MagicMock(spec=EnrollmentStore)
        store.snapshot.return_value = []
        store.log_recognition.side_effect = StoreUnavailableError("read-only")

        app.dependency_overrides[get_store] = lambda: store
        app.dependency_overrides[get_matcher] = lambda: EuclideanMatcher({"embedding_dim": DIM})
        try:
            response = TestClient(app).post("/recognize", json={"embedding": vec(0)})
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 200
        assert response.json()["allowed"] is False


class TestUserManagementEndpoints:
    """Tests for user management endpoints."""

    def test_list_users(self, client):
        client.post("/register", json={"name": "Bob", "embedding": vec(1)})
        client.post("/register", json={"name": "Alice", "embedding": vec(0)})
        client.post("/register", json={"name": "Alice", "embedding": vec(2)})

        data = client.get("/users").json()
        assert data["total"] == 2
        assert data["users"][0]["name"] == "Alice"
        assert data["users"][0]["n_records"] == 2

    def test_list_users_empty(self, client):
        assert client.get("/users").json() == {"users": [], "total": 0}

    def test_delete_user(self, client, store):
        client.post("/register", json={"name": "Alice", "embedding": vec(0)})
        client.post("/register", json={"name": "Alice", "embedding": vec(1)})

        response = client.delete("/users/Alice")
        assert response.status_code == 200
        assert response.json()["deleted_records"] == 2
        assert store.count_records() == 0

        # Deleted identities are no longer recognized
        assert client.post("/recognize", json={"embedding": vec(0)}).json()["allowed"] is False

    def test_delete_nonexistent_user(self, client):
        assert client.delete("/users/Nobody").status_code == 404

    def test_delete_record(self, client, store):
        record_id = client.post("/register", json={"name": "Alice", "embedding": vec(0)}).json()["record_id"]

        response = client.delete(f"/records/{record_id}")
        assert response.status_code == 200
        assert response.json()["record_id"] == record_id
        assert store.count_records() == 0

    def test_delete_nonexistent_record(self, client):
        assert client.delete("/records/rec_missing").status_code == 404

    def test_list_users_store_unavailable(self, broken_client):
        assert broken_client.get("/users").status_code == 503


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check(self, client):
        client.post("/register", json={"name": "Alice", "embedding": vec(0)})

        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["store_available"] is True
        assert data["enrolled_users"] == 1
        assert data["enrolled_records"] == 1
        assert data["threshold"] == 0.6
        assert data["embedding_dim"] == DIM

    def test_health_store_down(self, broken_client):
        data = broken_client.get("/health").json()
        assert data["status"] == "unhealthy"
        assert data["store_available"] is False

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert "name" in data
        assert "version" in data
        assert data["protocol_version"] == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
