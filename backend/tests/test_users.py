"""Tests for User endpoints."""
from tests.conftest import create_test_user


class TestUserCRUD:
    def test_create_user(self, client):
        user = create_test_user(client, name="Ada Lovelace", student_id="S1001")
        assert user["full_name"] == "Ada Lovelace"
        assert user["email"] == "ada.lovelace@campus.edu"
        assert user["student_id"] == "S1001"
        assert user["role"] == "student"
        assert "user_id" in user

    def test_create_admin(self, client):
        admin = create_test_user(client, name="Prof", role="admin")
        assert admin["role"] == "admin"

    def test_duplicate_email_rejected(self, client):
        create_test_user(client, name="Twin")
        resp = client.post("/api/users/", json={"email": "TWIN@campus.edu", "full_name": "Other Twin"})
        assert resp.status_code == 409

    def test_duplicate_student_id_rejected(self, client):
        create_test_user(client, name="First", student_id="S1")
        resp = client.post("/api/users/", json={
            "email": "second@campus.edu", "full_name": "Second", "student_id": "S1",
        })
        assert resp.status_code == 409

    def test_invalid_email_rejected(self, client):
        resp = client.post("/api/users/", json={"email": "not-an-email", "full_name": "X"})
        assert resp.status_code == 422

    def test_get_user(self, client):
        user = create_test_user(client)
        resp = client.get(f"/api/users/{user['user_id']}")
        assert resp.status_code == 200
        assert resp.json()["full_name"] == "Test User"

    def test_get_user_not_found(self, client):
        resp = client.get("/api/users/00000000-0000-0000-0000-000000000000")
        assert resp.status_code == 404

    def test_list_users(self, client):
        create_test_user(client, name="Alice")
        create_test_user(client, name="Bob")
        resp = client.get("/api/users/")
        assert resp.status_code == 200
        names = [u["full_name"] for u in resp.json()]
        assert names == ["Alice", "Bob"]

    def test_delete_user(self, client):
        user = create_test_user(client)
        resp = client.delete(f"/api/users/{user['user_id']}")
        assert resp.status_code == 204
        assert client.get(f"/api/users/{user['user_id']}").status_code == 404
