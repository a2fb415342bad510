"""
tests/test_users_routes.py -- Integration tests for the users router.

These tests exercise the full stack: FastAPI routing -> raw JSON body ->
credential policy -> SqlUserCollection -> token issue -> resource guard ->
error envelope. Integration tests catch regressions in route ordering (the
/authorize vs /{user} overlap) that unit tests cannot.

Coverage:
  - POST /users: 200 insert result, 400 username/password/generic policy
    messages, 400 duplicate username with the collection's message verbatim
  - POST /users/authorize: 200 token, 403 no matching user, 400 bad policy
  - Non-POST /authorize: 400 naming the method
  - Passwords over bcrypt's 72-byte limit: 400 policy message, not 500
  - A caller-supplied collection raising its own exception types: 400 on
    register and 403 on authorize, message verbatim
  - /users/{user}: 401 no token, bad scheme, bad token, wrong subject;
    200 for the owner on /{user} and /{user}/profile
"""

from __future__ import annotations

from fastapi.testclient import TestClient
from jose import jwt

from api.main import create_app
from auth.credentials import GENERIC_MESSAGE, PASSWORD_MESSAGE, USERNAME_MESSAGE
from auth.models import InsertResult, UserRecord
from conftest import ALICE, BOB, bearer, register_and_authorize


class TestRegisterRoute:
    def test_register_success(self, client: TestClient) -> None:
        resp = client.post("/users", json=ALICE)
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["acknowledged"] is True
        assert isinstance(data["inserted_id"], int)

    def test_bad_username(self, client: TestClient) -> None:
        resp = client.post("/users", json={"username": "bad user", "password": "x"})
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "invalid_username"
        assert error["message"] == USERNAME_MESSAGE

    def test_bad_password(self, client: TestClient) -> None:
        resp = client.post("/users", json={"username": "alice_1", "password": "short"})
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == PASSWORD_MESSAGE

    def test_missing_field(self, client: TestClient) -> None:
        resp = client.post("/users", json={"username": "alice_1"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_credentials"
        assert resp.json()["error"]["message"] == GENERIC_MESSAGE

    def test_empty_body(self, client: TestClient) -> None:
        resp = client.post("/users")
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == GENERIC_MESSAGE

    def test_duplicate_username(self, client: TestClient) -> None:
        assert client.post("/users", json=ALICE).status_code == 200
        resp = client.post("/users", json=ALICE)
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "duplicate_user"
        assert error["message"] == "Username 'alice_1' is already registered in 'users'."


class TestAuthorizeRoute:
    def test_authorize_success(self, client: TestClient, secret_store) -> None:
        client.post("/users", json=ALICE)
        resp = client.post("/users/authorize", json=ALICE)
        assert resp.status_code == 200, resp.text
        assert resp.headers["cache-control"] == "no-store"
        data = resp.json()
        assert data["token_type"] == "bearer"
        claims = jwt.decode(data["token"], secret_store.secret_for("users"), algorithms=["HS256"], audience="users")
        assert claims["sub"] == "alice_1"
        assert claims["aud"] == "users"

    def test_unknown_credentials(self, client: TestClient) -> None:
        resp = client.post("/users/authorize", json=ALICE)
        assert resp.status_code == 403
        error = resp.json()["error"]
        assert error["code"] == "authentication_failed"
        assert "No user was found" in error["message"]

    def test_wrong_password(self, client: TestClient) -> None:
        client.post("/users", json=ALICE)
        resp = client.post("/users/authorize", json={"username": "alice_1", "password": "Wrong1!pw"})
        assert resp.status_code == 403

    def test_invalid_credentials_are_400(self, client: TestClient) -> None:
        resp = client.post("/users/authorize", json={"username": "Alice", "password": "Abcdef1!"})
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == USERNAME_MESSAGE

    def test_put_authorize(self, client: TestClient) -> None:
        resp = client.put("/users/authorize", json=ALICE)
        assert resp.status_code == 400
        message = resp.json()["error"]["message"]
        assert "PUT" in message
        assert "use POST instead" in message
        assert message == "Cannot PUT /authorize, use POST instead"

    def test_get_authorize_is_not_guarded(self, client: TestClient) -> None:
        """GET /authorize must hit the method check, not the /{user} guard (which would 401)."""
        resp = client.get("/users/authorize")
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Cannot GET /authorize, use POST instead"

    def test_delete_authorize(self, client: TestClient) -> None:
        resp = client.delete("/users/authorize")
        assert resp.status_code == 400
        assert "DELETE" in resp.json()["error"]["message"]


class TestResourceGuard:
    def test_no_token(self, client: TestClient) -> None:
        resp = client.get("/users/alice_1/profile")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"
        assert resp.json()["error"]["message"] == "No authorization token was found."

    def test_wrong_scheme(self, client: TestClient) -> None:
        resp = client.get("/users/alice_1", headers={"Authorization": "Basic abc"})
        assert resp.status_code == 401

    def test_garbage_token(self, client: TestClient) -> None:
        resp = client.get("/users/alice_1", headers=bearer("not.a.token"))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_token_signed_with_other_key(self, client: TestClient) -> None:
        forged = jwt.encode({"aud": "users", "sub": "alice_1"}, b"x" * 256, algorithm="HS256")
        resp = client.get("/users/alice_1", headers=bearer(forged))
        assert resp.status_code == 401

    def test_token_with_other_audience(self, client: TestClient, secret_store) -> None:
        token = jwt.encode({"aud": "admins", "sub": "alice_1"}, secret_store.secret_for("users"), algorithm="HS256")
        resp = client.get("/users/alice_1", headers=bearer(token))
        assert resp.status_code == 401

    def test_wrong_subject(self, client: TestClient) -> None:
        token = register_and_authorize(client, BOB)
        resp = client.get("/users/alice_1/profile", headers=bearer(token))
        assert resp.status_code == 401
        error = resp.json()["error"]
        assert error["code"] == "permission_denied"
        assert error["message"] == "bob_2 has no permission for this resource"

    def test_owner_whoami(self, client: TestClient) -> None:
        token = register_and_authorize(client, ALICE)
        resp = client.get("/users/alice_1", headers=bearer(token))
        assert resp.status_code == 200
        assert resp.json() == {"username": "alice_1", "audience": "users"}

    def test_owner_profile(self, client: TestClient) -> None:
        token = register_and_authorize(client, ALICE)
        resp = client.get("/users/alice_1/profile", headers=bearer(token))
        assert resp.status_code == 200
        data = resp.json()
        assert data["username"] == "alice_1"
        assert "password" not in data
        assert "hashed_password" not in data

    def test_token_survives_new_store_instance(self, client: TestClient, tmp_path) -> None:
        """Secrets are persisted, so a token keeps verifying against a fresh store."""
        from auth.secrets_store import FileSecretStore
        from auth.service import verify_owner

        token = register_and_authorize(client, ALICE)
        fresh = FileSecretStore(tmp_path / "secrets")
        assert verify_owner(token, "alice_1", "users", fresh)["sub"] == "alice_1"


class TestLongPasswordRoute:
    def test_register_over_bcrypt_limit_is_400(self, client: TestClient) -> None:
        resp = client.post("/users", json={"username": "alice_1", "password": "Abcdef1!" + "a" * 80})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_password"
        assert resp.json()["error"]["message"] == PASSWORD_MESSAGE

    def test_register_at_bcrypt_limit_succeeds(self, client: TestClient) -> None:
        creds = {"username": "alice_1", "password": "Abcdef1!" + "a" * 64}
        assert register_and_authorize(client, creds)


class DocumentStoreCollection:
    """A caller-supplied collection whose driver raises its own exception types."""

    name = "users"

    def __init__(self, insert_error: Exception | None = None, find_error: Exception | None = None) -> None:
        self.insert_error = insert_error
        self.find_error = find_error

    def insert_one(self, document: dict) -> InsertResult:
        if self.insert_error is not None:
            raise self.insert_error
        return InsertResult(acknowledged=True, inserted_id="65f0c0ffee")

    def find_one(self, query: dict) -> UserRecord | None:
        if self.find_error is not None:
            raise self.find_error
        return None


class TestForeignCollectionRoutes:
    """Collection errors reach the client with their own message, never as a 500."""

    def test_register_duplicate_key_message_verbatim(self, secret_store, settings) -> None:
        users = DocumentStoreCollection(insert_error=Exception("E11000 duplicate key"))
        with TestClient(create_app(collection=users, secret_store=secret_store, settings=settings)) as c:
            resp = c.post("/users", json=ALICE)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "storage_error"
        assert resp.json()["error"]["message"] == "E11000 duplicate key"

    def test_register_success_passes_insert_result(self, secret_store, settings) -> None:
        with TestClient(create_app(collection=DocumentStoreCollection(), secret_store=secret_store, settings=settings)) as c:
            resp = c.post("/users", json=ALICE)
        assert resp.status_code == 200
        assert resp.json() == {"acknowledged": True, "inserted_id": "65f0c0ffee"}

    def test_authorize_lookup_failure_is_403(self, secret_store, settings) -> None:
        users = DocumentStoreCollection(find_error=RuntimeError("server selection timed out"))
        with TestClient(create_app(collection=users, secret_store=secret_store, settings=settings)) as c:
            resp = c.post("/users/authorize", json=ALICE)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "authentication_failed"
        assert resp.json()["error"]["message"] == "server selection timed out"
