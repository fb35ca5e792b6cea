"""Integration tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from conftest import RESOURCES, write_metadata
from resourcegate.api import create_app
from resourcegate.auth import JWTService
from resourcegate.auth.types import RoleAssignment
from resourcegate.config import GatewayConfig, TenancyConfig

SECRET = "test-secret"


def make_config(tmp_path, **kwargs) -> GatewayConfig:
    return GatewayConfig(
        database_url=f"sqlite:///{tmp_path / 'api.db'}",
        metadata_path=write_metadata(tmp_path / "metadata", RESOURCES),
        secret_key=SECRET,
        **kwargs,
    )


def seed(gateway) -> dict:
    store = gateway.store
    resolve = gateway.registry.resolve
    acme = store.insert(resolve("organizations"), {"name": "Acme", "handle": "acme"})
    globex = store.insert(resolve("organizations"), {"name": "Globex", "handle": "globex"})
    acme_blog = store.insert(resolve("blogs"), {"title": "Acme News", "organizationId": acme["id"]})
    globex_blog = store.insert(resolve("blogs"), {"title": "Globex News", "organizationId": globex["id"]})
    acme_post = store.insert(
        resolve("posts"), {"title": "Hello", "slug": "hello", "status": "draft", "blogId": acme_blog["id"]}
    )
    globex_post = store.insert(
        resolve("posts"), {"title": "Secret", "slug": "secret", "status": "published", "blogId": globex_blog["id"]}
    )
    return {
        "acme": acme["id"],
        "globex": globex["id"],
        "acme_blog": acme_blog["id"],
        "globex_blog": globex_blog["id"],
        "acme_post": acme_post["id"],
        "globex_post": globex_post["id"],
    }


class Api:
    """A started client plus seeded ids and a token helper."""

    def __init__(self, client: TestClient):
        self.client = client
        self.gateway = client.app.state.gateway
        self.ids = seed(self.gateway)
        self._jwt = JWTService(SECRET)

    def login(self, user_id: str, permissions=("*",), tenant: str = "acme", role: str | None = None) -> dict:
        tenant_id = self.ids[tenant]
        self.gateway.assignments.grant(RoleAssignment(user_id, tenant_id, frozenset(permissions), role))
        return {"Authorization": f"Bearer {self._jwt.generate_access_token(user_id, tenant_id)}"}

    def url(self, path: str, tenant: str = "acme") -> str:
        return f"/api/{self.ids[tenant]}/{path}"


@pytest.fixture
def api(tmp_path):
    with TestClient(create_app(make_config(tmp_path))) as client:
        yield Api(client)


@pytest.fixture
def alice(api):
    return api.login("alice")


class TestHealth:
    def test_health_skips_auth(self, api):
        response = api.client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestAuthentication:
    def test_missing_token(self, api):
        response = api.client.get(api.url("posts"))
        assert response.status_code == 401
        assert response.json() == {"message": "Authentication required"}
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_invalid_token(self, api):
        response = api.client.get(api.url("posts"), headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_expired_token(self, api):
        api.login("alice")
        token = JWTService(SECRET).generate_access_token("alice", ttl=-10)
        response = api.client.get(api.url("posts"), headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_missing_permission(self, api):
        headers = api.login("reader", permissions=("blogs.index",))
        response = api.client.get(api.url("posts"), headers=headers)
        assert response.status_code == 403
        assert response.json() == {"message": "This action is unauthorized."}


class TestTenantResolution:
    def test_unknown_tenant(self, api, alice):
        response = api.client.get("/api/nope/posts", headers=alice)
        assert response.status_code == 404
        assert response.json() == {"message": "Organization not found"}

    def test_non_member_looks_unknown(self, api, alice):
        response = api.client.get(api.url("posts", tenant="globex"), headers=alice)
        assert response.status_code == 404
        assert response.json() == {"message": "Organization not found"}

    def test_rows_scoped_to_route_tenant(self, api, alice):
        response = api.client.get(api.url("posts"), headers=alice)
        assert response.status_code == 200
        assert [p["slug"] for p in response.json()["data"]] == ["hello"]

    def test_other_tenants_row_is_not_found(self, api, alice):
        response = api.client.get(api.url(f"posts/{api.ids['globex_post']}"), headers=alice)
        assert response.status_code == 404
        assert response.json() == {"message": "Resource not found."}

    def test_resolves_by_identifier_column(self, tmp_path):
        config = make_config(tmp_path, auth_disabled=True, tenancy=TenancyConfig(identifier="handle"))
        with TestClient(create_app(config)) as client:
            seed(client.app.state.gateway)
            response = client.get("/api/acme/posts")
        assert response.status_code == 200
        assert [p["slug"] for p in response.json()["data"]] == ["hello"]


class TestListing:
    def test_pagination_headers_and_clamp(self, api, alice):
        response = api.client.get(api.url("blogs"), params={"per_page": "1000"}, headers=alice)
        assert response.status_code == 200
        assert response.headers["X-Per-Page"] == "100"
        assert response.headers["X-Total"] == "1"
        assert response.headers["X-Current-Page"] == "1"
        assert response.headers["X-Last-Page"] == "1"

    def test_filter_query_string(self, api, alice):
        response = api.client.get(api.url("posts"), params={"filter[status]": "published"}, headers=alice)
        assert response.json()["data"] == []

    def test_filters_forbidden_without_allowed_filters(self, api, alice):
        response = api.client.get(api.url("comments"), params={"filter[body]": "x"}, headers=alice)
        assert response.status_code == 403

    def test_disallowed_sort(self, api, alice):
        response = api.client.get(api.url("posts"), params={"sort": "body"}, headers=alice)
        assert response.status_code == 400

    def test_unknown_slug(self, api, alice):
        response = api.client.get(api.url("widgets"), headers=alice)
        assert response.status_code == 404
        assert response.json() == {"message": "The widgets model does not exist"}


class TestShow:
    def test_redacted_record(self, api, alice):
        response = api.client.get(api.url(f"posts/{api.ids['acme_post']}"), headers=alice)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["slug"] == "hello"
        assert "createdAt" not in data

    def test_include(self, api, alice):
        response = api.client.get(
            api.url(f"posts/{api.ids['acme_post']}"), params={"include": "blog"}, headers=alice
        )
        assert response.json()["data"]["blog"]["title"] == "Acme News"

    def test_include_needs_related_permission(self, api):
        headers = api.login("writer", permissions=("posts.*",))
        response = api.client.get(
            api.url(f"posts/{api.ids['acme_post']}"), params={"include": "blog"}, headers=headers
        )
        assert response.status_code == 403
        assert response.json() == {"message": "You do not have permission to include blog."}

    def test_include_not_allowed(self, api, alice):
        response = api.client.get(
            api.url(f"posts/{api.ids['acme_post']}"), params={"include": "author"}, headers=alice
        )
        assert response.status_code == 400


class TestWrites:
    def test_create_stamps_tenant(self, api, alice):
        response = api.client.post(api.url("blogs"), json={"title": "Fresh"}, headers=alice)
        assert response.status_code == 201
        assert response.json()["data"]["organizationId"] == api.ids["acme"]

    def test_validation_error_shape(self, api, alice):
        response = api.client.post(
            api.url("posts"),
            json={"title": "Dup", "slug": "hello", "blogId": api.ids["acme_blog"]},
            headers=alice,
        )
        assert response.status_code == 422
        assert response.json() == {
            "message": "Validation failed.",
            "errors": {"slug": ["The slug has already been taken."]},
        }

    def test_body_must_be_object(self, api, alice):
        response = api.client.post(api.url("blogs"), json=["x"], headers=alice)
        assert response.status_code == 422
        assert "body" in response.json()["errors"]

    def test_update(self, api, alice):
        response = api.client.put(
            api.url(f"posts/{api.ids['acme_post']}"), json={"title": "Renamed"}, headers=alice
        )
        assert response.status_code == 200
        assert response.json()["data"]["title"] == "Renamed"

    def test_writes_are_audited(self, api, alice):
        api.client.put(api.url(f"posts/{api.ids['acme_post']}"), json={"title": "Renamed"}, headers=alice)
        entries = api.gateway.audit_log.list_for("Post", api.ids["acme_post"])
        assert [e["event"] for e in entries] == ["updated"]
        assert entries[0]["userId"] == "alice"
        assert entries[0]["newValues"]["title"] == "Renamed"


class TestSoftDeletes:
    def test_lifecycle(self, api, alice):
        post_url = api.url(f"posts/{api.ids['acme_post']}")

        assert api.client.delete(post_url, headers=alice).status_code == 204
        assert api.client.get(post_url, headers=alice).status_code == 404

        trashed = api.client.get(api.url("posts/trashed"), headers=alice)
        assert [p["id"] for p in trashed.json()["data"]] == [api.ids["acme_post"]]

        restored = api.client.post(f"{post_url}/restore", headers=alice)
        assert restored.status_code == 200
        assert api.client.get(post_url, headers=alice).status_code == 200

        assert api.client.delete(post_url, headers=alice).status_code == 204
        assert api.client.delete(f"{post_url}/force-delete", headers=alice).status_code == 204
        assert api.client.get(api.url("posts/trashed"), headers=alice).json()["data"] == []

    def test_trashed_requires_soft_deletes(self, api, alice):
        response = api.client.get(api.url("blogs/trashed"), headers=alice)
        assert response.status_code == 404
        assert response.json() == {"message": "This resource does not support soft deletes"}


class TestNestedEndpoint:
    def test_commits_batch(self, api, alice):
        payload = {
            "operations": [
                {"model": "blogs", "action": "create", "data": {"title": "Batch"}},
                {"model": "posts", "action": "update", "id": api.ids["acme_post"], "data": {"title": "Edited"}},
            ]
        }
        response = api.client.post(api.url("nested"), json=payload, headers=alice)
        assert response.status_code == 200
        results = response.json()["results"]
        assert [(r["model"], r["action"]) for r in results] == [("blogs", "create"), ("posts", "update")]
        assert results[1]["data"]["title"] == "Edited"

    def test_structural_error(self, api, alice):
        response = api.client.post(api.url("nested"), json={"operations": "nope"}, headers=alice)
        assert response.status_code == 422
        assert response.json()["message"] == "The operations field is required and must be an array."

    def test_failure_rolls_back_and_reports_500(self, api, alice):
        payload = {
            "operations": [
                {"model": "blogs", "action": "create", "data": {"title": "Kept?"}},
                {
                    "model": "posts",
                    "action": "create",
                    "data": {"title": "Dup", "slug": "hello", "blogId": api.ids["acme_blog"]},
                },
            ]
        }
        response = api.client.post(api.url("nested"), json=payload, headers=alice)
        assert response.status_code == 500
        assert response.json() == {"message": "Nested operations failed and were rolled back."}
        blogs = api.client.get(api.url("blogs"), headers=alice).json()["data"]
        assert [b["title"] for b in blogs] == ["Acme News"]

    def test_foreign_parent_is_rejected(self, api, alice):
        payload = {
            "operations": [
                {
                    "model": "posts",
                    "action": "create",
                    "data": {"title": "Leak", "slug": "leak", "blogId": api.ids["globex_blog"]},
                }
            ]
        }
        response = api.client.post(api.url("nested"), json=payload, headers=alice)
        assert response.status_code == 422
        assert response.json()["errors"] == {"operations.0.data.blogId": ["The selected blogId is invalid."]}

    def test_batch_runs_under_gateway_lock(self, api, alice, monkeypatch):
        coordinator = api.gateway.coordinator
        original = coordinator.run
        held = []

        async def run(payload, ctx, batch=None):
            held.append(api.gateway.lock.locked())
            return await original(payload, ctx, batch)

        monkeypatch.setattr(coordinator, "run", run)
        payload = {"operations": [{"model": "blogs", "action": "create", "data": {"title": "Locked"}}]}
        response = api.client.post(api.url("nested"), json=payload, headers=alice)
        assert response.status_code == 200
        assert held == [True]

    def test_requires_authentication(self, api):
        response = api.client.post(api.url("nested"), json={"operations": []})
        assert response.status_code == 401


class TestLocalMode:
    def test_auth_disabled_acts_with_full_permissions(self, tmp_path):
        with TestClient(create_app(make_config(tmp_path, auth_disabled=True))) as client:
            ids = seed(client.app.state.gateway)
            response = client.get(f"/api/{ids['acme']}/posts")
        assert response.status_code == 200
        assert [p["slug"] for p in response.json()["data"]] == ["hello"]

    def test_single_tenant_routes(self, tmp_path):
        config = make_config(tmp_path, auth_disabled=True, tenancy=TenancyConfig(enabled=False))
        with TestClient(create_app(config)) as client:
            seed(client.app.state.gateway)
            response = client.get("/api/posts")
        assert response.status_code == 200
        assert sorted(p["slug"] for p in response.json()["data"]) == ["hello", "secret"]
