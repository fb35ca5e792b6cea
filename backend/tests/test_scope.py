"""Tests for tenant scope resolution."""

import logging

from resourcegate.config import TenancyConfig
from resourcegate.core.predicates import DENY_ALL, UNSCOPED, FieldEquals, RelationExists
from resourcegate.metadata import MetadataLoader, ResourceRegistry
from resourcegate.tenancy import MAX_OWNERSHIP_DEPTH, ScopeKind, TenantScopeResolver

ORGANIZATION = {"resource": "organizations", "entity": "Organization"}


# ── Helpers ──────────────────────────────────────────────────────────────────


def resolver_for(documents, config=None) -> TenantScopeResolver:
    loader = MetadataLoader("/nonexistent")
    loader.load_dicts(documents)
    return TenantScopeResolver(ResourceRegistry.from_loader(loader), config or TenancyConfig())


def chain(length: int) -> list[dict]:
    """N0 -> N1 -> ... -> N{length}, where only the last carries the tenant field.

    N{i} declares the full remaining path as its ownership.
    """
    docs = [ORGANIZATION]
    for i in range(length + 1):
        if i < length:
            field = {"name": "nextId", "type": "relation", "relation": {"entity": f"N{i + 1}"}}
            ownership = ".".join(["next"] * (length - i))
        else:
            field = {"name": "organizationId", "type": "relation", "relation": {"entity": "Organization"}}
            ownership = None
        docs.append({"resource": f"n{i}", "entity": f"N{i}", "ownership": ownership, "fields": [field]})
    return docs


# ── Tests ────────────────────────────────────────────────────────────────────


class TestResolution:
    def test_root(self, scopes):
        resolution = scopes.resolution("Organization")
        assert resolution.kind is ScopeKind.ROOT
        assert resolution.field == "id"

    def test_direct_tenant_field(self, scopes):
        resolution = scopes.resolution("Blog")
        assert resolution.kind is ScopeKind.DIRECT
        assert resolution.field == "organizationId"

    def test_declared_path(self, scopes):
        resolution = scopes.resolution("Post")
        assert resolution.kind is ScopeKind.PATH
        assert [h.name for h in resolution.hops] == ["blog"]
        assert resolution.field == "organizationId"

    def test_path_continues_through_declared_ownership(self, scopes):
        resolution = scopes.resolution("Comment")
        assert [h.name for h in resolution.hops] == ["post", "blog"]
        assert resolution.field == "organizationId"

    def test_global(self, scopes):
        assert scopes.resolution("Tag").kind is ScopeKind.GLOBAL

    def test_inferred_edge_to_root(self):
        resolver = resolver_for([
            ORGANIZATION,
            {
                "resource": "memberships",
                "entity": "Membership",
                "fields": [{"name": "ownerId", "type": "relation", "relation": {"entity": "Organization"}}],
            },
        ])
        resolution = resolver.resolution("Membership")
        assert resolution.kind is ScopeKind.PATH
        assert [h.name for h in resolution.hops] == ["owner"]
        assert resolution.field == "id"

    def test_path_ending_next_to_root_appends_root_edge(self):
        resolver = resolver_for([
            ORGANIZATION,
            {
                "resource": "projects",
                "entity": "Project",
                "fields": [{"name": "orgId", "type": "relation", "relation": {"entity": "Organization"}}],
            },
            {
                "resource": "tasks",
                "entity": "Task",
                "ownership": "project",
                "fields": [{"name": "projectId", "type": "relation", "relation": {"entity": "Project"}}],
            },
        ])
        resolution = resolver.resolution("Task")
        assert [h.name for h in resolution.hops] == ["project", "org"]
        assert resolution.field == "id"

    def test_unknown_relation_is_global(self, caplog):
        with caplog.at_level(logging.WARNING):
            resolver = resolver_for([
                ORGANIZATION,
                {"resource": "notes", "entity": "Note", "ownership": "author"},
            ])
        assert resolver.resolution("Note").kind is ScopeKind.GLOBAL
        assert "unknown relation Note.author" in caplog.text

    def test_cycle_is_global(self, caplog):
        with caplog.at_level(logging.WARNING):
            resolver = resolver_for([
                ORGANIZATION,
                {
                    "resource": "alphas",
                    "entity": "Alpha",
                    "ownership": "beta",
                    "fields": [{"name": "betaId", "type": "relation", "relation": {"entity": "Beta"}}],
                },
                {
                    "resource": "betas",
                    "entity": "Beta",
                    "ownership": "alpha",
                    "fields": [{"name": "alphaId", "type": "relation", "relation": {"entity": "Alpha"}}],
                },
            ])
        assert resolver.resolution("Alpha").kind is ScopeKind.GLOBAL
        assert resolver.resolution("Beta").kind is ScopeKind.GLOBAL
        assert "loops" in caplog.text

    def test_path_at_depth_bound_resolves(self):
        resolver = resolver_for(chain(MAX_OWNERSHIP_DEPTH))
        resolution = resolver.resolution("N0")
        assert resolution.kind is ScopeKind.PATH
        assert len(resolution.hops) == MAX_OWNERSHIP_DEPTH

    def test_path_beyond_depth_bound_is_global(self, caplog):
        with caplog.at_level(logging.WARNING):
            resolver = resolver_for(chain(MAX_OWNERSHIP_DEPTH + 1))
        assert resolver.resolution("N0").kind is ScopeKind.GLOBAL
        assert resolver.resolution("N1").kind is ScopeKind.PATH
        assert f"exceeds {MAX_OWNERSHIP_DEPTH} hops" in caplog.text


class TestScopeFor:
    def test_binds_tenant(self, scopes):
        assert scopes.scope_for("Organization", "t1") == FieldEquals("id", "t1")
        assert scopes.scope_for("Blog", "t1") == FieldEquals("organizationId", "t1")

    def test_path_scope_is_relation_exists(self, scopes):
        scope = scopes.scope_for("Post", "t1")
        assert isinstance(scope, RelationExists)
        assert scope.condition == FieldEquals("organizationId", "t1")

    def test_no_tenant_denies_scoped_entities(self, scopes):
        assert scopes.scope_for("Post", None) is DENY_ALL
        assert scopes.scope_for("Tag", None) is UNSCOPED

    def test_disabled_tenancy_is_unscoped(self, registry):
        resolver = TenantScopeResolver(registry, TenancyConfig(enabled=False))
        assert resolver.scope_for("Post", "t1") is UNSCOPED
        assert resolver.scope_for("Organization", "t1") is UNSCOPED

    def test_missing_root_entity_is_unscoped(self, registry):
        resolver = TenantScopeResolver(registry, TenancyConfig(root_entity="Company"))
        assert not resolver.enabled
        assert resolver.scope_for("Blog", "t1") is UNSCOPED


class TestStampTenant:
    def test_stamps_direct_entities(self, scopes):
        assert scopes.stamp_tenant({"title": "x"}, "Blog", "t1") == {"title": "x", "organizationId": "t1"}

    def test_keeps_supplied_value(self, scopes):
        data = {"title": "x", "organizationId": "t9"}
        assert scopes.stamp_tenant(data, "Blog", "t1") == data

    def test_path_entities_not_stamped(self, scopes):
        assert scopes.stamp_tenant({"title": "x"}, "Post", "t1") == {"title": "x"}

    def test_does_not_mutate_input(self, scopes):
        data = {"title": "x"}
        scopes.stamp_tenant(data, "Blog", "t1")
        assert data == {"title": "x"}


class TestScopedReads:
    def test_path_scope_filters_rows(self, registry, store, scopes, seeded):
        posts = registry.resolve("posts")
        rows = store.find(posts, scope=scopes.scope_for("Post", seeded["acme"]["id"]))
        assert [r["slug"] for r in rows] == ["hello"]

    def test_two_hop_scope_filters_rows(self, registry, store, scopes, seeded):
        comments = registry.resolve("comments")
        store.insert(comments, {"body": "mine", "postId": seeded["acme_post"]["id"]})
        store.insert(comments, {"body": "theirs", "postId": seeded["globex_post"]["id"]})
        rows = store.find(comments, scope=scopes.scope_for("Comment", seeded["globex"]["id"]))
        assert [r["body"] for r in rows] == ["theirs"]

    def test_deny_all_returns_nothing(self, registry, store, scopes, seeded):
        assert store.find(registry.resolve("posts"), scope=scopes.scope_for("Post", None)) == []

    def test_trashed_intermediate_hides_descendants(self, registry, store, scopes, seeded):
        comments = registry.resolve("comments")
        store.insert(comments, {"body": "orphaned", "postId": seeded["acme_post"]["id"]})
        store.soft_delete(registry.resolve("posts"), seeded["acme_post"])
        assert store.find(comments, scope=scopes.scope_for("Comment", seeded["acme"]["id"])) == []
