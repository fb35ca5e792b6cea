"""Shared fixtures: a small blog domain under an Organization tenant root.

Organization <- Blog (organizationId) <- Post (ownership: blog) <- Comment (ownership: post)
Tag is global.
"""

import textwrap
from pathlib import Path

import pytest

from resourcegate.auth.types import Caller, RoleAssignment
from resourcegate.config import TenancyConfig
from resourcegate.core.context import AccessContext
from resourcegate.crud import ResourceService
from resourcegate.metadata import MetadataLoader, ResourceRegistry
from resourcegate.persistence.sqlite import SQLiteAdapter
from resourcegate.redaction import HiddenFieldsCache
from resourcegate.tenancy import TenantScopeResolver
from resourcegate.validation import RequestValidator

RESOURCES = {
    "organizations.yaml": """
        resource: organizations
        entity: Organization
        displayName: Organization
        fields:
          - name: name
            type: name
            validation:
              required: true
          - name: handle
            type: string
            unique: true
        relationships:
          - name: blogs
            type: hasMany
            entity: Blog
            foreignKey: organizationId
    """,
    "blogs.yaml": """
        resource: blogs
        entity: Blog
        displayName: Blog
        fields:
          - name: title
            type: name
            validation:
              required: true
              maxLength: 50
          - name: organizationId
            type: relation
            readOnly: true
            relation:
              entity: Organization
        relationships:
          - name: posts
            type: hasMany
            entity: Post
            foreignKey: blogId
        query:
          filters: [title]
          sorts: [title]
          defaultSort: title
          includes: [organization, posts]
          search: [title]
        pagination:
          enabled: true
          perPage: 15
        audit:
          enabled: true
    """,
    "posts.yaml": """
        resource: posts
        entity: Post
        displayName: Post
        ownership: blog
        softDeletes: true
        fields:
          - name: title
            type: name
            validation:
              required: true
          - name: slug
            type: string
            unique: true
            validation:
              required: true
          - name: body
            type: text
          - name: status
            type: picklist
            options: [draft, published]
          - name: blogId
            type: relation
            validation:
              required: true
            relation:
              entity: Blog
        relationships:
          - name: comments
            type: hasMany
            entity: Comment
            foreignKey: postId
        validation:
          store:
            "*": [title, slug, body, status, blogId]
            author: {title: rules, slug: rules, body: required, blogId: rules}
          update: [title, slug, body, status]
        query:
          filters: [status, title]
          sorts: [title]
          defaultSort: title
          includes: [blog, blog.organization, comments]
          search: [title, blog.title]
        audit:
          enabled: true
    """,
    "comments.yaml": """
        resource: comments
        entity: Comment
        displayName: Comment
        ownership: post
        fields:
          - name: body
            type: text
            validation:
              required: true
          - name: authorEmail
            type: email
          - name: postId
            type: relation
            validation:
              required: true
            relation:
              entity: Post
        hidden: [authorEmail]
        query:
          includes: [post]
    """,
    "tags.yaml": """
        resource: tags
        entity: Tag
        displayName: Tag
        ownership: global
        public: true
        exceptActions: [destroy]
        fields:
          - name: label
            type: string
            unique: true
            validation:
              required: true
    """,
}


# ── Helpers ──────────────────────────────────────────────────────────────────


def write_metadata(root: Path, resources: dict[str, str]) -> Path:
    resources_dir = root / "resources"
    resources_dir.mkdir(parents=True, exist_ok=True)
    for name, content in resources.items():
        (resources_dir / name).write_text(textwrap.dedent(content))
    return root


def make_caller(
    user_id: str = "u1",
    tenant_id: str | None = None,
    permissions: tuple[str, ...] = ("*",),
    role: str | None = None,
) -> Caller:
    return Caller(
        user_id=user_id,
        assignments=(RoleAssignment(user_id, tenant_id, frozenset(permissions), role),),
    )


def make_context(tenant_id: str | None, permissions: tuple[str, ...] = ("*",), **kwargs) -> AccessContext:
    return AccessContext(caller=make_caller(tenant_id=tenant_id, permissions=permissions, **kwargs), tenant_id=tenant_id)


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def metadata_dir(tmp_path) -> Path:
    return write_metadata(tmp_path / "metadata", RESOURCES)


@pytest.fixture
def registry(metadata_dir) -> ResourceRegistry:
    loader = MetadataLoader(metadata_dir)
    loader.load_all()
    return ResourceRegistry.from_loader(loader)


@pytest.fixture
def store(registry, tmp_path):
    adapter = SQLiteAdapter(tmp_path / "test.db", registry)
    adapter.connect()
    for descriptor in registry.descriptors():
        adapter.initialize(descriptor)
    yield adapter
    adapter.close()


@pytest.fixture
def scopes(registry) -> TenantScopeResolver:
    return TenantScopeResolver(registry, TenancyConfig())


@pytest.fixture
def service(registry, store, scopes) -> ResourceService:
    return ResourceService(registry, store, scopes, HiddenFieldsCache(), RequestValidator())


@pytest.fixture
def seeded(registry, store):
    """Two tenants, each with one blog and one post; returns the rows by name."""
    orgs = registry.resolve("organizations")
    blogs = registry.resolve("blogs")
    posts = registry.resolve("posts")

    acme = store.insert(orgs, {"name": "Acme", "handle": "acme"})
    globex = store.insert(orgs, {"name": "Globex", "handle": "globex"})
    acme_blog = store.insert(blogs, {"title": "Acme News", "organizationId": acme["id"]})
    globex_blog = store.insert(blogs, {"title": "Globex News", "organizationId": globex["id"]})
    acme_post = store.insert(posts, {"title": "Hello", "slug": "hello", "status": "draft", "blogId": acme_blog["id"]})
    globex_post = store.insert(
        posts, {"title": "Secret", "slug": "secret", "status": "published", "blogId": globex_blog["id"]}
    )
    return {
        "acme": acme,
        "globex": globex,
        "acme_blog": acme_blog,
        "globex_blog": globex_blog,
        "acme_post": acme_post,
        "globex_post": globex_post,
    }
