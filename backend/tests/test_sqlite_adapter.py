"""Tests for the SQLite data store."""

import pytest

from resourcegate.core.predicates import AnyOf, FieldContains, FieldEquals
from resourcegate.persistence import ConstraintViolation, DataStore


@pytest.fixture
def posts(registry):
    return registry.resolve("posts")


@pytest.fixture
def blogs(registry):
    return registry.resolve("blogs")


class TestProtocol:
    def test_adapter_is_a_data_store(self, store):
        assert isinstance(store, DataStore)

    def test_relationship_metadata(self, store):
        assert {e.name for e in store.relationship_metadata("Post")} == {"blog", "comments"}


class TestWrites:
    def test_insert_generates_id_and_timestamps(self, store, blogs):
        row = store.insert(blogs, {"title": "B"})
        assert len(row["id"]) == 32
        assert row["createdAt"] == row["updatedAt"]

    def test_insert_keeps_supplied_id(self, store, blogs):
        assert store.insert(blogs, {"id": "fixed", "title": "B"})["id"] == "fixed"

    def test_update(self, store, blogs):
        row = store.insert(blogs, {"title": "Before"})
        updated = store.update(blogs, row, {"title": "After", "id": "ignored"})
        assert updated["id"] == row["id"]
        assert updated["title"] == "After"

    def test_unique_violation(self, store, posts, seeded):
        with pytest.raises(ConstraintViolation) as exc:
            store.insert(posts, {"title": "Dup", "slug": "hello", "blogId": seeded["acme_blog"]["id"]})
        assert exc.value.field == "slug"

    def test_soft_delete_and_restore(self, store, posts, seeded):
        post = seeded["acme_post"]
        trashed = store.soft_delete(posts, post)
        assert trashed["deletedAt"] is not None
        assert store.get(posts, post["id"]) is None
        assert store.get(posts, post["id"], only_trashed=True)["id"] == post["id"]

        restored = store.restore(posts, trashed)
        assert restored["deletedAt"] is None
        assert store.get(posts, post["id"])["id"] == post["id"]

    def test_delete(self, store, blogs):
        row = store.insert(blogs, {"title": "Gone"})
        assert store.delete(blogs, row) is True
        assert store.get(blogs, row["id"]) is None
        assert store.delete(blogs, row) is False


class TestTransactions:
    def test_commit(self, store, blogs):
        with store.transaction():
            row = store.insert(blogs, {"title": "Kept"})
        assert store.get(blogs, row["id"]) is not None

    def test_rollback_on_error(self, store, blogs):
        with pytest.raises(RuntimeError):
            with store.transaction():
                row = store.insert(blogs, {"title": "Lost"})
                raise RuntimeError("boom")
        assert store.get(blogs, row["id"]) is None
        assert not store.in_transaction

    def test_nested_rollback_keeps_outer_work(self, store, blogs):
        with store.transaction():
            outer = store.insert(blogs, {"title": "Outer"})
            with pytest.raises(RuntimeError):
                with store.transaction():
                    inner = store.insert(blogs, {"title": "Inner"})
                    raise RuntimeError("inner")
        assert store.get(blogs, outer["id"]) is not None
        assert store.get(blogs, inner["id"]) is None

    def test_with_transaction_returns_value(self, store, blogs):
        row = store.with_transaction(lambda: store.insert(blogs, {"title": "Fn"}))
        assert store.get(blogs, row["id"])["title"] == "Fn"


class TestQueries:
    def test_filter_predicates(self, store, posts, seeded):
        rows = store.find(posts, AnyOf((FieldEquals("status", "draft"), FieldContains("title", "SEC"))), sort=[("title", False)])
        assert [r["slug"] for r in rows] == ["hello", "secret"]

    def test_contains_matches_wildcards_literally(self, store, blogs):
        store.insert(blogs, {"title": "100% Pure"})
        store.insert(blogs, {"title": "snake_case"})
        store.insert(blogs, {"title": "snakeXcase"})
        assert [b["title"] for b in store.find(blogs, FieldContains("title", "%"))] == ["100% Pure"]
        assert [b["title"] for b in store.find(blogs, FieldContains("title", "E_C"))] == ["snake_case"]
        assert store.find(blogs, FieldContains("title", "\\")) == []

    def test_pagination(self, store, blogs):
        for i in range(5):
            store.insert(blogs, {"title": f"Blog {i}"})
        result = store.query(blogs, sort=[("title", True)], page=2, per_page=2)
        assert [r["title"] for r in result["data"]] == ["Blog 2", "Blog 1"]
        assert result["pagination"] == {"total": 5, "page": 2, "perPage": 2, "lastPage": 3}

    def test_unpaginated_query(self, store, blogs):
        store.insert(blogs, {"title": "Only"})
        result = store.query(blogs)
        assert result["pagination"] is None
        assert len(result["data"]) == 1

    def test_unknown_sort_field(self, store, blogs):
        with pytest.raises(ValueError, match="Unknown sort field"):
            store.find(blogs, sort=[("nope", False)])


class TestLoadRelated:
    def test_to_one(self, store, posts, seeded):
        related = store.load_related(posts, [seeded["acme_post"], seeded["globex_post"]], "blog")
        assert related[seeded["acme_post"]["id"]]["title"] == "Acme News"
        assert related[seeded["globex_post"]["id"]]["title"] == "Globex News"

    def test_to_many_skips_trashed(self, store, posts, blogs, seeded):
        blog = seeded["acme_blog"]
        extra = store.insert(posts, {"title": "Two", "slug": "two", "blogId": blog["id"]})
        store.soft_delete(posts, extra)
        related = store.load_related(blogs, [blog], "posts")
        assert [p["slug"] for p in related[blog["id"]]] == ["hello"]

    def test_unknown_relation(self, store, posts, seeded):
        with pytest.raises(ValueError, match="no relation 'author'"):
            store.load_related(posts, [seeded["acme_post"]], "author")
