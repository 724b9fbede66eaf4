from __future__ import annotations

from streetwise.collection.seeding import DEFAULT_WORK_TYPES, ensure_defaults
from streetwise.core.tenancy import ScopeFilter


def test_defaults_for_a_user(store):
    created = ensure_defaults(store, user_id="u1")
    assert [wt.name for wt in created] == [template["name"] for template in DEFAULT_WORK_TYPES]

    listed = store.list_work_types(ScopeFilter(user_id="u1"))
    assert [wt.sort_order for wt in listed] == [0, 1, 2, 3, 4]
    assert [wt.is_default for wt in listed] == [True, False, False, False, False]
    assert all(wt.org_id is None for wt in listed)


def test_defaults_are_idempotent(store):
    ensure_defaults(store, org_id="o1")
    assert ensure_defaults(store, org_id="o1") == []
    assert len(store.list_work_types(ScopeFilter(org_id="o1"))) == len(DEFAULT_WORK_TYPES)


def test_any_existing_work_type_blocks_seeding(store):
    store.create_work_type({"name": "Custom", "user_id": "u1"})
    assert ensure_defaults(store, user_id="u1") == []
    assert [wt.name for wt in store.list_work_types(ScopeFilter(user_id="u1"))] == ["Custom"]


def test_user_owner_wins_over_organization(store):
    created = ensure_defaults(store, user_id="u1", org_id="o1")
    assert {(wt.user_id, wt.org_id) for wt in created} == {("u1", None)}
    assert store.list_work_types(ScopeFilter(org_id="o1")) == []


def test_no_owner_does_nothing(store):
    assert ensure_defaults(store) == []
    assert store.list_work_types() == []
