"""
Unit tests for the access policy decision functions.
"""

import pytest

from library_api import policy
from library_api.models import Role


@pytest.fixture
def owner(make_actor):
    return make_actor()


@pytest.fixture
def stranger(make_actor):
    return make_actor()


@pytest.fixture
def admin_actor(make_actor):
    return make_actor(role=Role.ADMIN)


@pytest.fixture
def review(owner):
    return {"id": "r1", "book": "b1", "user": owner.id, "rating": 4, "comment": "ok"}


class TestBookPolicy:
    """Book mutations depend on role only."""

    def test_admin_may_administer_books(self, admin_actor):
        assert policy.can_create_book(admin_actor)
        assert policy.can_modify_book(admin_actor)
        assert policy.can_delete_book(admin_actor)

    def test_user_may_not_administer_books(self, owner):
        assert not policy.can_create_book(owner)
        assert not policy.can_modify_book(owner)
        assert not policy.can_delete_book(owner)

    def test_anonymous_may_not_administer_books(self):
        assert not policy.can_create_book(None)
        assert not policy.can_modify_book(None)


class TestReviewPolicy:
    """Review mutations depend on ownership, with an admin bypass for delete only."""

    def test_create_requires_existing_book(self, owner):
        assert policy.can_create_review(owner, {"id": "b1"})
        assert not policy.can_create_review(owner, None)
        assert not policy.can_create_review(None, {"id": "b1"})

    def test_owner_may_modify_and_delete(self, owner, review):
        assert policy.can_modify_review(owner, review)
        assert policy.can_delete_review(owner, review)

    def test_stranger_may_not_modify_or_delete(self, stranger, review):
        assert not policy.can_modify_review(stranger, review)
        assert not policy.can_delete_review(stranger, review)

    def test_admin_may_delete_but_not_modify(self, admin_actor, review):
        assert policy.can_delete_review(admin_actor, review)
        assert not policy.can_modify_review(admin_actor, review)

    def test_populated_owner_is_understood(self, owner, review):
        populated = dict(review, user={"id": owner.id, "name": "Owner", "email": "o@x.com"})
        assert policy.can_modify_review(owner, populated)

    def test_missing_review_is_never_allowed(self, owner, admin_actor):
        assert not policy.can_modify_review(owner, None)
        assert not policy.can_delete_review(owner, None)
        assert not policy.can_delete_review(admin_actor, None)
