"""
Tests for review endpoints and ownership-scoped mutation.
"""

import pytest


@pytest.fixture
def review_url(book):
    return f"/api/reviews/book/{book['id']}"


@pytest.fixture
def review_by_a(client, user_a, review_url, auth_header):
    response = client.post(review_url, json={"rating": 4, "comment": "Loved it"}, headers=auth_header(user_a["token"]))
    assert response.status_code == 201
    return response.json()["data"]


class TestCreateReview:
    """Test cases for POST /api/reviews/book/{book_id}."""

    def test_create_review(self, client, user_a, review_url, book, auth_header):
        response = client.post(
            review_url, json={"rating": 5, "comment": "  Masterpiece  "}, headers=auth_header(user_a["token"])
        )

        assert response.status_code == 201
        review = response.json()["data"]
        assert review["book"] == book["id"]
        assert review["rating"] == 5
        assert review["comment"] == "Masterpiece"
        assert review["user"] == {"id": user_a["user"]["id"], "name": "A", "email": "a@x.com"}

    def test_one_review_per_user_per_book(self, client, user_a, user_b, review_url, review_by_a, auth_header):
        again = client.post(review_url, json={"rating": 1, "comment": "Changed my mind"},
                            headers=auth_header(user_a["token"]))
        other_user = client.post(review_url, json={"rating": 3, "comment": "Fine"},
                                 headers=auth_header(user_b["token"]))

        assert again.status_code == 409
        assert again.json()["message"] == "You have already reviewed this book"
        assert other_user.status_code == 201

    def test_review_missing_book(self, client, user_a, auth_header):
        response = client.post(
            "/api/reviews/book/65f000000000000000000000",
            json={"rating": 3, "comment": "?"},
            headers=auth_header(user_a["token"]),
        )

        assert response.status_code == 404
        assert response.json()["message"] == "Book not found"

    def test_requires_authentication(self, client, review_url):
        response = client.post(review_url, json={"rating": 3, "comment": "Anonymous"})
        assert response.status_code == 401

    @pytest.mark.parametrize("payload", [
        {"rating": 0, "comment": "Too low"},
        {"rating": 6, "comment": "Too high"},
        {"rating": 3, "comment": "   "},
        {"rating": 3, "comment": "x" * 1001},
        {"comment": "No rating"},
    ])
    def test_invalid_review(self, client, user_a, review_url, payload, auth_header):
        response = client.post(review_url, json=payload, headers=auth_header(user_a["token"]))

        assert response.status_code == 422
        assert response.json()["errors"]


class TestListReviews:
    """Test cases for GET /api/reviews/book/{book_id}."""

    def test_list_is_public_and_populated(self, client, user_a, user_b, review_url, review_by_a, auth_header):
        client.post(review_url, json={"rating": 2, "comment": "Meh"}, headers=auth_header(user_b["token"]))

        response = client.get(review_url)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["pagination"] == {"page": 1, "limit": 10, "total": 2, "pages": 1}
        assert [review["user"]["name"] for review in data["reviews"]] == ["B", "A"]

    def test_pagination(self, client, register_user, review_url, auth_header):
        for index in range(3):
            reader = register_user(f"reader{index}@x.com")
            client.post(review_url, json={"rating": 3, "comment": "ok"}, headers=auth_header(reader["token"]))

        data = client.get(f"{review_url}?page=2&limit=2").json()["data"]

        assert len(data["reviews"]) == 1
        assert data["pagination"]["pages"] == 2


class TestUpdateReview:
    """Test cases for PUT /api/reviews/{id}."""

    def test_owner_updates_review(self, client, user_a, review_by_a, auth_header):
        response = client.put(
            f"/api/reviews/{review_by_a['id']}",
            json={"rating": 2, "comment": "Second read was worse"},
            headers=auth_header(user_a["token"]),
        )

        assert response.status_code == 200
        review = response.json()["data"]
        assert review["rating"] == 2
        assert review["comment"] == "Second read was worse"
        assert review["user"]["email"] == "a@x.com"

    def test_other_user_gets_not_found(self, client, store, user_b, review_by_a, auth_header):
        response = client.put(
            f"/api/reviews/{review_by_a['id']}",
            json={"rating": 1, "comment": "Hijacked"},
            headers=auth_header(user_b["token"]),
        )

        assert response.status_code == 404
        assert response.json()["message"] == "Review not found"
        assert store.reviews[review_by_a["id"]]["comment"] == "Loved it"

    def test_admin_cannot_update_others_review(self, client, store, admin, review_by_a, auth_header):
        response = client.put(
            f"/api/reviews/{review_by_a['id']}",
            json={"rating": 1, "comment": "Moderated"},
            headers=auth_header(admin["token"]),
        )

        assert response.status_code == 404
        assert store.reviews[review_by_a["id"]]["rating"] == 4

    def test_not_owned_and_missing_are_indistinguishable(self, client, user_b, review_by_a, auth_header):
        payload = {"rating": 1, "comment": "x"}
        not_owned = client.put(f"/api/reviews/{review_by_a['id']}", json=payload, headers=auth_header(user_b["token"]))
        missing = client.put("/api/reviews/65f000000000000000000000", json=payload, headers=auth_header(user_b["token"]))

        assert not_owned.status_code == missing.status_code == 404
        assert not_owned.json() == missing.json()


class TestDeleteReview:
    """Test cases for DELETE /api/reviews/{id}."""

    def test_owner_deletes_review(self, client, store, user_a, review_by_a, auth_header):
        response = client.delete(f"/api/reviews/{review_by_a['id']}", headers=auth_header(user_a["token"]))

        assert response.status_code == 204
        assert review_by_a["id"] not in store.reviews

    def test_other_user_gets_not_found(self, client, store, user_b, review_by_a, auth_header):
        response = client.delete(f"/api/reviews/{review_by_a['id']}", headers=auth_header(user_b["token"]))

        assert response.status_code == 404
        assert review_by_a["id"] in store.reviews

    def test_admin_deletes_any_review(self, client, store, admin, review_by_a, auth_header):
        response = client.delete(f"/api/reviews/{review_by_a['id']}", headers=auth_header(admin["token"]))

        assert response.status_code == 204
        assert store.reviews == {}

    def test_admin_deleting_missing_review(self, client, admin, auth_header):
        response = client.delete("/api/reviews/65f000000000000000000000", headers=auth_header(admin["token"]))
        assert response.status_code == 404

    def test_user_can_review_again_after_deleting(self, client, user_a, review_url, review_by_a, auth_header):
        client.delete(f"/api/reviews/{review_by_a['id']}", headers=auth_header(user_a["token"]))

        response = client.post(review_url, json={"rating": 3, "comment": "Round two"},
                               headers=auth_header(user_a["token"]))

        assert response.status_code == 201

    def test_requires_authentication(self, client, review_by_a):
        assert client.delete(f"/api/reviews/{review_by_a['id']}").status_code == 401
