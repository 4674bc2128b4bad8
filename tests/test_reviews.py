import pytest

import reviews
from database import to_object_id
from errors import DuplicateError, NotFoundError, UnauthorizedError
from tests.conftest import make_product, make_user


def product_stats(db, product_id):
    product = db["product"].find_one({"_id": to_object_id(product_id)})
    return product["rating"], product["numReviews"]


def test_rating_follows_creates_and_deletes(db):
    pid = make_product(db)
    asha, _ = make_user(db)
    ravi, _ = make_user(db, "Ravi", "ravi@gmail.com")

    four = reviews.create_review(db, pid, asha, 4, "Good phone")
    reviews.create_review(db, pid, ravi, 5, "Great phone")
    assert product_stats(db, pid) == (4.5, 2)

    reviews.delete_review(db, str(four["_id"]), asha)
    assert product_stats(db, pid) == (5.0, 1)


def test_rating_rounds_to_one_decimal_and_resets_to_zero(db):
    pid = make_product(db)
    users = [make_user(db, f"U{i}", f"u{i}@gmail.com")[0] for i in range(3)]
    created = [reviews.create_review(db, pid, u, r, "ok") for u, r in zip(users, [5, 4, 4])]
    assert product_stats(db, pid) == (4.3, 3)

    for review, user in zip(created, users):
        reviews.delete_review(db, str(review["_id"]), user)
    assert product_stats(db, pid) == (0, 0)


def test_rating_tie_rounds_half_up(db):
    pid = make_product(db)
    users = [make_user(db, f"U{i}", f"u{i}@gmail.com")[0] for i in range(4)]
    for user, rating in zip(users, [4, 4, 5, 4]):
        reviews.create_review(db, pid, user, rating, "ok")

    assert product_stats(db, pid) == (4.3, 4)


def test_second_review_by_same_user_is_rejected(db):
    pid = make_product(db)
    asha, _ = make_user(db)
    reviews.create_review(db, pid, asha, 4, "Good phone")

    with pytest.raises(DuplicateError):
        reviews.create_review(db, pid, asha, 1, "Changed my mind")

    assert db["review"].count_documents({}) == 1
    assert product_stats(db, pid) == (4.0, 1)


def test_update_recomputes_and_is_author_only(db):
    pid = make_product(db)
    asha, _ = make_user(db)
    ravi, _ = make_user(db, "Ravi", "ravi@gmail.com")
    review = reviews.create_review(db, pid, asha, 2, "Meh")

    with pytest.raises(UnauthorizedError):
        reviews.update_review(db, str(review["_id"]), ravi, rating=5)

    updated = reviews.update_review(db, str(review["_id"]), asha, rating=5)
    assert updated["rating"] == 5
    assert updated["comment"] == "Meh"
    assert product_stats(db, pid) == (5.0, 1)


def test_delete_by_admin_or_author_only(db):
    pid = make_product(db)
    asha, _ = make_user(db)
    ravi, _ = make_user(db, "Ravi", "ravi@gmail.com")
    admin, _ = make_user(db, "Admin", "admin@gmail.com", is_admin=True)
    review = reviews.create_review(db, pid, asha, 3, "Fine")

    with pytest.raises(UnauthorizedError):
        reviews.delete_review(db, str(review["_id"]), ravi)
    reviews.delete_review(db, str(review["_id"]), admin)
    assert product_stats(db, pid) == (0, 0)


def test_review_for_missing_product(db):
    asha, _ = make_user(db)
    with pytest.raises(NotFoundError):
        reviews.create_review(db, "64b7f0c2a1b2c3d4e5f60718", asha, 4, "Where is it")


def test_review_endpoints(client, db):
    pid = make_product(db)
    _, headers = make_user(db)
    _, admin_headers = make_user(db, "Admin", "admin@gmail.com", is_admin=True)

    res = client.post("/api/reviews", headers=headers, json={"productId": pid, "rating": 4, "comment": "Nice"})
    assert res.status_code == 201
    review_id = res.json()["id"]

    dup = client.post("/api/reviews", headers=headers, json={"productId": pid, "rating": 5, "comment": "Again"})
    assert dup.status_code == 400

    listed = client.get("/api/reviews", params={"productId": pid}).json()
    assert [r["userName"] for r in listed] == ["Asha Rao"]

    assert client.get("/api/reviews/admin", headers=headers).status_code == 401
    admin_list = client.get("/api/reviews/admin", headers=admin_headers).json()
    assert admin_list[0]["productName"] == "Pixel 8"

    assert client.get(f"/api/products/{pid}").json()["rating"] == 4
    assert client.delete(f"/api/reviews/{review_id}", headers=headers).status_code == 200
    assert client.get(f"/api/products/{pid}").json()["numReviews"] == 0


def test_review_rating_out_of_range(client, db):
    pid = make_product(db)
    _, headers = make_user(db)
    res = client.post("/api/reviews", headers=headers, json={"productId": pid, "rating": 6, "comment": "Too good"})
    assert res.status_code == 400
