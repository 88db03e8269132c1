import pytest

from errors import ValidationError
from models import Product, Review, products_from_list


def test_product_from_minimal_dict_takes_defaults():
    p = Product.from_dict({"name": "Slab", "category": "Marble", "price": 10})

    assert p.id == ""
    assert p.description == ""
    assert p.image_urls == ()
    assert p.is_in_stock is True
    assert p.is_new_arrival is False
    assert p.is_visible is True
    assert p.reviews == ()
    assert p.version is None


def test_product_to_dict_uses_wire_names():
    p = Product(
        id="p1",
        name="Slab",
        description="Honed",
        category="Marble",
        price=12.5,
        image_urls=("a.jpg", "b.jpg"),
        reviews=(Review("r1", "Ann", 4, "Nice", "2024-01-02"),),
    )

    data = p.to_dict()

    assert data["imageUrls"] == ["a.jpg", "b.jpg"]
    assert data["isInStock"] is True
    assert data["isNewArrival"] is False
    assert data["reviews"][0]["userName"] == "Ann"
    assert "version" not in data
    assert Product.from_dict(data) == p


def test_version_is_emitted_when_known():
    p = Product("p1", "Slab", "", "Marble", 1.0, version=3)
    assert p.to_dict()["version"] == 3


def test_sqlite_style_flags_are_accepted():
    p = Product.from_dict({"name": "Slab", "category": "Marble", "price": 1, "isInStock": 0})
    assert p.is_in_stock is False


@pytest.mark.parametrize(
    "raw",
    [
        {"category": "Marble", "price": 1},
        {"name": "  ", "category": "Marble", "price": 1},
        {"name": "Slab", "price": 1},
        {"name": "Slab", "category": "Marble", "price": -1},
        {"name": "Slab", "category": "Marble", "price": True},
        {"name": "Slab", "category": "Marble", "price": "cheap"},
        {"name": "Slab", "category": "Marble", "price": 1, "imageUrls": "a.jpg"},
        {"name": "Slab", "category": "Marble", "price": 1, "isVisible": "yes"},
        {"name": "Slab", "category": "Marble", "price": 1, "version": "2"},
    ],
)
def test_invalid_products_are_rejected(raw):
    with pytest.raises(ValidationError):
        Product.from_dict(raw)


@pytest.mark.parametrize("rating", [0, 6, 4.5, True, None, "five"])
def test_review_rating_must_be_one_to_five(rating):
    with pytest.raises(ValidationError):
        Review.from_dict({"userName": "Ann", "rating": rating, "comment": "ok"})


def test_review_requires_name_and_comment():
    with pytest.raises(ValidationError):
        Review.from_dict({"userName": "", "rating": 3, "comment": "ok"})
    with pytest.raises(ValidationError):
        Review.from_dict({"userName": "Ann", "rating": 3, "comment": ""})


def test_average_rating_and_with_review():
    p = Product("p1", "Slab", "", "Marble", 1.0)
    assert p.average_rating() == 0.0

    p = p.with_review(Review("r1", "Ann", 5, "Great", "2024-01-01"))
    p = p.with_review(Review("r2", "Bob", 2, "Meh", "2024-01-02"))

    assert [r.id for r in p.reviews] == ["r1", "r2"]
    assert p.average_rating() == 3.5


def test_products_from_list_requires_array():
    with pytest.raises(ValidationError):
        products_from_list({"name": "Slab"})
    assert products_from_list([]) == []
