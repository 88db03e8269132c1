from conftest import make_product


def test_cart_round_trip(client):
    item = make_product("p1").to_dict()

    assert client.get("/api/session/cart").get_json() == []
    resp = client.post("/api/session/cart", json={"cart": [item]})

    assert resp.status_code == 200
    assert resp.get_json() == {"message": "ok"}
    assert client.get("/api/session/cart").get_json() == [item]


def test_cart_is_per_session(app, client):
    client.post("/api/session/cart", json={"cart": [make_product("p1").to_dict()]})

    assert app.test_client().get("/api/session/cart").get_json() == []


def test_invalid_cart_is_rejected(client):
    assert client.post("/api/session/cart", json={"cart": "p1"}).status_code == 400
    assert client.post("/api/session/cart", json={"cart": [{"name": "no category"}]}).status_code == 400
    assert client.post("/api/session/cart", json=["p1"]).status_code == 400


def test_wishlist_is_deduplicated(client):
    resp = client.post("/api/session/wishlist", json={"wishlist": ["p1", "p2", "p1"]})

    assert resp.status_code == 200
    assert client.get("/api/session/wishlist").get_json() == ["p1", "p2"]


def test_invalid_wishlist_is_rejected(client):
    assert client.post("/api/session/wishlist", json={"wishlist": [1]}).status_code == 400
    assert client.post("/api/session/wishlist", json={"wishlist": [""]}).status_code == 400


def test_reading_does_not_create_a_session(client, store):
    client.get("/api/session/cart")
    client.get("/api/session/wishlist")

    assert client.get_cookie("catalog_session") is None
    with store.connect() as conn:
        assert conn.execute("SELECT COUNT(*) FROM sessions").fetchone()[0] == 0


def test_session_cookie_flags(client):
    resp = client.post("/api/session/wishlist", json={"wishlist": ["p1"]})

    cookie = resp.headers["Set-Cookie"]
    assert cookie.startswith("catalog_session=")
    assert "HttpOnly" in cookie
    assert "SameSite=Lax" in cookie
    assert "Max-Age=2592000" in cookie
