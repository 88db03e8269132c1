import pytest
import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from app import create_app
from client import CatalogClient
from models import Product

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "correct-horse"
API_BASE = "http://localhost/api"


class FlaskTransport(BaseAdapter):
    """Routes requests.Session traffic into a Flask test client.

    The test client keeps the cookie jar, so the session cookie survives
    across calls exactly as it would against a live server.
    """

    def __init__(self, test_client):
        super().__init__()
        self.test_client = test_client

    def send(self, request, **kwargs):
        resp = self.test_client.open(
            request.path_url,
            method=request.method,
            data=request.body,
            headers=dict(request.headers),
        )
        out = requests.Response()
        out.status_code = resp.status_code
        out._content = resp.get_data()
        out.headers = CaseInsensitiveDict(resp.headers)
        out.url = request.url
        out.request = request
        out.reason = resp.status
        out.encoding = "utf-8"
        return out

    def close(self):
        pass


def make_product(product_id="p1", **overrides):
    fields = dict(
        id=product_id,
        name="Glazed Tile",
        description="Glossy white ceramic",
        category="Tiles",
        price=100.0,
        image_urls=("https://img.example/p1.jpg",),
    )
    fields.update(overrides)
    return Product(**fields)


@pytest.fixture
def app(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret",
            "DATABASE": str(tmp_path / "catalog.db"),
            "ADMIN_USERS": [(ADMIN_USERNAME, ADMIN_PASSWORD)],
            "SEED_CATEGORIES": ["Tiles", "Marble"],
            "DIST_DIR": str(tmp_path / "dist"),
            "LOG_LEVEL": "WARNING",
        }
    )
    return app


@pytest.fixture
def store(app):
    return app.extensions["catalog_store"]


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(app):
    c = app.test_client()
    resp = c.post("/api/auth/login", json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    return c


@pytest.fixture
def api(app):
    http = requests.Session()
    http.mount("http://localhost", FlaskTransport(app.test_client()))
    return CatalogClient(API_BASE, http=http)


@pytest.fixture
def admin_api(api):
    api.login(ADMIN_USERNAME, ADMIN_PASSWORD)
    return api
