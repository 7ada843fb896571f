"""HTTP surface: routing, payloads and error mapping."""
import pytest
from fastapi.testclient import TestClient

from catalog.main import app, get_engine


@pytest.fixture
def client(discovered):
    app.dependency_overrides[get_engine] = lambda: discovered
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"store": "up"}


def test_discover(client):
    response = client.post("/registry/brand/discover")
    assert response.status_code == 200
    assert sorted(e["slug"] for e in response.json()) == ["chanel", "dior", "hermes"]


def test_get_by_slug(client):
    response = client.get("/registry/brand/slug/dior")
    assert response.status_code == 200
    assert response.json() == {"id": "dior", "originalName": "Dior", "localizedName": "Диор", "slug": "dior"}


def test_not_found_maps_to_404(client):
    response = client.get("/registry/brand/slug/guerlain")
    assert response.status_code == 404
    body = response.json()
    assert body["error"] == "NotFound"
    assert body["details"] == {"slug": "guerlain"}


def test_unknown_kind_is_rejected(client):
    assert client.get("/registry/bottle/slug/dior").status_code == 422


def test_initial(client):
    response = client.get("/registry/brand/initial/h")
    assert [e["originalName"] for e in response.json()] == ["Hermès"]


def test_registry_search(client):
    response = client.get("/registry/note/search", params={"q": "a", "limit": 2})
    body = response.json()
    assert body["totalItems"] == 9
    assert body["totalPages"] == 5
    assert len(body["items"]) == 2


def test_registry_search_requires_query(client):
    assert client.get("/registry/note/search").status_code == 400


def test_create_and_conflict(client):
    created = client.post("/registry/brand", json={"originalName": "Guerlain", "localizedName": "Герлен"})
    assert created.status_code == 201
    assert created.json()["id"] == "guerlain"

    duplicate = client.post("/registry/brand", json={"originalName": "guerlain"})
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "Conflict"


def test_rename_propagates(client):
    response = client.patch("/registry/brand/dior", json={"originalName": "Christian Dior"})
    assert response.status_code == 200
    assert response.json()["affectedRecords"] == 2

    perfumes = client.get("/perfumes/search", params={"brand": "dior"}).json()
    assert {p["brand"] for p in perfumes["items"]} == {"Christian Dior"}


def test_delete_with_and_without_cascade(client):
    kept = client.delete("/registry/note/bergamot", params={"cascade": "false"})
    assert kept.json()["affectedRecords"] == 0

    removed = client.delete("/registry/brand/chanel")
    assert removed.json()["affectedRecords"] == 2
    assert client.get("/perfumes/search", params={"query": "chanel"}).json()["totalItems"] == 0


def test_merge_and_duplicates(client):
    client.post("/registry/brand", json={"originalName": "Deor"})
    groups = client.get("/registry/brand/duplicates").json()
    assert [sorted(e["id"] for e in g["entities"]) for g in groups] == [["deor", "dior"]]

    merged = client.post("/registry/brand/deor/merge/dior")
    assert merged.status_code == 200
    assert merged.json()["entity"]["id"] == "dior"


def test_perfume_search(client):
    response = client.get("/perfumes/search", params={"query": "chanel", "sortBy": "A-Z"})
    body = response.json()
    assert [p["id"] for p in body["items"]] == ["p4", "p3"]
    assert body["page"] == 1
    assert "searchKeys" not in body["items"][0]


def test_perfume_search_then_by(client):
    response = client.get("/perfumes/search", params={"query": "dior", "thenBy": "newest"})
    assert [p["id"] for p in response.json()["items"]] == ["p1", "p2"]


def test_perfume_search_validation(client):
    assert client.get("/perfumes/search", params={"sortBy": "cheapest"}).status_code == 422
    assert client.get("/perfumes/search", params={"limit": 500}).status_code == 400


def test_rate(client):
    payload = {"userId": "u1", "scent": 5, "longevity": 4, "sillage": 3, "packaging": 2, "value": 1}
    response = client.post("/perfumes/p1/ratings", json=payload)
    assert response.status_code == 200
    assert response.json()["ratingValue"] == 6.0

    assert client.post("/perfumes/missing/ratings", json=payload).status_code == 404
