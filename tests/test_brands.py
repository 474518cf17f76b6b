import math

import pytest

from autoparts_catalog import crud, schemas
from autoparts_catalog.errors import ConflictError, NotFoundError


def test_create_brand_returns_201_with_zero_model_count(client):
    response = client.post("/api/admin/brands", json={"name": "TestCo", "website": "https://testco.example"})
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Brand created."
    assert body["data"]["name"] == "TestCo"
    assert body["data"]["_count"] == {"models": 0}
    assert body["data"]["createdAt"] is not None


def test_duplicate_brand_name_conflicts(client, post):
    post("brands", {"name": "Renault"})
    response = client.post("/api/admin/brands", json={"name": "Renault"})
    assert response.status_code == 409
    assert response.json() == {"success": False, "error": "Brand 'Renault' already exists."}


def test_brand_uniqueness_is_exact_match(db):
    crud.create_brand(db, schemas.BrandCreate(name="Renault"))
    crud.create_brand(db, schemas.BrandCreate(name="RENAULT"))
    with pytest.raises(ConflictError):
        crud.create_brand(db, schemas.BrandCreate(name="  Renault "))


def test_search_is_case_insensitive_and_crosses_columns(client, post):
    post("brands", {"name": "Renault", "country": "France"})
    post("brands", {"name": "Toyota", "country": "Japan"})
    post("brands", {"name": "Dacia", "description": "Budget cars from the renault group"})

    response = client.get("/api/admin/brands", params={"search": "RENAULT"})
    names = [b["name"] for b in response.json()["data"]["brands"]]
    assert names == ["Dacia", "Renault"]

    response = client.get("/api/admin/brands", params={"search": "japan"})
    assert [b["name"] for b in response.json()["data"]["brands"]] == ["Toyota"]


@pytest.mark.parametrize("limit", [1, 2, 3, 5])
def test_pagination_invariants(client, post, limit):
    for name in ["Alfa Romeo", "BMW", "Citroen", "Dacia", "Fiat"]:
        post("brands", {"name": name})
    total = 5
    total_pages = math.ceil(total / limit)
    for page in range(1, total_pages + 2):
        data = client.get("/api/admin/brands", params={"page": page, "limit": limit}).json()["data"]
        pagination = data["pagination"]
        assert len(data["brands"]) <= limit
        assert pagination["total"] == total
        assert pagination["totalPages"] == total_pages
        assert pagination["hasNext"] is (page < total_pages)
        assert pagination["hasPrev"] is (page > 1)


def test_list_is_ordered_by_name_across_pages(client, post):
    for name in ["Fiat", "Alfa Romeo", "Citroen"]:
        post("brands", {"name": name})
    first = client.get("/api/admin/brands", params={"limit": 2}).json()["data"]["brands"]
    second = client.get("/api/admin/brands", params={"limit": 2, "page": 2}).json()["data"]["brands"]
    assert [b["name"] for b in first + second] == ["Alfa Romeo", "Citroen", "Fiat"]


def test_default_page_size_is_fifty(client):
    pagination = client.get("/api/admin/brands").json()["data"]["pagination"]
    assert pagination == {"page": 1, "limit": 50, "total": 0, "totalPages": 0, "hasNext": False, "hasPrev": False}


@pytest.mark.parametrize("params", [{"page": 0}, {"limit": 0}, {"limit": 1000}, {"page": "two"}])
def test_bad_pagination_parameters_are_rejected(client, params):
    response = client.get("/api/admin/brands", params=params)
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_update_is_a_patch(client, post):
    brand = post("brands", {"name": "Renault", "country": "France", "founded": 1899})
    response = client.put(f"/api/admin/brands/{brand['id']}", json={"description": "French maker"})
    assert response.status_code == 200
    data = client.get(f"/api/admin/brands/{brand['id']}").json()["data"]
    assert data["name"] == "Renault"
    assert data["country"] == "France"
    assert data["founded"] == 1899
    assert data["description"] == "French maker"


def test_rename_to_existing_name_conflicts(client, post):
    post("brands", {"name": "Renault"})
    peugeot = post("brands", {"name": "Peugeot"})
    response = client.put(f"/api/admin/brands/{peugeot['id']}", json={"name": "Renault"})
    assert response.status_code == 409


def test_rename_to_own_name_is_allowed(client, post):
    brand = post("brands", {"name": "Renault"})
    response = client.put(f"/api/admin/brands/{brand['id']}", json={"name": "Renault", "country": "France"})
    assert response.status_code == 200
    assert response.json()["data"]["country"] == "France"


def test_brand_detail_lists_models_with_counts(client, catalog):
    data = client.get(f"/api/admin/brands/{catalog['renault']['id']}").json()["data"]
    assert data["_count"] == {"models": 2}
    assert [(m["name"], m["_count"]["motorisations"]) for m in data["models"]] == [("Clio IV", 2), ("Megane III", 1)]


def test_delete_guard_reports_model_count(client, post):
    brand = post("brands", {"name": "Renault"})
    first = post("models", {"name": "Clio", "brandId": brand["id"]})
    second = post("models", {"name": "Zoe", "brandId": brand["id"]})

    response = client.delete(f"/api/admin/brands/{brand['id']}")
    assert response.status_code == 409
    assert "2 models" in response.json()["error"]
    assert client.get(f"/api/admin/brands/{brand['id']}").status_code == 200

    client.delete(f"/api/admin/models/{first['id']}")
    client.delete(f"/api/admin/models/{second['id']}")
    response = client.delete(f"/api/admin/brands/{brand['id']}")
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Brand deleted."}
    assert client.get(f"/api/admin/brands/{brand['id']}").status_code == 404


def test_unknown_brand_is_not_found(client, db):
    response = client.get("/api/admin/brands/999")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Brand 999 not found."}
    with pytest.raises(NotFoundError):
        crud.delete_brand(db, 999)


def test_public_brands_nest_models_and_motorisations(client, catalog):
    flat = client.get("/api/brands").json()["data"]
    assert [b["name"] for b in flat] == ["Peugeot", "Renault"]
    assert "models" not in flat[0]

    nested = client.get("/api/brands", params={"includeModels": "true"}).json()["data"]
    renault = next(b for b in nested if b["name"] == "Renault")
    clio = next(m for m in renault["models"] if m["name"] == "Clio IV")
    assert [m["name"] for m in clio["motorisations"]] == ["1.2 TCe 120", "1.5 dCi 90"]
