import pytest

from autoparts_catalog import crud, models, schemas
from autoparts_catalog.errors import ConflictError, NotFoundError, ValidationError


def test_model_name_is_unique_per_brand(client, post):
    renault = post("brands", {"name": "Renault"})
    dacia = post("brands", {"name": "Dacia"})
    post("models", {"name": "Duster", "brandId": renault["id"]})
    # Same name under another brand is fine
    post("models", {"name": "Duster", "brandId": dacia["id"]})

    response = client.post("/api/admin/models", json={"name": "Duster", "brandId": dacia["id"]})
    assert response.status_code == 409


def test_model_requires_existing_brand(client):
    response = client.post("/api/admin/models", json={"name": "Ghost", "brandId": 42})
    assert response.status_code == 404
    assert response.json()["error"] == "Brand 42 not found."


def test_model_body_type_is_normalized(post):
    brand = post("brands", {"name": "Renault"})
    model = post("models", {"name": "Espace", "brandId": brand["id"], "bodyType": "minivan"})
    assert model["bodyType"] == "MINIVAN"
    assert model["brand"]["name"] == "Renault"
    assert model["_count"] == {"motorisations": 0}


def test_unknown_body_type_is_rejected(client, post):
    brand = post("brands", {"name": "Renault"})
    response = client.post("/api/admin/models", json={"name": "Espace", "brandId": brand["id"], "bodyType": "tank"})
    assert response.status_code == 400
    assert response.json()["error"].startswith("invalid value for bodyType")


def test_year_order_is_enforced_on_create(client, post):
    brand = post("brands", {"name": "Renault"})
    response = client.post("/api/admin/models",
                           json={"name": "Clio", "brandId": brand["id"], "startYear": 2020, "endYear": 2010})
    assert response.status_code == 400
    assert response.json()["error"] == "startYear must not be after endYear"


def test_year_order_is_enforced_on_update_against_stored_values(db):
    brand = crud.create_brand(db, schemas.BrandCreate(name="Renault"))
    model = crud.create_model(db, schemas.ModelCreate(name="Clio", brand_id=brand.id, start_year=2012, end_year=2019))
    with pytest.raises(ValidationError):
        crud.update_model(db, model.id, schemas.ModelUpdate(start_year=2020))
    updated = crud.update_model(db, model.id, schemas.ModelUpdate(end_year=2021))
    assert (updated.start_year, updated.end_year) == (2012, 2021)


def test_model_update_is_a_patch(client, catalog):
    clio_id = catalog["clio"]["id"]
    response = client.put(f"/api/admin/models/{clio_id}", json={"description": "x"})
    assert response.status_code == 200
    data = client.get(f"/api/admin/models/{clio_id}").json()["data"]
    assert data["description"] == "x"
    assert data["name"] == "Clio IV"
    assert data["startYear"] == 2012
    assert data["endYear"] == 2019
    assert data["bodyType"] == "HATCHBACK"
    assert data["brandId"] == catalog["renault"]["id"]


def test_moving_model_to_unknown_brand_is_not_found(db):
    brand = crud.create_brand(db, schemas.BrandCreate(name="Renault"))
    model = crud.create_model(db, schemas.ModelCreate(name="Clio", brand_id=brand.id))
    with pytest.raises(NotFoundError):
        crud.update_model(db, model.id, schemas.ModelUpdate(brand_id=brand.id + 100))


def test_model_list_filters_and_search_by_brand_name(client, catalog):
    data = client.get("/api/admin/models", params={"search": "peugeot"}).json()["data"]
    assert [m["name"] for m in data["models"]] == ["208"]

    data = client.get("/api/admin/models", params={"brandId": catalog["renault"]["id"]}).json()["data"]
    assert [m["name"] for m in data["models"]] == ["Clio IV", "Megane III"]

    data = client.get("/api/admin/models", params={"bodyType": "Hatchback"}).json()["data"]
    assert [m["name"] for m in data["models"]] == ["Clio IV"]


def test_model_list_is_ordered_by_brand_then_name(client, catalog):
    data = client.get("/api/admin/models").json()["data"]
    assert [(m["brand"]["name"], m["name"]) for m in data["models"]] == [
        ("Peugeot", "208"), ("Renault", "Clio IV"), ("Renault", "Megane III"),
    ]


def test_model_delete_guard_reports_motorisation_count(client, catalog):
    response = client.delete(f"/api/admin/models/{catalog['clio']['id']}")
    assert response.status_code == 409
    assert "2 motorisations" in response.json()["error"]

    response = client.delete(f"/api/admin/models/{catalog['megane']['id']}")
    assert response.json()["error"] == "Cannot delete model 'Megane III': it has 1 motorisation."


def test_public_models_by_brand(client, catalog):
    data = client.get("/api/models", params={"brandId": catalog["renault"]["id"]}).json()["data"]
    assert [m["name"] for m in data] == ["Clio IV", "Megane III"]
    assert data[0]["brand"]["name"] == "Renault"
    assert "motorisations" not in data[0]

    data = client.get("/api/models", params={"brandId": catalog["peugeot"]["id"],
                                             "includeMotorisations": "true"}).json()["data"]
    assert [m["name"] for m in data[0]["motorisations"]] == ["1.2 PureTech 82"]


def test_motorisation_name_is_unique_per_model(client, catalog):
    response = client.post("/api/admin/motorisations",
                           json={"name": "1.5 dCi 90", "engine": "K9K", "modelId": catalog["clio"]["id"]})
    assert response.status_code == 409
    response = client.post("/api/admin/motorisations",
                           json={"name": "1.5 dCi 90", "engine": "K9K", "modelId": catalog["megane"]["id"]})
    assert response.status_code == 201


def test_motorisation_requires_engine_and_existing_model(client, catalog):
    response = client.post("/api/admin/motorisations", json={"name": "2.0", "modelId": catalog["clio"]["id"]})
    assert response.status_code == 400
    assert response.json()["error"] == "missing required field engine"

    response = client.post("/api/admin/motorisations", json={"name": "2.0", "engine": "M5P", "modelId": 999})
    assert response.status_code == 404


def test_motorisation_numeric_fields_are_validated(client, catalog):
    response = client.post("/api/admin/motorisations",
                           json={"name": "2.0", "engine": "M5P", "modelId": catalog["clio"]["id"], "power": "lots"})
    assert response.status_code == 400
    assert response.json()["error"].startswith("invalid value for power")

    response = client.post("/api/admin/motorisations",
                           json={"name": "2.0", "engine": "M5P", "modelId": catalog["clio"]["id"], "power": "200",
                                 "displacement": "1.998", "transmission": "semi-automatic"})
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["power"] == 200
    assert data["displacement"] == pytest.approx(1.998)
    assert data["transmission"] == "SEMI_AUTOMATIC"


def test_motorisation_list_search_crosses_model_and_brand(client, catalog):
    data = client.get("/api/admin/motorisations", params={"search": "megane"}).json()["data"]
    assert [m["name"] for m in data["motorisations"]] == ["1.5 dCi 110"]

    data = client.get("/api/admin/motorisations", params={"search": "k9k"}).json()["data"]
    assert [(m["model"]["name"], m["name"]) for m in data["motorisations"]] == [
        ("Clio IV", "1.5 dCi 90"), ("Megane III", "1.5 dCi 110"),
    ]

    data = client.get("/api/admin/motorisations", params={"fuelType": "diesel"}).json()["data"]
    assert [m["name"] for m in data["motorisations"]] == ["1.5 dCi 90"]

    data = client.get("/api/admin/motorisations", params={"modelId": catalog["208"]["id"]}).json()["data"]
    assert data["pagination"]["total"] == 1
    assert data["motorisations"][0]["model"]["brand"]["name"] == "Peugeot"


def test_motorisation_update_keeps_required_fields(db):
    brand = crud.create_brand(db, schemas.BrandCreate(name="Renault"))
    model = crud.create_model(db, schemas.ModelCreate(name="Clio", brand_id=brand.id))
    m = crud.create_motorisation(db, schemas.MotorisationCreate(name="1.5 dCi", engine="K9K", model_id=model.id))
    updated = crud.update_motorisation(db, m.id, schemas.MotorisationUpdate(power=90))
    assert (updated.name, updated.engine, updated.power) == ("1.5 dCi", "K9K", 90)

    other = crud.create_motorisation(db, schemas.MotorisationCreate(name="1.2 TCe", engine="H5F", model_id=model.id))
    with pytest.raises(ConflictError):
        crud.update_motorisation(db, other.id, schemas.MotorisationUpdate(name="1.5 dCi"))


def test_motorisation_delete_drops_its_compatibility_links(client, db, catalog):
    response = client.delete(f"/api/admin/motorisations/{catalog['dci']['id']}")
    assert response.status_code == 200
    assert db.query(models.PartMotorisation).filter_by(motorisation_id=catalog["dci"]["id"]).count() == 0
    part = client.get(f"/api/admin/parts/{catalog['oil_filter']['id']}").json()["data"]
    assert part["motorisations"] == []
