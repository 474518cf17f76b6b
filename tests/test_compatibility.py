import pytest

from autoparts_catalog import compatibility, crud, schemas
from autoparts_catalog.compatibility import Selection
from autoparts_catalog.errors import NotFoundError


def _names(parts) -> list:
    return [p["name"] if isinstance(p, dict) else p.name for p in parts]


def _public_parts(client, **params) -> list:
    response = client.get("/api/parts", params=params)
    assert response.status_code == 200, response.text
    return response.json()["data"]["parts"]


def test_selection_clears_lower_levels():
    full = Selection().choose_brand(1).choose_model(2).choose_motorisation(3)
    assert full == Selection(brand_id=1, model_id=2, motorisation_id=3)
    assert full.choose_model(5) == Selection(brand_id=1, model_id=5)
    assert full.choose_brand(9) == Selection(brand_id=9)
    with pytest.raises(AttributeError):
        full.brand_id = 4


def test_model_selection_matches_any_of_its_motorisations(client, catalog):
    # Oil filter is linked to the Clio dCi only
    assert _names(_public_parts(client, modelId=catalog["clio"]["id"])) == ["Front bumper", "Oil filter"]
    assert _names(_public_parts(client, motorisationId=catalog["dci"]["id"])) == ["Oil filter"]
    assert _names(_public_parts(client, motorisationId=catalog["tce"]["id"])) == ["Front bumper"]


def test_motorisation_is_more_specific_than_model(client, catalog):
    parts = _public_parts(client, modelId=catalog["clio"]["id"], motorisationId=catalog["tce"]["id"])
    assert _names(parts) == ["Front bumper"]


def test_part_spans_brands(client, catalog):
    assert _names(_public_parts(client, modelId=catalog["208"]["id"])) == ["Front bumper"]
    assert _names(_public_parts(client, modelId=catalog["clio"]["id"])) == ["Front bumper", "Oil filter"]


def test_unknown_motorisation_falls_back_to_model(client, catalog):
    parts = _public_parts(client, modelId=catalog["clio"]["id"], motorisationId=999)
    assert _names(parts) == ["Front bumper", "Oil filter"]


def test_unknown_motorisation_without_model_is_empty(client, catalog):
    assert _public_parts(client, motorisationId=999) == []


def test_unknown_model_or_model_without_motorisations_is_empty(client, post, catalog):
    assert _public_parts(client, modelId=999) == []
    bare = post("models", {"name": "Twingo", "brandId": catalog["renault"]["id"]})
    assert _public_parts(client, modelId=bare["id"]) == []


def test_no_selection_lists_every_part(client, catalog):
    assert _names(_public_parts(client)) == ["Brake pads", "Front bumper", "Oil filter"]


def test_category_by_id_includes_children(client, catalog):
    parts = _public_parts(client, modelId=catalog["clio"]["id"], categoryId=catalog["moteur"]["id"])
    assert _names(parts) == ["Oil filter"]
    parts = _public_parts(client, modelId=catalog["clio"]["id"], categoryId=catalog["filtres"]["id"])
    assert _names(parts) == ["Oil filter"]


def test_category_by_folder_name_and_alias(client, catalog):
    parts = _public_parts(client, modelId=catalog["clio"]["id"], categoryId="Pare-chocs")
    assert _names(parts) == ["Front bumper"]
    # On-disk spelling of the main category
    parts = _public_parts(client, modelId=catalog["208"]["id"], categoryId="Carosserie")
    assert _names(parts) == ["Front bumper"]


def test_unresolved_category_never_widens(client, catalog):
    assert _public_parts(client, modelId=catalog["clio"]["id"], categoryId="Echappement") == []
    assert _public_parts(client, modelId=catalog["clio"]["id"], categoryId="4242") == []


@pytest.mark.parametrize("category", ["\u00b2", "9" * 30, "0"])
def test_category_id_that_is_not_a_stored_id(client, catalog, category):
    response = client.get("/api/parts", params={"modelId": catalog["clio"]["id"], "categoryId": category})
    assert response.status_code == 200
    assert response.json()["data"] == {"parts": []}


def test_name_fallback_when_both_spellings_are_rows(client, db, catalog):
    # The folder spelling exists as its own empty row, the parts sit under the display spelling
    crud.create_category(db, schemas.CategoryCreate(name="Carosserie"))
    parts = _public_parts(client, modelId=catalog["208"]["id"], categoryId="Carosserie")
    assert _names(parts) == ["Front bumper"]
    assert _names(_public_parts(client, modelId=catalog["clio"]["id"], categoryId="Carosserie")) == ["Front bumper"]


def test_compatible_parts_are_fully_joined(db, catalog):
    parts = compatibility.find_compatible_parts(db, Selection(model_id=catalog["208"]["id"]))
    bumper = parts[0]
    assert bumper.category.parent.name == "Carrosserie"
    assert {(m.model.brand.name, m.name) for m in bumper.motorisations} == {
        ("Peugeot", "1.2 PureTech 82"), ("Renault", "1.2 TCe 120"),
    }


def test_compatible_motorisations_inverse(client, db, catalog):
    rows = compatibility.compatible_motorisations(db, catalog["bumper"]["id"])
    assert [(m.model.brand.name, m.model.name, m.name) for m in rows] == [
        ("Peugeot", "208", "1.2 PureTech 82"), ("Renault", "Clio IV", "1.2 TCe 120"),
    ]
    assert compatibility.compatible_motorisations(db, catalog["pads"]["id"]) == []
    with pytest.raises(NotFoundError):
        compatibility.compatible_motorisations(db, 999)

    data = client.get(f"/api/admin/parts/{catalog['oil_filter']['id']}/motorisations").json()["data"]
    assert [m["name"] for m in data] == ["1.5 dCi 90"]
