import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from autoparts_catalog import config, database, models  # noqa: F401  models registers the tables
from autoparts_catalog.main import app


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    database.Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def category_tree(tmp_path, monkeypatch):
    """partCategories/<main>/<sub>/... with the on-disk 'Carosserie' spelling."""
    root = tmp_path / "partCategories"
    (root / "Moteur" / "Filtres").mkdir(parents=True)
    (root / "Moteur" / "Filtres" / "b_filter.webp").write_bytes(b"webp-b")
    (root / "Moteur" / "Filtres" / "a_filter.png").write_bytes(b"png-a")
    (root / "Moteur" / "Filtres" / "notes.txt").write_text("not an image")
    (root / "Moteur" / "Courroies").mkdir()
    (root / "Moteur" / "main.jpg").write_bytes(b"jpg-main")
    (root / "Carosserie" / "Pare-chocs").mkdir(parents=True)
    (root / "Carosserie" / "Pare-chocs" / "Pare-chocs.webp").write_bytes(b"webp-bumper")
    (root / "Freinage").mkdir()
    monkeypatch.setattr(config, "PART_CATEGORIES_DIR", str(root))
    return root


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    target = tmp_path / "uploads"
    monkeypatch.setattr(config, "UPLOAD_DIR", str(target))
    monkeypatch.setattr(config, "cloudinary_configured", False)
    return target


@pytest.fixture
def client(session_factory, upload_dir):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[database.get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def post(client):
    """POSTs to an admin collection and returns the created row, failing on anything but 201."""
    def _post(collection: str, payload: dict) -> dict:
        response = client.post(f"/api/admin/{collection}", json=payload)
        assert response.status_code == 201, response.text
        return response.json()["data"]
    return _post


@pytest.fixture
def catalog(post):
    """Two brands, three models, four motorisations, a small category tree and three parts.

    Oil filter fits only the Clio 1.5 dCi; the bumper fits the Clio 1.2 TCe and the Peugeot 208;
    the brake pads fit nothing yet.
    """
    renault = post("brands", {"name": "Renault", "country": "France"})
    peugeot = post("brands", {"name": "Peugeot", "country": "France"})
    clio = post("models", {"name": "Clio IV", "brandId": renault["id"], "startYear": 2012, "endYear": 2019,
                           "bodyType": "hatchback"})
    megane = post("models", {"name": "Megane III", "brandId": renault["id"]})
    p208 = post("models", {"name": "208", "brandId": peugeot["id"]})
    dci = post("motorisations", {"name": "1.5 dCi 90", "engine": "K9K", "modelId": clio["id"],
                                 "fuelType": "diesel", "power": 90})
    tce = post("motorisations", {"name": "1.2 TCe 120", "engine": "H5F", "modelId": clio["id"],
                                 "fuelType": "GASOLINE"})
    megane_dci = post("motorisations", {"name": "1.5 dCi 110", "engine": "K9K", "modelId": megane["id"]})
    puretech = post("motorisations", {"name": "1.2 PureTech 82", "engine": "EB2", "modelId": p208["id"]})
    moteur = post("categories", {"name": "Moteur"})
    filtres = post("categories", {"name": "Filtres", "parentId": moteur["id"]})
    carrosserie = post("categories", {"name": "Carrosserie"})
    pare_chocs = post("categories", {"name": "Pare-chocs", "parentId": carrosserie["id"]})
    freinage = post("categories", {"name": "Freinage"})
    oil_filter = post("parts", {"name": "Oil filter", "partNumber": "OF-100", "price": "12.50",
                                "categoryId": filtres["id"], "motorisationIds": [dci["id"]]})
    bumper = post("parts", {"name": "Front bumper", "partNumber": "BU-200", "price": 180,
                            "categoryId": pare_chocs["id"], "motorisationIds": [tce["id"], puretech["id"]]})
    pads = post("parts", {"name": "Brake pads", "partNumber": "BP-300", "price": 35.9,
                          "categoryId": freinage["id"]})
    return {
        "renault": renault, "peugeot": peugeot,
        "clio": clio, "megane": megane, "208": p208,
        "dci": dci, "tce": tce, "megane_dci": megane_dci, "puretech": puretech,
        "moteur": moteur, "filtres": filtres, "carrosserie": carrosserie, "pare_chocs": pare_chocs,
        "freinage": freinage,
        "oil_filter": oil_filter, "bumper": bumper, "pads": pads,
    }
