# File: autoparts_catalog/seed.py
"""Loads the reference data: vehicles from scraped JSON files, and the category tree.

Each row is looked up by its natural key before it is added, so a second run
only adds what is missing and never edits rows already stored.

Usage:
    python -m autoparts_catalog.seed
    python -m autoparts_catalog.seed --vehicles renault-data.json --categories-from-folders
    python -m autoparts_catalog.seed --skip-categories

A vehicle file looks like:
    {"brand": "Renault", "models": [{"name": "Clio IV", "motorisations": ["1.5 dCi 90ch"]}]}
"""
import argparse
import json
import logging
import os
import re
import sys
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import exc
from sqlalchemy.orm import Session

from . import categories, config, crud, database, models
from .errors import CatalogError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_VEHICLE_FILES = ("renault-data.json", "dacia-data.json")

# name: (logo, country, founded)
BRAND_DEFAULTS = {
    "Citroen": ("/brands/citroen.png", "France", 1919),
    "Citroën": ("/brands/citroen.png", "France", 1919),
    "Renault": ("/brands/renault.png", "France", 1899),
    "Dacia": ("/brands/dacia.png", "Romania", 1966),
    "Suzuki": ("/brands/suzuki.png", "Japan", 1909),
    "Peugeot": ("/brands/peugeot.png", "France", 1810),
    "Kia": ("/brands/kia.png", "South Korea", 1944),
}

# (main category, description, sub categories)
CATEGORY_TREE: List[Tuple[str, Optional[str], List[str]]] = [
    ("Filtres", "Filtres pour véhicules", [
        "Filtre à huile", "Filtre à air", "Filtre à carburant",
        "Filtre hydraulique, boîte automatique", "Filtre habitacle",
    ]),
    ("Freinage", "Système de freinage", [
        "Étrier de frein", "Disque de frein", "Flexible de frein", "Tambour de frein", "Cable frein à main",
        "Maître-cylindre de frein", "Cylindre de roue", "Mâchoire de frein", "Kit de plaquettes de frein",
        "Capteur ABS", "Indicateur d'usure, plaquette de freins",
    ]),
    ("Courroie, tendeur et chaine", "Système de distribution et transmission", [
        "Courroie", "Courroie de distribution", "Kit de distribution", "Poulie-Tendeur, Courroie De Distribution",
        "Tendeur courroie", "Tendeur, chaîne de distribution", "Glissiere chaine distribution",
        "Chaîne de distribution", "Poulie, vilebrequin", "Poulies",
    ]),
    ("Allumage", "Système d'allumage", [
        "Bougie de préchauffage", "Bougie d'allumage", "Bobine d'allumage", "Fiche, bobine d'allumage",
    ]),
    ("Suspension", "Système de suspension", [
        "Ressort de suspension", "Compresseur, système d'air comprimé", "Amortisseur",
        "Coupelle de suspension", "Butée élastique",
    ]),
    ("Direction et Trains roulants", "Direction et trains roulants", [
        "Rotule de direction intérieure, barre de connexion", "Soufflet direction", "Silent-bloc",
        "Bras et Triangle suspension", "Barre de connexion", "Crémaillère de direction", "Boitier direction",
        "Moyeu de roue", "Kit de roulements de roue", "Silent-bloc barre stabilisatrice", "Rotule de direction",
        "Rotule de suspension", "Bielette suspension",
    ]),
    ("Embrayage", "Système d'embrayage", [
        "Butée embrayage", "Cylindre émetteur, embrayage", "Mécanisme d'embrayage", "Disque d'embrayage",
        "Tirette à câble, commande d'embrayage", "Kit d'embrayage", "Volant moteur",
        "Cylindre récepteur, embrayage", "Fourchette embrayage",
    ]),
    ("Moteur", "Pièces moteur", [
        "Pompe hydraulique, direction", "Joint d'étanchéité, carter d'huile", "Corps papillon", "Joint culasse",
        "Joint de cache culbuteurs", "Pompe à carburant", "Carter d'huile", "Pompe à huile", "Cable accelerateur",
        "Couvercle de culasse", "Vanne EGR", "Pompe à eau", "Durite d'air", "Turbo", "Support moteur",
        "Support boite vitesse", "Pochette joint",
    ]),
    ("Eclairage", "Système d'éclairage", [
        "Feu clignotant", "Phare avant", "Antibrouillard", "Feu arrière",
    ]),
    ("Démarrage électrique", "Système de démarrage électrique", [
        "Démarreur", "Alternateur", "Poulie roue libre, alternateur",
    ]),
    ("Capteurs et sondes", "Capteurs et sondes", [
        "Sonde de température, liquide de refroidissement", "Capteur vilebrequin", "Sonde lambda",
        "Débitmètre de masse d'air", "Capteur, température des gaz", "Capteur arbre à cames",
    ]),
    ("Carrosserie", "Pièces de carrosserie", [
        "Balai d'essuie-glace", "Tringlerie d'essuie-glace", "Pompe d'eau de nettoyage, nettoyage des vitres",
        "Serrure de porte", "Pédale d'accélérateur", "Lève-vitre", "Bague Spirale", "vérin",
    ]),
    ("Refroidissement moteur", "Système de refroidissement moteur", [
        "Bouchon radiateur / Vase d'eau", "Thermostat d'eau", "Vase d'expansion, liquide de refroidissement",
        "Intercooler, échangeur", "Radiateur d'huile", "Radiateur, refroidissement du moteur",
        "Durite de radiateur", "Ventilateur, refroidissement du moteur", "Embrayage, ventilateur de radiateur",
        "Tuyauterie du réfrigérant", "Pipette d'eau", "Durite turbo",
    ]),
    ("Cardan et Transmission", "Système de transmission", [
        "Tête cardan", "Cardan", "Soufflet, arbre de commande", "Roulement central",
        "Joint, arbre de transmission", "Cable vitesse",
    ]),
    ("Climatisation", "Système de climatisation", [
        "Compresseur, climatisation", "Radiateur climatisation", "Radiateur chauffage",
        "Evaporateur climatisation", "Pressostat, climatisation", "Pulseur d'air habitacle",
        "Résistance, pulseur d'air habitacle",
    ]),
    ("Lubrifiant", "Lubrifiants et liquides", [
        "Huile pour boîte automatique", "Huile moteur", "Huile pour boîte de vitesses et pont",
        "Huile pour direction assistée", "Antigel", "Huile, boîte de vitesses à variation continue (CVT)",
    ]),
]


# --- Reading vehicle names ---
_DISPLACEMENT_RE = re.compile(r"(\d+\.?\d*)\s*(L|dCi|TCe|BlueHDi|HDi|VTi)", re.IGNORECASE)
_POWER_RE = re.compile(r"(\d+)\s*(hp|ch|cv)", re.IGNORECASE)
_FUEL_RE = re.compile(r"(diesel|essence|electric|hybrid|dci|hdi|bluehdi|tce|vti)", re.IGNORECASE)
_NUMBER_RE = re.compile(r"\d+\.?\d*")
_ENGINE_FAMILY_RE = re.compile(r"HDi|TCe|VTi|BlueHDi|dCi|TSI|TDI|GDI|MPI|CVVT|T-GDI", re.IGNORECASE)
_ENGINE_TOKEN_RE = re.compile(r"\d+\.?\d*(L|HDi|TCe|VTi|BlueHDi|dCi|GDI|MPI)", re.IGNORECASE)


def extract_engine_info(motorisation: str) -> dict:
    """Displacement (litres), power and fuel type read from a name like "1.5 dCi 90ch".

    Missing values are None; the fuel type defaults to GASOLINE.
    """
    displacement = _DISPLACEMENT_RE.search(motorisation)
    power = _POWER_RE.search(motorisation)
    fuel = _FUEL_RE.search(motorisation)
    fuel_match = fuel.group(1).lower() if fuel else ""

    fuel_type = "GASOLINE"
    if "dci" in fuel_match or "hdi" in fuel_match or "diesel" in fuel_match:
        fuel_type = "DIESEL"
    elif "electric" in fuel_match:
        fuel_type = "ELECTRIC"
    elif "hybrid" in fuel_match:
        fuel_type = "HYBRID"

    return {
        "displacement": float(displacement.group(1)) if displacement else None,
        "power": int(power.group(1)) if power else None,
        "fuel_type": fuel_type,
    }


def extract_engine(motorisation: str) -> str:
    """Engine designation, e.g. "1.5 dCi" out of "1.5 dCi 90ch". "Unknown" when none is found."""
    tokens = re.split(r"[\s\-_]", motorisation)
    for current, following in zip(tokens, tokens[1:]):
        if _NUMBER_RE.fullmatch(current) and _ENGINE_FAMILY_RE.fullmatch(following):
            return f"{current} {following}"
    return next((token for token in tokens if _ENGINE_TOKEN_RE.match(token)), "Unknown")


def guess_cylinders(displacement: Optional[float]) -> Optional[int]:
    if not displacement:
        return None
    if displacement <= 1.2:
        return 3
    if displacement <= 2.0:
        return 4
    if displacement <= 3.0:
        return 6
    return 8


def extract_model_info(model_name: str) -> Tuple[Optional[str], Optional[int]]:
    """(generation, start year): the generation sits in parentheses, the year is the first 4-digit number."""
    generation = re.search(r"\(([^)]+)\)", model_name)
    year = re.search(r"(\d{4})", model_name)
    return (generation.group(1) if generation else None,
            int(year.group(1)) if year else None)


def guess_body_type(model_name: str) -> str:
    name = model_name.lower()
    if any(k in name for k in ("suv", "crossover", "captur", "duster")):
        return "SUV"
    if any(k in name for k in ("van", "berlingo", "kangoo")):
        return "VAN"
    if "coupe" in name:
        return "COUPE"
    if any(k in name for k in ("wagon", "estate", "break")):
        return "WAGON"
    if "convertible" in name or "cabriolet" in name:
        return "CONVERTIBLE"
    return "HATCHBACK"


# --- Vehicles ---
def load_vehicle_file(path: str) -> Optional[dict]:
    """Parsed vehicle file, or None when it does not exist."""
    if not os.path.isfile(path):
        logger.warning(f"Vehicle file {path} not found, skipping.")
        return None
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def seed_vehicles(db: Session, data: dict) -> dict:
    """Adds the brand, its models and their motorisations that are not stored yet.

    Returns how many rows of each kind were added. The caller commits.
    """
    created = {"brands": 0, "models": 0, "motorisations": 0}
    brand_name = str(data.get("brand") or "").strip()
    if not brand_name:
        raise ValidationError("Vehicle data without a brand name.")

    brand = crud.get_brand_by_name(db, brand_name)
    if brand is None:
        logo, country, founded = BRAND_DEFAULTS.get(brand_name, (None, "Unknown", None))
        brand = models.Brand(name=brand_name, logo=logo, country=country, founded=founded,
                             description=f"Pièces détachées pour véhicules {brand_name}")
        db.add(brand)
        db.flush()
        created["brands"] += 1

    for model_data in data.get("models") or []:
        model_name = str(model_data.get("name") or "").strip()
        if not model_name:
            continue
        vehicle_model = crud.get_model_by_name_and_brand(db, model_name, brand.id)
        if vehicle_model is None:
            generation, start_year = extract_model_info(model_name)
            vehicle_model = models.VehicleModel(name=model_name, brand_id=brand.id, generation=generation,
                                                start_year=start_year, body_type=guess_body_type(model_name))
            db.add(vehicle_model)
            db.flush()
            created["models"] += 1

        for motorisation_name in model_data.get("motorisations") or []:
            motorisation_name = str(motorisation_name or "").strip()
            if not motorisation_name:
                continue
            if crud.get_motorisation_by_name_and_model(db, motorisation_name, vehicle_model.id):
                continue
            info = extract_engine_info(motorisation_name)
            db.add(models.Motorisation(
                name=motorisation_name,
                engine=extract_engine(motorisation_name),
                power=info["power"],
                displacement=info["displacement"],
                cylinders=guess_cylinders(info["displacement"]),
                fuel_type=info["fuel_type"],
                transmission="MANUAL",
                drive_type="FWD",
                model_id=vehicle_model.id,
            ))
            db.flush()
            created["motorisations"] += 1

    logger.info(f"Brand {brand_name}: added {created['models']} models and {created['motorisations']} motorisations")
    return created


# --- Categories ---
def _find_category(db: Session, name: str) -> Optional[models.Category]:
    for variant in categories.name_variants(name):
        category = crud.get_category_by_name(db, variant)
        if category:
            return category
    return None


def category_tree_from_folders(base_dir=None) -> List[Tuple[str, Optional[str], List[str]]]:
    """The artwork folders as a tree to seed, main folders under their display spelling."""
    return [(categories.display_name(main["name"]), None, [child["name"] for child in main["children"]])
            for main in categories.list_fs_categories(base_dir)]


def seed_categories(db: Session, tree: Sequence[Tuple[str, Optional[str], Sequence[str]]]) -> int:
    """Adds the missing main categories and sub categories. Returns how many were added.

    Either spelling of an aliased name counts as already stored.
    """
    created = 0
    for main_name, description, children in tree:
        main = _find_category(db, main_name)
        if main is None:
            main = models.Category(name=main_name, description=description)
            db.add(main)
            db.flush()
            created += 1
        elif main.parent_id is not None:
            logger.warning(f"Category '{main.name}' is a sub category, its children are not seeded.")
            continue
        for child_name in children:
            if _find_category(db, child_name) is None:
                db.add(models.Category(name=child_name, parent_id=main.id))
                db.flush()
                created += 1
    logger.info(f"Added {created} categories")
    return created


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Seed the parts catalog with vehicles and categories.")
    parser.add_argument("--vehicles", nargs="*", default=list(DEFAULT_VEHICLE_FILES), metavar="FILE",
                        help="Vehicle JSON files (missing files are skipped)")
    parser.add_argument("--categories-from-folders", action="store_true",
                        help=f"Build the category tree from the artwork folders ({config.PART_CATEGORIES_DIR})")
    parser.add_argument("--skip-categories", action="store_true", help="Do not seed categories")
    args = parser.parse_args(argv)

    if database.SessionLocal is None:
        logger.error("No database session available. Check DATABASE_URL in .env.")
        return 1

    db = database.SessionLocal()
    totals = {"brands": 0, "models": 0, "motorisations": 0, "categories": 0}
    try:
        database.create_tables(bind=db.get_bind())
        for path in args.vehicles:
            data = load_vehicle_file(path)
            if data is None:
                continue
            logger.info(f"Processing {path}")
            for key, count in seed_vehicles(db, data).items():
                totals[key] += count
        if not args.skip_categories:
            tree = category_tree_from_folders() if args.categories_from_folders else CATEGORY_TREE
            totals["categories"] = seed_categories(db, tree)
        db.commit()
    except (CatalogError, ValueError, exc.SQLAlchemyError) as e:
        db.rollback()
        logger.error(f"Seeding failed: {e}")
        return 1
    finally:
        db.close()

    logger.info("Seeding completed: " + ", ".join(f"{count} {key}" for key, count in totals.items()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
