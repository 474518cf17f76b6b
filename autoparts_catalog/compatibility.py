# File: autoparts_catalog/compatibility.py
"""Which parts fit a vehicle, and which vehicles a part fits.

A vehicle is narrowed down brand -> model -> motorisation. Parts are linked
to motorisations (never to models or brands directly), and one part may be
linked to motorisations of several models and brands at once.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from sqlalchemy import exc, false, or_
from sqlalchemy.orm import Session, joinedload

from . import models
from .categories import find_db_category, name_variants
from .crud import PART_LOAD_OPTIONS
from .errors import InternalError, NotFoundError
from .schemas import parse_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selection:
    """The vehicle picked in the selector. Changing a level clears the levels below it."""
    brand_id: Optional[int] = None
    model_id: Optional[int] = None
    motorisation_id: Optional[int] = None

    def choose_brand(self, brand_id: Optional[int]) -> "Selection":
        return Selection(brand_id=brand_id)

    def choose_model(self, model_id: Optional[int]) -> "Selection":
        return Selection(brand_id=self.brand_id, model_id=model_id)

    def choose_motorisation(self, motorisation_id: Optional[int]) -> "Selection":
        return Selection(brand_id=self.brand_id, model_id=self.model_id, motorisation_id=motorisation_id)


def _motorisation_ids_for(db: Session, selection: Selection) -> Optional[List[int]]:
    """Motorisation ids a part must match (any one of them), or None for no vehicle filter."""
    if selection.motorisation_id is not None:
        exists = db.query(models.Motorisation.id).filter(models.Motorisation.id == selection.motorisation_id).first()
        if exists:
            return [selection.motorisation_id]
        logger.info(f"Motorisation {selection.motorisation_id} not found, falling back to the model filter")
        if selection.model_id is None:
            return []
    if selection.model_id is not None:
        rows = db.query(models.Motorisation.id).filter(models.Motorisation.model_id == selection.model_id).all()
        return [row[0] for row in rows]
    return None


def _vehicle_query(db: Session, motorisation_ids: Optional[List[int]]):
    q = db.query(models.Part)
    if motorisation_ids is not None:
        q = q.filter(models.Part.motorisation_links.any(models.PartMotorisation.motorisation_id.in_(motorisation_ids)))
    return q


def _category_matches_name(part: models.Part, names: List[str]) -> bool:
    category = part.category
    if category is None:
        return False
    if category.name in names:
        return True
    return category.parent is not None and category.parent.name in names


def find_compatible_parts(db: Session, selection: Selection,
                          category: Union[int, str, None] = None) -> List[models.Part]:
    """Parts fitting the selected vehicle, optionally limited to a category.

    ``category`` may be a database id or a category name (folder names from
    the artwork tree are names). A category that resolves to nothing never
    widens the result.
    """
    try:
        motorisation_ids = _motorisation_ids_for(db, selection)
        if motorisation_ids == []:
            return []
        q = _vehicle_query(db, motorisation_ids)

        category_text = str(category).strip() if category is not None else ""
        if category_text:
            db_category = find_db_category(db, category_text)
            if db_category is not None:
                q = q.filter(or_(models.Part.category_id == db_category.id,
                                 models.Part.category.has(models.Category.parent_id == db_category.id)))
            else:
                q = q.filter(false())

        parts = q.options(*PART_LOAD_OPTIONS).order_by(models.Part.name).all()

        # Only reached when both alias spellings exist as rows and the one found first holds no parts
        if not parts and category_text and parse_id(category_text) is None:
            names = name_variants(category_text)
            candidates = _vehicle_query(db, motorisation_ids).options(*PART_LOAD_OPTIONS).order_by(models.Part.name).all()
            parts = [p for p in candidates if _category_matches_name(p, names)]
        return parts
    except exc.SQLAlchemyError:
        logger.exception("Database error resolving compatible parts")
        raise InternalError()


def compatible_motorisations(db: Session, part_id: int) -> List[models.Motorisation]:
    """Motorisations a part fits, with model and brand, ordered brand / model / name."""
    if not db.query(models.Part.id).filter(models.Part.id == part_id).first():
        raise NotFoundError(f"Part {part_id} not found.")
    return (db.query(models.Motorisation)
            .join(models.Motorisation.part_links)
            .join(models.Motorisation.model)
            .join(models.VehicleModel.brand)
            .filter(models.PartMotorisation.part_id == part_id)
            .options(joinedload(models.Motorisation.model).joinedload(models.VehicleModel.brand))
            .order_by(models.Brand.name, models.VehicleModel.name, models.Motorisation.name)
            .all())
