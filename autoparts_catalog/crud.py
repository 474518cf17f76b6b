# File: autoparts_catalog/crud.py
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from sqlalchemy import exc, func, or_
from sqlalchemy.orm import Query, Session, joinedload, selectinload

from . import models, schemas
from .errors import ConflictError, InternalError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Part rows always travel with their category (and its parent) and their
# compatible motorisations joined up to the brand.
PART_LOAD_OPTIONS = (
    joinedload(models.Part.category).joinedload(models.Category.parent),
    selectinload(models.Part.motorisations).joinedload(models.Motorisation.model).joinedload(models.VehicleModel.brand),
)

RECENT_ACTIVITY_DAYS = 30


# --- Helpers ---
def _counted(count: int, singular: str, plural: Optional[str] = None) -> str:
    """Count followed by the noun agreeing with it: 1 model, 3 models."""
    return f"{count} {singular if count == 1 else (plural or singular + 's')}"


def _commit(db: Session, obj=None, what: str = "row"):
    """Commits the session, mapping store failures onto the catalog errors."""
    try:
        db.commit()
    except exc.IntegrityError as e:
        db.rollback()
        logger.warning(f"Integrity error saving {what}: {e.orig}")
        raise ConflictError(f"This {what} conflicts with an existing one.")
    except exc.SQLAlchemyError:
        db.rollback()
        logger.exception(f"Database error saving {what}")
        raise InternalError()
    if obj is not None:
        db.refresh(obj)
    return obj


def _delete(db: Session, obj, what: str):
    try:
        db.delete(obj)
        db.commit()
    except exc.IntegrityError as e:
        db.rollback()
        logger.warning(f"Integrity error deleting {what}: {e.orig}")
        raise ConflictError(f"This {what} is still referenced and cannot be deleted.")
    except exc.SQLAlchemyError:
        db.rollback()
        logger.exception(f"Database error deleting {what}")
        raise InternalError()


def _contains(term: str) -> str:
    return f"%{term.strip()}%"


def paginate(query: Query, page: int, limit: int, order_by=(), options=()) -> Tuple[list, schemas.Pagination]:
    total = query.count()
    rows = (query.options(*options).order_by(*order_by)
            .offset((page - 1) * limit).limit(limit).all())
    return rows, schemas.Pagination.build(page, limit, total)


def _apply_patch(obj, changes: dict, required: Tuple[str, ...] = ()):
    # Omitted fields are untouched; required columns are never nulled
    for key, value in changes.items():
        if value is None and key in required:
            continue
        setattr(obj, key, value)


# --- Brands ---
def get_brand_by_id(db: Session, brand_id: int) -> Optional[models.Brand]:
    return db.query(models.Brand).filter(models.Brand.id == brand_id).first()


def get_brand_by_name(db: Session, name: str, exclude_id: Optional[int] = None) -> Optional[models.Brand]:
    q = db.query(models.Brand).filter(models.Brand.name == name)
    if exclude_id is not None:
        q = q.filter(models.Brand.id != exclude_id)
    return q.first()


def get_brand(db: Session, brand_id: int) -> models.Brand:
    brand = (db.query(models.Brand)
             .options(selectinload(models.Brand.models).selectinload(models.VehicleModel.motorisations))
             .filter(models.Brand.id == brand_id).first())
    if not brand:
        raise NotFoundError(f"Brand {brand_id} not found.")
    return brand


def list_brands(db: Session, page: int = 1, limit: int = 50, search: Optional[str] = None):
    q = db.query(models.Brand)
    if search and search.strip():
        like = _contains(search)
        q = q.filter(or_(models.Brand.name.ilike(like),
                         models.Brand.description.ilike(like),
                         models.Brand.country.ilike(like)))
    return paginate(q, page, limit, order_by=(models.Brand.name,),
                    options=(selectinload(models.Brand.models),))


def list_catalog_brands(db: Session, include_models: bool = False) -> List[models.Brand]:
    """Every brand by name, optionally with its models and their motorisations for the vehicle selector."""
    q = db.query(models.Brand)
    if include_models:
        q = q.options(selectinload(models.Brand.models).selectinload(models.VehicleModel.motorisations))
    return q.order_by(models.Brand.name).all()


def create_brand(db: Session, brand: schemas.BrandCreate) -> models.Brand:
    if get_brand_by_name(db, brand.name):
        raise ConflictError(f"Brand '{brand.name}' already exists.")
    db_brand = models.Brand(**brand.model_dump())
    db.add(db_brand)
    _commit(db, db_brand, "brand")
    logger.info(f"Created brand {db_brand.id} '{db_brand.name}'")
    return db_brand


def update_brand(db: Session, brand_id: int, brand: schemas.BrandUpdate) -> models.Brand:
    db_brand = get_brand_by_id(db, brand_id)
    if not db_brand:
        raise NotFoundError(f"Brand {brand_id} not found.")
    changes = brand.model_dump(exclude_unset=True)
    new_name = changes.get("name")
    if new_name and new_name != db_brand.name and get_brand_by_name(db, new_name, exclude_id=brand_id):
        raise ConflictError(f"Brand '{new_name}' already exists.")
    _apply_patch(db_brand, changes, required=("name",))
    return _commit(db, db_brand, "brand")


def delete_brand(db: Session, brand_id: int) -> None:
    db_brand = get_brand_by_id(db, brand_id)
    if not db_brand:
        raise NotFoundError(f"Brand {brand_id} not found.")
    model_count = db.query(func.count(models.VehicleModel.id)).filter(models.VehicleModel.brand_id == brand_id).scalar()
    if model_count:
        raise ConflictError(f"Cannot delete brand '{db_brand.name}': it has {_counted(model_count, 'model')}.")
    _delete(db, db_brand, "brand")
    logger.info(f"Deleted brand {brand_id}")


# --- Vehicle models ---
def get_model_by_id(db: Session, model_id: int) -> Optional[models.VehicleModel]:
    return db.query(models.VehicleModel).filter(models.VehicleModel.id == model_id).first()


def get_model_by_name_and_brand(db: Session, name: str, brand_id: int,
                                exclude_id: Optional[int] = None) -> Optional[models.VehicleModel]:
    q = db.query(models.VehicleModel).filter(models.VehicleModel.name == name, models.VehicleModel.brand_id == brand_id)
    if exclude_id is not None:
        q = q.filter(models.VehicleModel.id != exclude_id)
    return q.first()


def get_model(db: Session, model_id: int) -> models.VehicleModel:
    db_model = (db.query(models.VehicleModel)
                .options(joinedload(models.VehicleModel.brand), selectinload(models.VehicleModel.motorisations))
                .filter(models.VehicleModel.id == model_id).first())
    if not db_model:
        raise NotFoundError(f"Model {model_id} not found.")
    return db_model


def list_models(db: Session, page: int = 1, limit: int = 50, search: Optional[str] = None,
                brand_id: Optional[int] = None, body_type: Optional[str] = None):
    q = db.query(models.VehicleModel).join(models.VehicleModel.brand)
    if search and search.strip():
        like = _contains(search)
        q = q.filter(or_(models.VehicleModel.name.ilike(like),
                         models.VehicleModel.generation.ilike(like),
                         models.Brand.name.ilike(like)))
    if brand_id is not None:
        q = q.filter(models.VehicleModel.brand_id == brand_id)
    if body_type:
        q = q.filter(models.VehicleModel.body_type == body_type)
    return paginate(q, page, limit, order_by=(models.Brand.name, models.VehicleModel.name),
                    options=(joinedload(models.VehicleModel.brand), selectinload(models.VehicleModel.motorisations)))


def list_catalog_models(db: Session, brand_id: Optional[int] = None,
                        include_motorisations: bool = False) -> List[models.VehicleModel]:
    q = db.query(models.VehicleModel).options(joinedload(models.VehicleModel.brand))
    if include_motorisations:
        q = q.options(selectinload(models.VehicleModel.motorisations))
    if brand_id is not None:
        q = q.filter(models.VehicleModel.brand_id == brand_id)
    return q.order_by(models.VehicleModel.name).all()


def create_model(db: Session, model: schemas.ModelCreate) -> models.VehicleModel:
    if get_model_by_name_and_brand(db, model.name, model.brand_id):
        raise ConflictError(f"Model '{model.name}' already exists for this brand.")
    if not get_brand_by_id(db, model.brand_id):
        raise NotFoundError(f"Brand {model.brand_id} not found.")
    db_model = models.VehicleModel(**model.model_dump())
    db.add(db_model)
    _commit(db, db_model, "model")
    logger.info(f"Created model {db_model.id} '{db_model.name}' for brand {db_model.brand_id}")
    return db_model


def update_model(db: Session, model_id: int, model: schemas.ModelUpdate) -> models.VehicleModel:
    db_model = get_model_by_id(db, model_id)
    if not db_model:
        raise NotFoundError(f"Model {model_id} not found.")
    changes = model.model_dump(exclude_unset=True)
    name = changes.get("name") or db_model.name
    brand_id = changes.get("brand_id") or db_model.brand_id
    if brand_id != db_model.brand_id and not get_brand_by_id(db, brand_id):
        raise NotFoundError(f"Brand {brand_id} not found.")
    if (name, brand_id) != (db_model.name, db_model.brand_id) and \
            get_model_by_name_and_brand(db, name, brand_id, exclude_id=model_id):
        raise ConflictError(f"Model '{name}' already exists for this brand.")
    start_year = changes["start_year"] if "start_year" in changes else db_model.start_year
    end_year = changes["end_year"] if "end_year" in changes else db_model.end_year
    if start_year is not None and end_year is not None and start_year > end_year:
        raise ValidationError("startYear must not be after endYear.")
    _apply_patch(db_model, changes, required=("name", "brand_id"))
    return _commit(db, db_model, "model")


def delete_model(db: Session, model_id: int) -> None:
    db_model = get_model_by_id(db, model_id)
    if not db_model:
        raise NotFoundError(f"Model {model_id} not found.")
    count = db.query(func.count(models.Motorisation.id)).filter(models.Motorisation.model_id == model_id).scalar()
    if count:
        raise ConflictError(f"Cannot delete model '{db_model.name}': it has {_counted(count, 'motorisation')}.")
    _delete(db, db_model, "model")
    logger.info(f"Deleted model {model_id}")


# --- Motorisations ---
def get_motorisation_by_id(db: Session, motorisation_id: int) -> Optional[models.Motorisation]:
    return db.query(models.Motorisation).filter(models.Motorisation.id == motorisation_id).first()


def get_motorisation_by_name_and_model(db: Session, name: str, model_id: int,
                                       exclude_id: Optional[int] = None) -> Optional[models.Motorisation]:
    q = db.query(models.Motorisation).filter(models.Motorisation.name == name, models.Motorisation.model_id == model_id)
    if exclude_id is not None:
        q = q.filter(models.Motorisation.id != exclude_id)
    return q.first()


def get_motorisation(db: Session, motorisation_id: int) -> models.Motorisation:
    m = (db.query(models.Motorisation)
         .options(joinedload(models.Motorisation.model).joinedload(models.VehicleModel.brand))
         .filter(models.Motorisation.id == motorisation_id).first())
    if not m:
        raise NotFoundError(f"Motorisation {motorisation_id} not found.")
    return m


def list_motorisations(db: Session, page: int = 1, limit: int = 50, search: Optional[str] = None,
                       model_id: Optional[int] = None, fuel_type: Optional[str] = None):
    q = db.query(models.Motorisation).join(models.Motorisation.model).join(models.VehicleModel.brand)
    if search and search.strip():
        like = _contains(search)
        q = q.filter(or_(models.Motorisation.name.ilike(like),
                         models.Motorisation.engine.ilike(like),
                         models.VehicleModel.name.ilike(like),
                         models.Brand.name.ilike(like)))
    if model_id is not None:
        q = q.filter(models.Motorisation.model_id == model_id)
    if fuel_type:
        q = q.filter(models.Motorisation.fuel_type == fuel_type)
    return paginate(q, page, limit,
                    order_by=(models.Brand.name, models.VehicleModel.name, models.Motorisation.name),
                    options=(joinedload(models.Motorisation.model).joinedload(models.VehicleModel.brand),))


def create_motorisation(db: Session, motorisation: schemas.MotorisationCreate) -> models.Motorisation:
    if get_motorisation_by_name_and_model(db, motorisation.name, motorisation.model_id):
        raise ConflictError(f"Motorisation '{motorisation.name}' already exists for this model.")
    if not get_model_by_id(db, motorisation.model_id):
        raise NotFoundError(f"Model {motorisation.model_id} not found.")
    db_m = models.Motorisation(**motorisation.model_dump())
    db.add(db_m)
    _commit(db, db_m, "motorisation")
    logger.info(f"Created motorisation {db_m.id} '{db_m.name}' for model {db_m.model_id}")
    return db_m


def update_motorisation(db: Session, motorisation_id: int, motorisation: schemas.MotorisationUpdate) -> models.Motorisation:
    db_m = get_motorisation_by_id(db, motorisation_id)
    if not db_m:
        raise NotFoundError(f"Motorisation {motorisation_id} not found.")
    changes = motorisation.model_dump(exclude_unset=True)
    name = changes.get("name") or db_m.name
    model_id = changes.get("model_id") or db_m.model_id
    if model_id != db_m.model_id and not get_model_by_id(db, model_id):
        raise NotFoundError(f"Model {model_id} not found.")
    if (name, model_id) != (db_m.name, db_m.model_id) and \
            get_motorisation_by_name_and_model(db, name, model_id, exclude_id=motorisation_id):
        raise ConflictError(f"Motorisation '{name}' already exists for this model.")
    _apply_patch(db_m, changes, required=("name", "engine", "model_id"))
    return _commit(db, db_m, "motorisation")


def delete_motorisation(db: Session, motorisation_id: int) -> None:
    # Compatibility links go with it (cascade on Motorisation.part_links)
    db_m = get_motorisation_by_id(db, motorisation_id)
    if not db_m:
        raise NotFoundError(f"Motorisation {motorisation_id} not found.")
    _delete(db, db_m, "motorisation")
    logger.info(f"Deleted motorisation {motorisation_id}")


# --- Categories ---
def get_category_by_id(db: Session, category_id: int) -> Optional[models.Category]:
    return db.query(models.Category).filter(models.Category.id == category_id).first()


def get_category_by_name(db: Session, name: str, exclude_id: Optional[int] = None) -> Optional[models.Category]:
    q = db.query(models.Category).filter(models.Category.name == name)
    if exclude_id is not None:
        q = q.filter(models.Category.id != exclude_id)
    return q.first()


def get_category(db: Session, category_id: int) -> models.Category:
    category = (db.query(models.Category)
                .options(joinedload(models.Category.parent), selectinload(models.Category.children))
                .filter(models.Category.id == category_id).first())
    if not category:
        raise NotFoundError(f"Category {category_id} not found.")
    return category


def _check_parent_category(db: Session, parent_id: int, category: Optional[models.Category] = None) -> models.Category:
    parent = get_category_by_id(db, parent_id)
    if not parent:
        raise NotFoundError(f"Parent category {parent_id} not found.")
    if parent.parent_id is not None:
        raise ValidationError(f"Category '{parent.name}' is itself a subcategory and cannot have children.")
    if category is not None:
        if parent.id == category.id:
            raise ValidationError("A category cannot be its own parent.")
        if category.children:
            raise ValidationError(f"Category '{category.name}' has subcategories and cannot become one.")
    return parent


def create_category(db: Session, category: schemas.CategoryCreate) -> models.Category:
    if get_category_by_name(db, category.name):
        raise ConflictError(f"Category '{category.name}' already exists.")
    if category.parent_id is not None:
        _check_parent_category(db, category.parent_id)
    db_category = models.Category(**category.model_dump())
    db.add(db_category)
    _commit(db, db_category, "category")
    logger.info(f"Created category {db_category.id} '{db_category.name}'")
    return db_category


def update_category(db: Session, category_id: int, category: schemas.CategoryUpdate) -> models.Category:
    db_category = get_category_by_id(db, category_id)
    if not db_category:
        raise NotFoundError(f"Category {category_id} not found.")
    changes = category.model_dump(exclude_unset=True)
    new_name = changes.get("name")
    if new_name and new_name != db_category.name and get_category_by_name(db, new_name, exclude_id=category_id):
        raise ConflictError(f"Category '{new_name}' already exists.")
    if changes.get("parent_id") is not None and changes["parent_id"] != db_category.parent_id:
        _check_parent_category(db, changes["parent_id"], db_category)
    _apply_patch(db_category, changes, required=("name",))
    return _commit(db, db_category, "category")


def delete_category(db: Session, category_id: int) -> None:
    db_category = get_category_by_id(db, category_id)
    if not db_category:
        raise NotFoundError(f"Category {category_id} not found.")
    children = db.query(func.count(models.Category.id)).filter(models.Category.parent_id == category_id).scalar()
    if children:
        raise ConflictError(f"Cannot delete category '{db_category.name}': "
                            f"it has {_counted(children, 'subcategory', 'subcategories')}.")
    parts = db.query(func.count(models.Part.id)).filter(models.Part.category_id == category_id).scalar()
    if parts:
        raise ConflictError(f"Cannot delete category '{db_category.name}': it has {_counted(parts, 'part')}.")
    _delete(db, db_category, "category")
    logger.info(f"Deleted category {category_id}")


# --- Parts ---
def get_part_by_id(db: Session, part_id: int) -> Optional[models.Part]:
    return db.query(models.Part).filter(models.Part.id == part_id).first()


def get_part_by_number(db: Session, part_number: str, exclude_id: Optional[int] = None) -> Optional[models.Part]:
    q = db.query(models.Part).filter(models.Part.part_number == part_number)
    if exclude_id is not None:
        q = q.filter(models.Part.id != exclude_id)
    return q.first()


def get_part(db: Session, part_id: int) -> models.Part:
    part = db.query(models.Part).options(*PART_LOAD_OPTIONS).filter(models.Part.id == part_id).first()
    if not part:
        raise NotFoundError(f"Part {part_id} not found.")
    return part


def list_parts(db: Session, page: int = 1, limit: int = 50, search: Optional[str] = None,
               category_id: Optional[int] = None, availability: Optional[str] = None):
    q = db.query(models.Part).join(models.Part.category)
    if search and search.strip():
        like = _contains(search)
        q = q.filter(or_(models.Part.name.ilike(like),
                         models.Part.part_number.ilike(like),
                         models.Part.manufacturer.ilike(like),
                         models.Category.name.ilike(like)))
    if category_id is not None:
        # A parent category also brings in the parts of its children
        q = q.filter(or_(models.Part.category_id == category_id, models.Category.parent_id == category_id))
    if availability:
        q = q.filter(models.Part.availability == availability)
    return paginate(q, page, limit, order_by=(models.Category.name, models.Part.name), options=PART_LOAD_OPTIONS)


def validate_motorisation_ids(db: Session, motorisation_ids: Optional[List[int]]) -> List[int]:
    """De-duplicates the ids and checks each one exists; unknown ids reject the whole list."""
    ids = list(dict.fromkeys(motorisation_ids or []))
    if not ids:
        return []
    found = {row[0] for row in db.query(models.Motorisation.id).filter(models.Motorisation.id.in_(ids)).all()}
    missing = [i for i in ids if i not in found]
    if missing:
        raise NotFoundError(f"Unknown motorisation ids: {', '.join(str(i) for i in missing)}.")
    return ids


def create_part(db: Session, part: schemas.PartCreate) -> models.Part:
    if get_part_by_number(db, part.part_number):
        raise ConflictError(f"Part number '{part.part_number}' already exists.")
    if not get_category_by_id(db, part.category_id):
        raise NotFoundError(f"Category {part.category_id} not found.")
    motorisation_ids = validate_motorisation_ids(db, part.motorisation_ids)

    data = part.model_dump(exclude={"motorisation_ids"})
    if data.get("stock_quantity") is None:
        data["stock_quantity"] = 0
    if data.get("availability") is None:
        data["availability"] = schemas.Availability.IN_STOCK.value
    db_part = models.Part(**data)
    db_part.motorisation_links = [models.PartMotorisation(motorisation_id=m_id) for m_id in motorisation_ids]
    db.add(db_part)
    _commit(db, db_part, "part")
    logger.info(f"Created part {db_part.id} '{db_part.part_number}' with {len(motorisation_ids)} compatible motorisations")
    return get_part(db, db_part.id)


def update_part(db: Session, part_id: int, part: schemas.PartUpdate) -> models.Part:
    db_part = get_part_by_id(db, part_id)
    if not db_part:
        raise NotFoundError(f"Part {part_id} not found.")
    changes = part.model_dump(exclude_unset=True, exclude={"motorisation_ids"})
    new_number = changes.get("part_number")
    if new_number and new_number != db_part.part_number and get_part_by_number(db, new_number, exclude_id=part_id):
        raise ConflictError(f"Part number '{new_number}' already exists.")
    new_category = changes.get("category_id")
    if new_category is not None and new_category != db_part.category_id and not get_category_by_id(db, new_category):
        raise NotFoundError(f"Category {new_category} not found.")
    motorisation_ids = validate_motorisation_ids(db, part.motorisation_ids)

    if "images" in changes and changes["images"] is None:
        changes["images"] = []
    _apply_patch(db_part, changes,
                 required=("name", "part_number", "price", "category_id", "stock_quantity", "availability"))
    try:
        # Replace the whole compatibility set inside the same transaction
        db.query(models.PartMotorisation).filter(models.PartMotorisation.part_id == part_id).delete(synchronize_session=False)
        for m_id in motorisation_ids:
            db.add(models.PartMotorisation(part_id=part_id, motorisation_id=m_id))
    except exc.SQLAlchemyError:
        db.rollback()
        logger.exception(f"Database error replacing compatibility links of part {part_id}")
        raise InternalError()
    db.expire(db_part, ["motorisation_links", "motorisations"])
    _commit(db, db_part, "part")
    return get_part(db, part_id)


def delete_part(db: Session, part_id: int) -> None:
    db_part = get_part_by_id(db, part_id)
    if not db_part:
        raise NotFoundError(f"Part {part_id} not found.")
    _delete(db, db_part, "part")
    logger.info(f"Deleted part {part_id}")


def append_part_images(db: Session, part_id: int, urls: List[str], max_images: int) -> models.Part:
    db_part = get_part_by_id(db, part_id)
    if not db_part:
        raise NotFoundError(f"Part {part_id} not found.")
    images = list(db_part.images or [])
    if len(images) + len(urls) > max_images:
        raise ValidationError(f"A part holds at most {max_images} images ({len(images)} already stored).")
    db_part.images = images + list(urls)
    return _commit(db, db_part, "part")


# --- Dashboard ---
def dashboard_stats(db: Session) -> dict:
    since = datetime.now(timezone.utc) - timedelta(days=RECENT_ACTIVITY_DAYS)
    tracked = {"brands": models.Brand, "models": models.VehicleModel,
               "motorisations": models.Motorisation, "parts": models.Part}
    try:
        totals = {key: db.query(func.count(table.id)).scalar() for key, table in tracked.items()}
        totals["categories"] = db.query(func.count(models.Category.id)).scalar()
        recent = {key: db.query(func.count(table.id)).filter(table.created_at >= since).scalar()
                  for key, table in tracked.items()}
    except exc.SQLAlchemyError:
        logger.exception("Database error computing dashboard statistics")
        raise InternalError()
    return {"totals": totals, "recent": recent, "recentDays": RECENT_ACTIVITY_DAYS}
