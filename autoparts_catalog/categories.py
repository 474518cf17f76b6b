# File: autoparts_catalog/categories.py
"""Two-level category trees from the database or from the artwork folder tree.

The folder tree looks like ``<root>/<main category>/<sub category>/*.webp``.
Folder names and database names are matched by plain string equality, with
one known spelling alias handled through ``CATEGORY_ALIASES``.
"""
import logging
import os
from pathlib import Path
from typing import List, NamedTuple, Optional, Union

from sqlalchemy import exc
from sqlalchemy.orm import Session, aliased, joinedload, selectinload

from . import config, models
from .errors import InternalError
from .schemas import parse_id

logger = logging.getLogger(__name__)

# Display spelling -> folder spelling on disk
CATEGORY_ALIASES = {
    "Carrosserie": "Carosserie",
}
_REVERSE_ALIASES = {folder: display for display, folder in CATEGORY_ALIASES.items()}


class CategoryKey(NamedTuple):
    """Canonical identity of a category across both taxonomies."""
    parent: Optional[str]
    name: str


def name_variants(name: str) -> List[str]:
    """The supplied spelling first, then its alias (if any)."""
    variants = [name]
    alias = CATEGORY_ALIASES.get(name) or _REVERSE_ALIASES.get(name)
    if alias and alias not in variants:
        variants.append(alias)
    return variants


def display_name(folder_name: str) -> str:
    return _REVERSE_ALIASES.get(folder_name, folder_name)


def categories_root(base_dir: Union[str, Path, None] = None) -> Path:
    return Path(base_dir if base_dir is not None else config.PART_CATEGORIES_DIR)


def sanitize_segment(segment: Optional[str]) -> Optional[str]:
    """Strips path separators so a name can only ever address one folder level."""
    if segment is None:
        return None
    cleaned = segment.replace("/", "").replace("\\", "").strip()
    if cleaned in ("", ".", "..") or "\x00" in cleaned:
        return None
    return cleaned


# --- Database source ---
def list_db_categories(db: Session, include_children: bool = False, parent_only: bool = False) -> List[models.Category]:
    parent = aliased(models.Category)
    q = (db.query(models.Category)
         .outerjoin(parent, models.Category.parent_id == parent.id)
         .options(joinedload(models.Category.parent), selectinload(models.Category.parts)))
    if include_children:
        q = q.options(selectinload(models.Category.children))
    if parent_only:
        q = q.filter(models.Category.parent_id.is_(None))
    try:
        return q.order_by(parent.name.asc().nulls_first(), models.Category.name).all()
    except exc.SQLAlchemyError:
        logger.exception("Database error listing categories")
        raise InternalError()


def find_db_category(db: Session, identifier: Union[int, str, None]) -> Optional[models.Category]:
    """Resolves a category by database id first, then by exact name (alias aware)."""
    if identifier is None or str(identifier).strip() == "":
        return None
    text = str(identifier).strip()
    category_id = parse_id(text)
    if category_id is not None:
        category = db.query(models.Category).filter(models.Category.id == category_id).first()
        if category:
            return category
    for name in name_variants(text):
        category = db.query(models.Category).filter(models.Category.name == name).first()
        if category:
            return category
    return None


# --- Filesystem source ---
def _subdirectories(path: Path) -> List[str]:
    try:
        return sorted(entry.name for entry in os.scandir(path) if entry.is_dir())
    except (OSError, ValueError) as e:
        logger.debug(f"Cannot list {path}: {e}")
        return []


def list_fs_categories(base_dir: Union[str, Path, None] = None) -> List[dict]:
    """Main categories are the top-level folders, their subfolders are the children.

    Ids are the folder names; no database row needs to exist for any of them.
    """
    root = categories_root(base_dir)
    tree = []
    for main_name in _subdirectories(root):
        parent = {"id": main_name, "name": main_name}
        children = [{"id": child, "name": child, "parent": parent}
                    for child in _subdirectories(root / main_name)]
        tree.append({"id": main_name, "name": main_name, "parent": None, "children": children})
    return tree


# --- Category artwork ---
def _first_image_in(folder: Path) -> Optional[Path]:
    try:
        images = sorted(entry.name for entry in os.scandir(folder)
                        if entry.is_file() and entry.name.lower().endswith(config.CATEGORY_IMAGE_EXTENSIONS))
    except (OSError, ValueError):
        return None
    return folder / images[0] if images else None


def find_main_category_image(main: str, base_dir: Union[str, Path, None] = None) -> Optional[Path]:
    root = categories_root(base_dir)
    for variant in name_variants(main):
        safe = sanitize_segment(variant)
        if not safe:
            continue
        image = _first_image_in(root / safe)
        if image:
            return image
    return None


def find_category_image(key: CategoryKey, base_dir: Union[str, Path, None] = None) -> Optional[Path]:
    """First image (by file name) in ``<parent>/<name>/``, else ``<parent>/<name>/<name>.<ext>``.

    Both spellings of the parent folder are tried. Read errors count as not found.
    """
    root = categories_root(base_dir)
    safe_name = sanitize_segment(key.name)
    if not safe_name or not key.parent:
        return None
    parents = [p for p in (sanitize_segment(v) for v in name_variants(key.parent)) if p]

    for parent in parents:
        image = _first_image_in(root / parent / safe_name)
        if image:
            return image
    for parent in parents:
        for ext in config.CATEGORY_IMAGE_EXTENSIONS:
            candidate = root / parent / safe_name / f"{safe_name}{ext}"
            try:
                if candidate.is_file():
                    return candidate
            except (OSError, ValueError):
                continue
    logger.debug(f"No artwork for category {key}")
    return None
