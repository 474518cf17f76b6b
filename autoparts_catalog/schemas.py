# File: autoparts_catalog/schemas.py
import math
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator
from pydantic.alias_generators import to_camel


# --- Enums (stored as their value) ---
class BodyType(str, Enum):
    SEDAN = "SEDAN"
    HATCHBACK = "HATCHBACK"
    SUV = "SUV"
    COUPE = "COUPE"
    CONVERTIBLE = "CONVERTIBLE"
    WAGON = "WAGON"
    PICKUP = "PICKUP"
    VAN = "VAN"
    MINIVAN = "MINIVAN"
    CROSSOVER = "CROSSOVER"


class FuelType(str, Enum):
    GASOLINE = "GASOLINE"
    DIESEL = "DIESEL"
    HYBRID = "HYBRID"
    ELECTRIC = "ELECTRIC"
    PLUG_IN_HYBRID = "PLUG_IN_HYBRID"


class Transmission(str, Enum):
    MANUAL = "MANUAL"
    AUTOMATIC = "AUTOMATIC"
    CVT = "CVT"
    SEMI_AUTOMATIC = "SEMI_AUTOMATIC"


class Availability(str, Enum):
    IN_STOCK = "IN_STOCK"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    PREORDER = "PREORDER"
    DISCONTINUED = "DISCONTINUED"


def normalize_enum_input(value: Any) -> Any:
    """'in-stock', 'plug-in hybrid' and 'IN_STOCK' all name the same member."""
    if isinstance(value, str):
        return value.strip().upper().replace("-", "_").replace(" ", "_")
    return value


MAX_ID = 2 ** 31 - 1


def parse_id(value: Any) -> Optional[int]:
    """An id written as plain ASCII digits that fits an Integer column, else None."""
    text = str(value).strip()
    if not (text.isascii() and text.isdigit()):
        return None
    number = int(text)
    return number if 0 < number <= MAX_ID else None


class CamelModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True, alias_generator=to_camel,
                              protected_namespaces=())


class InputModel(CamelModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, use_enum_values=True)

    # Blank strings count as absent, everything else is trimmed
    @field_validator("*", mode="before")
    @classmethod
    def blank_strings_to_none(cls, v):
        if isinstance(v, str):
            stripped = v.strip()
            return stripped if stripped else None
        return v


def _check_years(start_year: Optional[int], end_year: Optional[int]):
    if start_year is not None and end_year is not None and start_year > end_year:
        raise ValueError("startYear must not be after endYear")


# --- Brand ---
class BrandCreate(InputModel):
    name: str = Field(..., max_length=100)
    description: Optional[str] = None
    website: Optional[str] = Field(None, max_length=255)
    country: Optional[str] = Field(None, max_length=100)
    founded: Optional[int] = Field(None, ge=1800, le=2100)
    logo: Optional[str] = Field(None, max_length=512)
    photo: Optional[str] = Field(None, max_length=512)


class BrandUpdate(InputModel):
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    website: Optional[str] = Field(None, max_length=255)
    country: Optional[str] = Field(None, max_length=100)
    founded: Optional[int] = Field(None, ge=1800, le=2100)
    logo: Optional[str] = Field(None, max_length=512)
    photo: Optional[str] = Field(None, max_length=512)


class BrandSummary(CamelModel):
    id: int
    name: str
    logo: Optional[str] = None
    photo: Optional[str] = None


class BrandOut(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    website: Optional[str] = None
    country: Optional[str] = None
    founded: Optional[int] = None
    logo: Optional[str] = None
    photo: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_count: int = Field(0, exclude=True)

    @computed_field(alias="_count")
    @property
    def counts(self) -> dict:
        return {"models": self.model_count}


# --- Vehicle model ---
class ModelCreate(InputModel):
    name: str = Field(..., max_length=100)
    brand_id: int
    generation: Optional[str] = Field(None, max_length=50)
    start_year: Optional[int] = Field(None, ge=1886, le=2100)
    end_year: Optional[int] = Field(None, ge=1886, le=2100)
    body_type: Optional[BodyType] = None
    description: Optional[str] = None

    @field_validator("body_type", mode="before")
    @classmethod
    def normalize_body_type(cls, v): return normalize_enum_input(v)

    @model_validator(mode="after")
    def years_in_order(self):
        _check_years(self.start_year, self.end_year)
        return self


class ModelUpdate(InputModel):
    name: Optional[str] = Field(None, max_length=100)
    brand_id: Optional[int] = None
    generation: Optional[str] = Field(None, max_length=50)
    start_year: Optional[int] = Field(None, ge=1886, le=2100)
    end_year: Optional[int] = Field(None, ge=1886, le=2100)
    body_type: Optional[BodyType] = None
    description: Optional[str] = None

    @field_validator("body_type", mode="before")
    @classmethod
    def normalize_body_type(cls, v): return normalize_enum_input(v)


class ModelSummary(CamelModel):
    id: int
    name: str
    generation: Optional[str] = None
    start_year: Optional[int] = None
    end_year: Optional[int] = None
    body_type: Optional[str] = None
    brand: BrandSummary


class ModelOut(CamelModel):
    id: int
    name: str
    brand_id: int
    generation: Optional[str] = None
    start_year: Optional[int] = None
    end_year: Optional[int] = None
    body_type: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    brand: BrandSummary
    motorisation_count: int = Field(0, exclude=True)

    @computed_field(alias="_count")
    @property
    def counts(self) -> dict:
        return {"motorisations": self.motorisation_count}


class BrandModelOut(CamelModel):
    """A model row inside a brand detail."""
    id: int
    name: str
    generation: Optional[str] = None
    start_year: Optional[int] = None
    end_year: Optional[int] = None
    body_type: Optional[str] = None
    description: Optional[str] = None
    motorisation_count: int = Field(0, exclude=True)

    @computed_field(alias="_count")
    @property
    def counts(self) -> dict:
        return {"motorisations": self.motorisation_count}


class BrandDetailOut(BrandOut):
    models: List[BrandModelOut] = []


# --- Motorisation ---
class MotorisationCreate(InputModel):
    name: str = Field(..., max_length=150)
    engine: str = Field(..., max_length=100)
    model_id: int
    power: Optional[int] = Field(None, ge=0)
    torque: Optional[int] = Field(None, ge=0)
    displacement: Optional[float] = Field(None, gt=0)
    cylinders: Optional[int] = Field(None, ge=0)
    fuel_type: Optional[FuelType] = None
    transmission: Optional[Transmission] = None
    drive_type: Optional[str] = Field(None, max_length=20)

    @field_validator("fuel_type", "transmission", mode="before")
    @classmethod
    def normalize_enums(cls, v): return normalize_enum_input(v)


class MotorisationUpdate(InputModel):
    name: Optional[str] = Field(None, max_length=150)
    engine: Optional[str] = Field(None, max_length=100)
    model_id: Optional[int] = None
    power: Optional[int] = Field(None, ge=0)
    torque: Optional[int] = Field(None, ge=0)
    displacement: Optional[float] = Field(None, gt=0)
    cylinders: Optional[int] = Field(None, ge=0)
    fuel_type: Optional[FuelType] = None
    transmission: Optional[Transmission] = None
    drive_type: Optional[str] = Field(None, max_length=20)

    @field_validator("fuel_type", "transmission", mode="before")
    @classmethod
    def normalize_enums(cls, v): return normalize_enum_input(v)


class MotorisationSummary(CamelModel):
    id: int
    name: str
    engine: str
    power: Optional[int] = None
    displacement: Optional[float] = None
    fuel_type: Optional[str] = None
    transmission: Optional[str] = None


class MotorisationOut(CamelModel):
    id: int
    name: str
    engine: str
    model_id: int
    power: Optional[int] = None
    torque: Optional[int] = None
    displacement: Optional[float] = None
    cylinders: Optional[int] = None
    fuel_type: Optional[str] = None
    transmission: Optional[str] = None
    drive_type: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model: ModelSummary


# --- Public catalog (vehicle selector) ---
class CatalogModel(CamelModel):
    id: int
    name: str
    brand_id: int
    start_year: Optional[int] = None
    end_year: Optional[int] = None
    body_type: Optional[str] = None
    description: Optional[str] = None


class CatalogModelWithMotorisations(CatalogModel):
    motorisations: List[MotorisationSummary] = []


class CatalogModelWithBrand(CatalogModel):
    brand: BrandSummary


class CatalogModelFull(CatalogModelWithBrand):
    motorisations: List[MotorisationSummary] = []


class CatalogBrand(CamelModel):
    id: int
    name: str
    logo: Optional[str] = None
    photo: Optional[str] = None
    description: Optional[str] = None


class CatalogBrandWithModels(CatalogBrand):
    models: List[CatalogModelWithMotorisations] = []


# --- Category ---
class CategoryCreate(InputModel):
    name: str = Field(..., max_length=150)
    description: Optional[str] = None
    parent_id: Optional[int] = None


class CategoryUpdate(InputModel):
    name: Optional[str] = Field(None, max_length=150)
    description: Optional[str] = None
    parent_id: Optional[int] = None


class CategorySummary(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    parent_id: Optional[int] = None


class CategoryWithParent(CategorySummary):
    parent: Optional[CategorySummary] = None


class CategoryOut(CategoryWithParent):
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    part_count: int = Field(0, exclude=True)

    @computed_field(alias="_count")
    @property
    def counts(self) -> dict:
        return {"parts": self.part_count}


class CategoryTreeOut(CategoryOut):
    children: List[CategorySummary] = []


# --- Part ---
class PartCreate(InputModel):
    name: str = Field(..., max_length=200)
    part_number: str = Field(..., max_length=100)
    price: Decimal = Field(..., ge=0)
    category_id: int
    description: Optional[str] = None
    manufacturer: Optional[str] = Field(None, max_length=100)
    engine_code: Optional[str] = Field(None, max_length=100)
    capacity: Optional[str] = Field(None, max_length=100)
    temperature_range: Optional[str] = Field(None, max_length=100)
    color: Optional[str] = Field(None, max_length=50)
    material: Optional[str] = Field(None, max_length=100)
    chemical_properties: Optional[str] = None
    warranty: Optional[int] = Field(None, ge=0)
    weight: Optional[float] = Field(None, ge=0)
    dimensions: Optional[str] = Field(None, max_length=100)
    images: List[str] = Field(default_factory=list, max_length=5)
    stock_quantity: Optional[int] = Field(0, ge=0)
    availability: Optional[Availability] = Availability.IN_STOCK.value
    motorisation_ids: List[int] = Field(default_factory=list)

    @field_validator("availability", mode="before")
    @classmethod
    def normalize_availability(cls, v): return normalize_enum_input(v)


class PartUpdate(InputModel):
    name: Optional[str] = Field(None, max_length=200)
    part_number: Optional[str] = Field(None, max_length=100)
    price: Optional[Decimal] = Field(None, ge=0)
    category_id: Optional[int] = None
    description: Optional[str] = None
    manufacturer: Optional[str] = Field(None, max_length=100)
    engine_code: Optional[str] = Field(None, max_length=100)
    capacity: Optional[str] = Field(None, max_length=100)
    temperature_range: Optional[str] = Field(None, max_length=100)
    color: Optional[str] = Field(None, max_length=50)
    material: Optional[str] = Field(None, max_length=100)
    chemical_properties: Optional[str] = None
    warranty: Optional[int] = Field(None, ge=0)
    weight: Optional[float] = Field(None, ge=0)
    dimensions: Optional[str] = Field(None, max_length=100)
    images: Optional[List[str]] = Field(None, max_length=5)
    stock_quantity: Optional[int] = Field(None, ge=0)
    availability: Optional[Availability] = None
    # Always the full desired set: omitted or empty clears every link
    motorisation_ids: Optional[List[int]] = None

    @field_validator("availability", mode="before")
    @classmethod
    def normalize_availability(cls, v): return normalize_enum_input(v)


class PartOut(CamelModel):
    id: int
    part_number: str
    name: str
    description: Optional[str] = None
    price: float
    category_id: int
    manufacturer: Optional[str] = None
    engine_code: Optional[str] = None
    capacity: Optional[str] = None
    temperature_range: Optional[str] = None
    color: Optional[str] = None
    material: Optional[str] = None
    chemical_properties: Optional[str] = None
    warranty: Optional[int] = None
    weight: Optional[float] = None
    dimensions: Optional[str] = None
    images: List[str] = []
    stock_quantity: int = 0
    availability: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    category: CategoryWithParent
    motorisations: List[MotorisationOut] = []

    @field_validator("images", mode="before")
    @classmethod
    def images_default(cls, v): return v or []


# --- Pagination ---
class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = math.ceil(total / limit) if limit else 0
        return cls(page=page, limit=limit, total=total, total_pages=total_pages,
                   has_next=page < total_pages, has_prev=page > 1)


def dump(schema: type, obj) -> dict:
    """Serializes an ORM row (or anything from_attributes accepts) to camelCase JSON data."""
    return schema.model_validate(obj).model_dump(by_alias=True, mode="json")


def dump_many(schema: type, objs) -> List[dict]:
    return [dump(schema, o) for o in objs]
