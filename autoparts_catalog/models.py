# File: autoparts_catalog/models.py
from sqlalchemy import (Column, Integer, String, DateTime, Float, Numeric, JSON,
                        ForeignKey, CheckConstraint, UniqueConstraint, Index, Text)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base

BODY_TYPES = ("SEDAN", "HATCHBACK", "SUV", "COUPE", "CONVERTIBLE", "WAGON", "PICKUP", "VAN", "MINIVAN", "CROSSOVER")
FUEL_TYPES = ("GASOLINE", "DIESEL", "HYBRID", "ELECTRIC", "PLUG_IN_HYBRID")
TRANSMISSIONS = ("MANUAL", "AUTOMATIC", "CVT", "SEMI_AUTOMATIC")
AVAILABILITIES = ("IN_STOCK", "OUT_OF_STOCK", "PREORDER", "DISCONTINUED")


def _in_list(column: str, values) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IS NULL OR {column} IN ({quoted})"


class Brand(Base):
    __tablename__ = "brands"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, index=True, nullable=False)
    description = Column(Text)
    website = Column(String(255))
    country = Column(String(100))
    founded = Column(Integer)
    logo = Column(String(512))
    photo = Column(String(512))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # No cascade: a brand that still owns models cannot be deleted
    models = relationship("VehicleModel", back_populates="brand", order_by="VehicleModel.name")

    @property
    def model_count(self) -> int:
        return len(self.models)


# --- Vehicle models ---
class VehicleModel(Base):
    __tablename__ = "models"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False) # Ex: "Clio IV", "Duster (HM)"
    brand_id = Column(Integer, ForeignKey("brands.id", ondelete="RESTRICT"), nullable=False, index=True)
    generation = Column(String(50))
    start_year = Column(Integer)
    end_year = Column(Integer)
    body_type = Column(String(20), CheckConstraint(_in_list("body_type", BODY_TYPES), name="ck_models_body_type"))
    description = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # A model name is unique per brand
    __table_args__ = (
        UniqueConstraint("name", "brand_id", name="uq_models_name_brand"),
        Index("idx_models_brand_name", "brand_id", "name"),
    )

    brand = relationship("Brand", back_populates="models")
    motorisations = relationship("Motorisation", back_populates="model", order_by="Motorisation.name")

    @property
    def motorisation_count(self) -> int:
        return len(self.motorisations)


class Motorisation(Base):
    __tablename__ = "motorisations"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False) # Ex: "1.5 dCi 90"
    engine = Column(String(100), nullable=False) # Ex: "K9K"
    model_id = Column(Integer, ForeignKey("models.id", ondelete="RESTRICT"), nullable=False, index=True)
    power = Column(Integer) # hp
    torque = Column(Integer) # Nm
    displacement = Column(Float) # liters
    cylinders = Column(Integer)
    fuel_type = Column(String(20), CheckConstraint(_in_list("fuel_type", FUEL_TYPES), name="ck_motorisations_fuel_type"))
    transmission = Column(String(20), CheckConstraint(_in_list("transmission", TRANSMISSIONS), name="ck_motorisations_transmission"))
    drive_type = Column(String(20)) # FWD, RWD, AWD...
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("name", "model_id", name="uq_motorisations_name_model"),
        Index("idx_motorisations_model_name", "model_id", "name"),
    )

    model = relationship("VehicleModel", back_populates="motorisations")
    # Deleting a motorisation drops its compatibility links
    part_links = relationship("PartMotorisation", back_populates="motorisation", cascade="all, delete-orphan")


# --- Categories (one level of nesting: parent -> children) ---
class Category(Base):
    __tablename__ = "categories"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), unique=True, index=True, nullable=False)
    description = Column(Text)
    parent_id = Column(Integer, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    parent = relationship("Category", remote_side=[id], back_populates="children")
    children = relationship("Category", back_populates="parent", order_by="Category.name")
    parts = relationship("Part", back_populates="category")

    @property
    def part_count(self) -> int:
        return len(self.parts)


class Part(Base):
    __tablename__ = "parts"
    id = Column(Integer, primary_key=True, index=True)
    part_number = Column(String(100), unique=True, index=True, nullable=False)
    name = Column(String(200), nullable=False, index=True)
    description = Column(Text)
    price = Column(Numeric(10, 2), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False, index=True)
    manufacturer = Column(String(100))

    # Technical attributes
    engine_code = Column(String(100))
    capacity = Column(String(100))
    temperature_range = Column(String(100))
    color = Column(String(50))
    material = Column(String(100))
    chemical_properties = Column(Text)
    warranty = Column(Integer) # months
    weight = Column(Float) # kg
    dimensions = Column(String(100))

    images = Column(JSON, nullable=False, default=list) # ordered URIs, at most 5

    # Stock
    stock_quantity = Column(Integer, CheckConstraint("stock_quantity >= 0", name="ck_parts_stock_quantity"), nullable=False, default=0)
    availability = Column(String(20), CheckConstraint(_in_list("availability", AVAILABILITIES), name="ck_parts_availability"),
                          nullable=False, default="IN_STOCK")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    category = relationship("Category", back_populates="parts")
    motorisation_links = relationship("PartMotorisation", back_populates="part", cascade="all, delete-orphan")
    # Read side of the links, for display
    motorisations = relationship("Motorisation", secondary="part_motorisations", viewonly=True, order_by="Motorisation.name")

    __table_args__ = (
        Index("idx_parts_category_name", "category_id", "name"),
        Index("idx_parts_availability", "availability"),
    )


# --- Part <-> Motorisation compatibility ---
class PartMotorisation(Base):
    __tablename__ = "part_motorisations"
    id = Column(Integer, primary_key=True, index=True)
    part_id = Column(Integer, ForeignKey("parts.id", ondelete="CASCADE"), nullable=False, index=True)
    motorisation_id = Column(Integer, ForeignKey("motorisations.id", ondelete="CASCADE"), nullable=False, index=True)
    part = relationship("Part", back_populates="motorisation_links")
    motorisation = relationship("Motorisation", back_populates="part_links")
    __table_args__ = ( UniqueConstraint("part_id", "motorisation_id", name="uq_part_motorisation"),
                       Index("idx_pm_motorisation_part", "motorisation_id", "part_id"), )
