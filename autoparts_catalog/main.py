# File: autoparts_catalog/main.py
import logging
import mimetypes
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, Path, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile as StarletteUploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import categories, compatibility, config, crud, database, images, schemas
from .errors import CatalogError, InternalError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)
get_db = database.get_db
mimetypes.add_type("image/webp", ".webp")


# --- Startup / shutdown ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {config.APP_NAME}...")
    if database.engine is None:
        logger.error("No database engine. Check DATABASE_URL and the connection.")
    elif config.CREATE_TABLES_ON_STARTUP:
        database.create_tables()
    yield
    logger.info(f"Shutting down {config.APP_NAME}...")


app = FastAPI(title=config.APP_NAME, version=config.APP_VERSION, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.mount(config.UPLOAD_URL_PREFIX, StaticFiles(directory=config.UPLOAD_DIR, check_dir=False), name="uploads")


# --- JSON envelope ---
def ok(data: Any = None, message: Optional[str] = None, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    body = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return JSONResponse(status_code=status_code, content=body)


def fail(error: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def describe_validation_errors(errors) -> str:
    """Turns pydantic errors into 'missing required field X' / 'invalid value for X: ...'."""
    messages = []
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        field = ".".join(loc)
        err_type = err.get("type", "")
        msg = err.get("msg", "invalid value").removeprefix("Value error, ")
        if err_type == "missing" or (err.get("input", ...) is None and err_type.endswith("_type")):
            messages.append(f"missing required field {field or 'body'}")
        elif field:
            messages.append(f"invalid value for {field}: {msg}")
        else:
            messages.append(msg)
    return "; ".join(messages) or "Invalid request."


@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError):
    if isinstance(exc, InternalError):
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return fail(exc.message, exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return fail(describe_validation_errors(exc.errors()), status.HTTP_400_BAD_REQUEST)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return fail(str(exc.detail), exc.status_code)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return fail("Internal server error.", status.HTTP_500_INTERNAL_SERVER_ERROR)


def page_query():
    return Query(1, ge=1)


def limit_query():
    return Query(config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE)


def _listing(key: str, schema: type, result) -> dict:
    rows, pagination = result
    return {key: schemas.dump_many(schema, rows), "pagination": pagination.model_dump(by_alias=True)}


# --- Health ---
@app.get("/health", tags=["Health"])
def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        database_status = "connected"
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        database_status = "disconnected"
    return ok({"status": "healthy", "database": database_status, "version": config.APP_VERSION})


# ======================================================================
# Public routes (shop front, vehicle selector)
# ======================================================================
public = APIRouter(prefix="/api", tags=["Catalog"])


@public.get("/brands")
def public_brands(include_models: bool = Query(False, alias="includeModels"), db: Session = Depends(get_db)):
    brands = crud.list_catalog_brands(db, include_models=include_models)
    schema = schemas.CatalogBrandWithModels if include_models else schemas.CatalogBrand
    return ok(schemas.dump_many(schema, brands))


@public.get("/models")
def public_models(brand_id: Optional[int] = Query(None, alias="brandId"),
                  include_motorisations: bool = Query(False, alias="includeMotorisations"),
                  db: Session = Depends(get_db)):
    rows = crud.list_catalog_models(db, brand_id=brand_id, include_motorisations=include_motorisations)
    schema = schemas.CatalogModelFull if include_motorisations else schemas.CatalogModelWithBrand
    return ok(schemas.dump_many(schema, rows))


@public.get("/categories")
def public_categories(source: str = Query("db", pattern="^(db|fs)$"), db: Session = Depends(get_db)):
    if source == "fs":
        return ok(categories.list_fs_categories())
    rows = categories.list_db_categories(db, include_children=True)
    return ok(schemas.dump_many(schemas.CategoryTreeOut, rows))


@public.get("/category-image")
def category_image(main: Optional[str] = Query(None), parent: Optional[str] = Query(None),
                   name: Optional[str] = Query(None)):
    if main and not name:
        image_path = categories.find_main_category_image(main)
    elif parent and name:
        image_path = categories.find_category_image(categories.CategoryKey(parent=parent, name=name))
    else:
        raise ValidationError("Provide 'main', or both 'parent' and 'name'.")
    if image_path is None:
        raise NotFoundError("Category image not found.")
    media_type = mimetypes.guess_type(image_path.name)[0] or "application/octet-stream"
    return FileResponse(image_path, media_type=media_type,
                        headers={"Cache-Control": "public, max-age=31536000, immutable"})


@public.get("/parts")
def public_parts(brand_id: Optional[int] = Query(None, alias="brandId"),
                 model_id: Optional[int] = Query(None, alias="modelId"),
                 motorisation_id: Optional[int] = Query(None, alias="motorisationId"),
                 category_id: Optional[str] = Query(None, alias="categoryId"),
                 db: Session = Depends(get_db)):
    selection = (compatibility.Selection()
                 .choose_brand(brand_id)
                 .choose_model(model_id)
                 .choose_motorisation(motorisation_id))
    parts = compatibility.find_compatible_parts(db, selection, category=category_id)
    return ok({"parts": schemas.dump_many(schemas.PartOut, parts)})


@public.get("/parts/{part_id}")
def public_part_detail(part_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    return ok(schemas.dump(schemas.PartOut, crud.get_part(db, part_id)))


# ======================================================================
# Admin routes
# ======================================================================
admin = APIRouter(prefix="/api/admin", tags=["Admin"])


@admin.get("/dashboard")
def admin_dashboard(db: Session = Depends(get_db)):
    return ok(crud.dashboard_stats(db))


# --- Brands ---
@admin.get("/brands")
def admin_list_brands(page: int = page_query(), limit: int = limit_query(),
                      search: Optional[str] = Query(None), db: Session = Depends(get_db)):
    result = crud.list_brands(db, page=page, limit=limit, search=search)
    return ok(_listing("brands", schemas.BrandOut, result))


@admin.post("/brands", status_code=status.HTTP_201_CREATED)
def admin_create_brand(brand: schemas.BrandCreate, db: Session = Depends(get_db)):
    db_brand = crud.create_brand(db, brand)
    return ok(schemas.dump(schemas.BrandOut, db_brand), "Brand created.", status.HTTP_201_CREATED)


@admin.get("/brands/{brand_id}")
def admin_get_brand(brand_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    return ok(schemas.dump(schemas.BrandDetailOut, crud.get_brand(db, brand_id)))


@admin.put("/brands/{brand_id}")
def admin_update_brand(brand: schemas.BrandUpdate, brand_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    db_brand = crud.update_brand(db, brand_id, brand)
    return ok(schemas.dump(schemas.BrandOut, db_brand), "Brand updated.")


@admin.delete("/brands/{brand_id}")
def admin_delete_brand(brand_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    crud.delete_brand(db, brand_id)
    return ok(message="Brand deleted.")


# --- Models ---
@admin.get("/models")
def admin_list_models(page: int = page_query(), limit: int = limit_query(),
                      search: Optional[str] = Query(None),
                      brand_id: Optional[int] = Query(None, alias="brandId"),
                      body_type: Optional[str] = Query(None, alias="bodyType"),
                      db: Session = Depends(get_db)):
    result = crud.list_models(db, page=page, limit=limit, search=search, brand_id=brand_id,
                              body_type=schemas.normalize_enum_input(body_type))
    return ok(_listing("models", schemas.ModelOut, result))


@admin.post("/models", status_code=status.HTTP_201_CREATED)
def admin_create_model(model: schemas.ModelCreate, db: Session = Depends(get_db)):
    db_model = crud.create_model(db, model)
    return ok(schemas.dump(schemas.ModelOut, db_model), "Model created.", status.HTTP_201_CREATED)


@admin.get("/models/{model_id}")
def admin_get_model(model_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    return ok(schemas.dump(schemas.ModelOut, crud.get_model(db, model_id)))


@admin.put("/models/{model_id}")
def admin_update_model(model: schemas.ModelUpdate, model_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    db_model = crud.update_model(db, model_id, model)
    return ok(schemas.dump(schemas.ModelOut, db_model), "Model updated.")


@admin.delete("/models/{model_id}")
def admin_delete_model(model_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    crud.delete_model(db, model_id)
    return ok(message="Model deleted.")


# --- Motorisations ---
@admin.get("/motorisations")
def admin_list_motorisations(page: int = page_query(), limit: int = limit_query(),
                             search: Optional[str] = Query(None),
                             model_id: Optional[int] = Query(None, alias="modelId"),
                             fuel_type: Optional[str] = Query(None, alias="fuelType"),
                             db: Session = Depends(get_db)):
    result = crud.list_motorisations(db, page=page, limit=limit, search=search, model_id=model_id,
                                     fuel_type=schemas.normalize_enum_input(fuel_type))
    return ok(_listing("motorisations", schemas.MotorisationOut, result))


@admin.post("/motorisations", status_code=status.HTTP_201_CREATED)
def admin_create_motorisation(motorisation: schemas.MotorisationCreate, db: Session = Depends(get_db)):
    db_m = crud.create_motorisation(db, motorisation)
    return ok(schemas.dump(schemas.MotorisationOut, db_m), "Motorisation created.", status.HTTP_201_CREATED)


@admin.get("/motorisations/{motorisation_id}")
def admin_get_motorisation(motorisation_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    return ok(schemas.dump(schemas.MotorisationOut, crud.get_motorisation(db, motorisation_id)))


@admin.put("/motorisations/{motorisation_id}")
def admin_update_motorisation(motorisation: schemas.MotorisationUpdate, motorisation_id: int = Path(..., gt=0),
                              db: Session = Depends(get_db)):
    db_m = crud.update_motorisation(db, motorisation_id, motorisation)
    return ok(schemas.dump(schemas.MotorisationOut, db_m), "Motorisation updated.")


@admin.delete("/motorisations/{motorisation_id}")
def admin_delete_motorisation(motorisation_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    crud.delete_motorisation(db, motorisation_id)
    return ok(message="Motorisation deleted.")


# --- Categories ---
@admin.get("/categories")
def admin_list_categories(include_children: bool = Query(False, alias="includeChildren"),
                          parent_only: bool = Query(False, alias="parentOnly"),
                          db: Session = Depends(get_db)):
    rows = categories.list_db_categories(db, include_children=include_children, parent_only=parent_only)
    schema = schemas.CategoryTreeOut if include_children else schemas.CategoryOut
    return ok(schemas.dump_many(schema, rows))


@admin.post("/categories", status_code=status.HTTP_201_CREATED)
def admin_create_category(category: schemas.CategoryCreate, db: Session = Depends(get_db)):
    db_category = crud.create_category(db, category)
    return ok(schemas.dump(schemas.CategoryOut, db_category), "Category created.", status.HTTP_201_CREATED)


@admin.get("/categories/{category_id}")
def admin_get_category(category_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    return ok(schemas.dump(schemas.CategoryTreeOut, crud.get_category(db, category_id)))


@admin.put("/categories/{category_id}")
def admin_update_category(category: schemas.CategoryUpdate, category_id: int = Path(..., gt=0),
                          db: Session = Depends(get_db)):
    db_category = crud.update_category(db, category_id, category)
    return ok(schemas.dump(schemas.CategoryOut, db_category), "Category updated.")


@admin.delete("/categories/{category_id}")
def admin_delete_category(category_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    crud.delete_category(db, category_id)
    return ok(message="Category deleted.")


# --- Parts ---
@admin.get("/parts")
def admin_list_parts(page: int = page_query(), limit: int = limit_query(),
                     search: Optional[str] = Query(None),
                     category_id: Optional[int] = Query(None, alias="categoryId"),
                     availability: Optional[str] = Query(None),
                     db: Session = Depends(get_db)):
    result = crud.list_parts(db, page=page, limit=limit, search=search, category_id=category_id,
                             availability=schemas.normalize_enum_input(availability))
    return ok(_listing("parts", schemas.PartOut, result))


@admin.post("/parts/upload-images", status_code=status.HTTP_201_CREATED)
async def admin_upload_part_images(request: Request, db: Session = Depends(get_db)):
    """Multipart upload: files under keys starting with 'image', optional 'partId' to attach them."""
    form = await request.form()
    files = [value for key, value in form.multi_items()
             if key.startswith("image") and isinstance(value, StarletteUploadFile)]
    if not files:
        raise ValidationError("No image files in the upload.")

    raw_part_id = form.get("partId")
    part_id = None
    already_stored = 0
    if raw_part_id:
        part_id = schemas.parse_id(raw_part_id)
        if part_id is None:
            raise ValidationError("invalid value for partId: must be a positive integer")
        db_part = crud.get_part_by_id(db, part_id)
        if not db_part:
            raise NotFoundError(f"Part {part_id} not found.")
        already_stored = len(db_part.images or [])

    urls, rejected = await images.store_part_images(files, already_stored=already_stored)
    if part_id and urls:
        crud.append_part_images(db, part_id, urls, config.MAX_IMAGES_PER_PART)
    return ok({"imageUrls": urls, "rejected": rejected}, f"{len(urls)} images uploaded.", status.HTTP_201_CREATED)


@admin.get("/parts/{part_id}")
def admin_get_part(part_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    return ok(schemas.dump(schemas.PartOut, crud.get_part(db, part_id)))


@admin.get("/parts/{part_id}/motorisations")
def admin_part_motorisations(part_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    rows = compatibility.compatible_motorisations(db, part_id)
    return ok(schemas.dump_many(schemas.MotorisationOut, rows))


@admin.post("/parts", status_code=status.HTTP_201_CREATED)
def admin_create_part(part: schemas.PartCreate, db: Session = Depends(get_db)):
    db_part = crud.create_part(db, part)
    return ok(schemas.dump(schemas.PartOut, db_part), "Part created.", status.HTTP_201_CREATED)


@admin.put("/parts/{part_id}")
def admin_update_part(part: schemas.PartUpdate, part_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    db_part = crud.update_part(db, part_id, part)
    return ok(schemas.dump(schemas.PartOut, db_part), "Part updated.")


@admin.delete("/parts/{part_id}")
def admin_delete_part(part_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    crud.delete_part(db, part_id)
    return ok(message="Part deleted.")


app.include_router(public)
app.include_router(admin)
