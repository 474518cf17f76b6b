# File: autoparts_catalog/config.py
import os
import logging
import cloudinary
from dotenv import load_dotenv

load_dotenv() # reads .env

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# --- Application ---
APP_NAME = os.getenv("APP_NAME", "Autoparts Catalog API")
APP_VERSION = "1.0.0"
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# --- Database (read by database.py) ---
DATABASE_URL = os.getenv("DATABASE_URL")
CREATE_TABLES_ON_STARTUP = os.getenv("CREATE_TABLES_ON_STARTUP", "true").lower() == "true"

# --- Pagination ---
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "50"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "200"))

# --- Folder taxonomy (category artwork) ---
# main-category/sub-category/*.webp
PART_CATEGORIES_DIR = os.getenv("PART_CATEGORIES_DIR", "partCategories")
CATEGORY_IMAGE_EXTENSIONS = (".webp", ".png", ".jpg", ".jpeg")

# --- Part image uploads ---
UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join("public", "uploads", "parts"))
UPLOAD_URL_PREFIX = os.getenv("UPLOAD_URL_PREFIX", "/uploads/parts")
MAX_IMAGE_BYTES = int(os.getenv("MAX_IMAGE_BYTES", str(5 * 1024 * 1024)))
MAX_IMAGES_PER_PART = int(os.getenv("MAX_IMAGES_PER_PART", "5"))

# --- Cloudinary (optional) ---
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")
CLOUDINARY_UPLOAD_FOLDER = os.getenv("CLOUDINARY_UPLOAD_FOLDER", "autoparts/parts")

cloudinary_configured = False
if all([CLOUDINARY_CLOUD_NAME, CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET]):
    try:
        cloudinary.config(
            cloud_name=CLOUDINARY_CLOUD_NAME,
            api_key=CLOUDINARY_API_KEY,
            api_secret=CLOUDINARY_API_SECRET,
            secure=True # HTTPS URLs
        )
        cloudinary_configured = True
        logger.info("Cloudinary configured, part images will be uploaded there.")
    except Exception as e:
        logger.error(f"Cloudinary configuration failed: {e}")
else:
    logger.info(f"Cloudinary credentials not set, part images are stored under {UPLOAD_DIR}.")
