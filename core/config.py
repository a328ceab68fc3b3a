import os
import logging
from dotenv import load_dotenv
from botocore.client import Config as BotoConfig
import boto3

# Load .env from project root
try:
    load_dotenv(dotenv_path=os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".env")))
except Exception:
    try:
        load_dotenv()
    except Exception:
        pass

# Environment
R2_ACCOUNT_ID = os.getenv("R2_ACCOUNT_ID", "")
R2_ENDPOINT = (os.getenv("R2_ENDPOINT", "") or "").strip().rstrip("/")
R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID", "")
R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY", "")
R2_BUCKET = os.getenv("R2_BUCKET", "")
R2_CUSTOM_DOMAIN = (os.getenv("R2_CUSTOM_DOMAIN", "") or "").strip().strip('"').strip("'").strip('`')  # Custom domain for presigned URLs (e.g., gallery.frameport.app)

# Signed URL lifetimes (seconds)
UPLOAD_URL_TTL_SEC = int(os.getenv("UPLOAD_URL_TTL_SEC", "3600"))
DOWNLOAD_URL_TTL_SEC = int(os.getenv("DOWNLOAD_URL_TTL_SEC", "3600"))

# Upload limits
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))
MAX_FILES_PER_UPLOAD = int(os.getenv("MAX_FILES_PER_UPLOAD", "20"))
SUPPORTED_UPLOAD_TYPES = [t.strip().lower() for t in (os.getenv("SUPPORTED_UPLOAD_TYPES", "image/jpeg,image/png").split(",")) if t.strip()]

# Derived variant sizes (longest edge, px)
THUMBNAIL_SIZE = int(os.getenv("THUMBNAIL_SIZE", "400"))
PREVIEW_SIZE = int(os.getenv("PREVIEW_SIZE", "1200"))

# Share links
SHARE_LINK_DEFAULT_DAYS = int(os.getenv("SHARE_LINK_DEFAULT_DAYS", "0"))  # 0 = never expires

# Viewer sessions idle longer than this are dropped; the registry never holds more than the cap
VIEWER_SESSION_TTL_SEC = int(os.getenv("VIEWER_SESSION_TTL_SEC", "1800"))
VIEWER_MAX_SESSIONS = int(os.getenv("VIEWER_MAX_SESSIONS", "1000"))

FRONTEND_ORIGIN = (os.getenv("FRONTEND_ORIGIN", "http://localhost:3000").split(",")[0].strip() or "http://localhost:3000").rstrip("/")

# Bearer token guarding mutating routes; empty disables the check
FRAMEPORT_API_TOKEN = os.getenv("FRAMEPORT_API_TOKEN", "").strip()

# Logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger("frameport")

# Static dir helper
STATIC_DIR = os.path.join(os.path.dirname(__file__), "..", "static")
STATIC_DIR = os.path.abspath(STATIC_DIR)

# S3/R2 client for storage operations
s3 = None
s3_presign_client = None  # Separate client for presigned URLs with custom domain

if not R2_ENDPOINT and R2_ACCOUNT_ID:
    R2_ENDPOINT = f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com"

if R2_ENDPOINT and R2_ACCESS_KEY_ID and R2_SECRET_ACCESS_KEY:
    # Main S3 resource for storage operations (uploads, deletes, probes)
    s3 = boto3.resource(
        "s3",
        endpoint_url=R2_ENDPOINT,
        aws_access_key_id=R2_ACCESS_KEY_ID,
        aws_secret_access_key=R2_SECRET_ACCESS_KEY,
        config=BotoConfig(signature_version="s3v4"),
        region_name="auto",
    )

    # Normalize custom domain to remove protocol if mistakenly included
    _CUSTOM = R2_CUSTOM_DOMAIN.replace("https://", "").replace("http://", "") if R2_CUSTOM_DOMAIN else ""
    if _CUSTOM:
        s3_presign_client = boto3.client(
            "s3",
            endpoint_url=f"https://{_CUSTOM}",
            aws_access_key_id=R2_ACCESS_KEY_ID,
            aws_secret_access_key=R2_SECRET_ACCESS_KEY,
            config=BotoConfig(signature_version="s3v4"),
            region_name="auto",
        )
    logger.info(f"R2 storage configured: bucket={R2_BUCKET or '<unset>'}")
else:
    logger.warning("R2 credentials missing; storage falls back to local static dir")
