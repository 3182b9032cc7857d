"""
Application configuration settings for the screenshot event annotator
"""
import os
from pathlib import Path

# Project directories
# Support deployed mode via environment variable override
PROJECT_ROOT = Path(os.environ.get('EVENTMAP_ROOT', Path(__file__).parent.parent))
DATA_DIR = PROJECT_ROOT / "data"

# Blob storage: local directory holding the document and screenshot images
BLOB_STORAGE_DIR = Path(os.environ.get('EVENTMAP_BLOB_DIR', DATA_DIR / "blobs"))
ASSET_BASE_URL = os.environ.get('EVENTMAP_ASSET_BASE_URL', '/assets')

# Key of the root JSON document (modules -> screenshots -> events)
DOCUMENT_KEY = os.environ.get('EVENTMAP_DOCUMENT_KEY', 'data/modules.json')

# Upload limits
MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10MB
ALLOWED_IMAGE_TYPES = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/gif": "GIF",
}

# Annotation settings
MIN_REGION_SIZE = 5  # On-screen pixels a drawing must exceed in both axes
RESIZE_HANDLE_SIZE = 8  # On-screen pixel tolerance around edges and corners
DEFAULT_DISPLAY_WIDTH = 800

# Annotation Canvas Configuration
# Development mode connects to Vite dev server at http://localhost:5174
# Production mode loads pre-built component from frontend/annotation_canvas/build/
ANNOTATION_CANVAS_RELEASE_MODE = os.getenv('ANNOTATION_CANVAS_RELEASE', 'false').lower() == 'true'
ANNOTATION_CANVAS_DEV_URL = os.getenv('ANNOTATION_CANVAS_DEV_URL', 'http://localhost:5174')

# Session role until a real auth lookup is wired in ('admin' or 'user')
DEFAULT_ROLE = os.getenv('EVENTMAP_ROLE', 'admin').lower()

# Logging
LOG_LEVEL = os.getenv('EVENTMAP_LOG_LEVEL', 'INFO').upper()
LOG_DIR = os.getenv('EVENTMAP_LOG_DIR')
