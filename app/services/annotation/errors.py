"""
Error types for the annotation service

Pure computation errors (bad image size, unknown event type) indicate a
caller bug and are never retried. Lookup misses are recoverable and shown to
the user. PersistenceError wraps every blob/serialization failure.
"""


class AnnotationError(Exception):
    """Base class for all annotation service errors"""


class InvalidImageSize(AnnotationError, ValueError):
    """Coordinate conversion attempted with a non-positive image dimension"""

    def __init__(self, width: float, height: float):
        super().__init__(f"Image size must be positive, got {width}x{height}")
        self.width = width
        self.height = height


class DegenerateRegion(AnnotationError, ValueError):
    """A drawn rectangle is below the minimum size threshold"""


class OutOfBounds(AnnotationError, ValueError):
    """Percentage rectangle extends outside [0, 100]"""


class UnknownEventType(AnnotationError, ValueError):
    """Event type value outside the closed set"""

    def __init__(self, value):
        super().__init__(f"Unknown event type: {value!r}")
        self.value = value


class ScreenshotNotFound(AnnotationError, LookupError):
    """No module contains a screenshot with the given id"""

    def __init__(self, screenshot_id: str):
        super().__init__(f"Screenshot not found: {screenshot_id}")
        self.screenshot_id = screenshot_id


class ModuleNotFound(AnnotationError, LookupError):
    """No module has the given key"""

    def __init__(self, module_key: str):
        super().__init__(f"Module not found: {module_key}")
        self.module_key = module_key


class DuplicateModule(AnnotationError, ValueError):
    """A module with the derived key already exists"""


class DuplicateRegionId(AnnotationError, ValueError):
    """Region id already belongs to another screenshot"""


class DuplicateScreenshot(AnnotationError, ValueError):
    """Screenshot id already exists in the document"""


class OrderMismatch(AnnotationError, ValueError):
    """Reorder ids are not a permutation of the module's screenshot ids"""


class PersistenceError(AnnotationError):
    """Blob storage I/O or document serialization failed"""


class BlobNotFound(AnnotationError, KeyError):
    """Requested blob key does not exist"""

    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Blob not found: {self.key}"


class UploadRejected(AnnotationError, ValueError):
    """Uploaded file failed size, type or content validation"""
