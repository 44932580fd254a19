import io
import logging
import os
import threading
import uuid

from PIL import Image, UnidentifiedImageError

from models import ImageFile

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

ACCEPTED_FORMATS = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
}

PREVIEW_PREFIX = "/previews/"


class UploadError(ValueError):
    pass


def sniff_mime_type(data):
    """Identify an accepted image format from its bytes, not its filename."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
            img.verify()
    except Image.DecompressionBombError:
        raise UploadError("The image is too large.")
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise UploadError("The file is not a readable image.")
    if fmt not in ACCEPTED_FORMATS:
        raise UploadError("Only PNG, JPG, or WEBP images are supported.")
    return ACCEPTED_FORMATS[fmt]


def read_upload(file_storage):
    if file_storage is None or not file_storage.filename:
        raise UploadError("No file selected")

    data = file_storage.read()
    if not data:
        raise UploadError("The uploaded file is empty.")
    if len(data) > MAX_UPLOAD_BYTES:
        raise UploadError(f"File too large. Max {MAX_UPLOAD_BYTES // 1024 // 1024}MB")

    mime_type = sniff_mime_type(data)
    logger.debug("Upload accepted: %s (%s, %d bytes)", file_storage.filename, mime_type, len(data))
    return ImageFile(data=data, mime_type=mime_type, filename=file_storage.filename)


def as_png(image):
    if image.mime_type == "image/png":
        return image.data
    with Image.open(io.BytesIO(image.data)) as img:
        if img.mode not in ("RGB", "RGBA", "L", "LA"):
            img = img.convert("RGBA")
        buf = io.BytesIO()
        img.save(buf, format="PNG")
    return buf.getvalue()


class PreviewStore:
    """Short-lived preview locators for uploaded images.

    Every ``create`` must be paired with a ``revoke`` once the preview is
    superseded, otherwise the image bytes stay in memory for the life of the
    process.
    """

    def __init__(self):
        self._images = {}
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._images)

    @staticmethod
    def _token(url_or_token):
        if url_or_token.startswith(PREVIEW_PREFIX):
            return url_or_token[len(PREVIEW_PREFIX):]
        return url_or_token

    def create(self, image):
        token = uuid.uuid4().hex
        with self._lock:
            self._images[token] = image
        return PREVIEW_PREFIX + token

    def get(self, url_or_token):
        with self._lock:
            return self._images.get(self._token(url_or_token))

    def revoke(self, url):
        if not url:
            return
        with self._lock:
            self._images.pop(self._token(url), None)
