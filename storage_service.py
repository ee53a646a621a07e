"""Local object storage for note image attachments."""
import logging
import os
import secrets
import time

from markupsafe import escape

logger = logging.getLogger(__name__)

NOTES_PREFIX = "notes"
DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024


def _sanitize_extension(filename, content_type):
    ext = os.path.splitext(filename or "")[1].lower().lstrip(".")
    if not ext or not ext.isalnum() or len(ext) > 8:
        ext = (content_type or "").split("/")[-1].lower()
    return ext if ext.isalnum() else "bin"


class ImageStorage:
    """Stores uploaded bytes under ``root`` and hands back a public URL."""

    def __init__(self, root, public_base="/uploads", max_bytes=DEFAULT_MAX_UPLOAD_BYTES):
        self.root = root
        self.public_base = public_base.rstrip("/")
        self.max_bytes = max_bytes

    def upload(self, data, content_type, filename=""):
        if not (content_type or "").startswith("image/"):
            raise ValueError("Only image files are supported")
        if not data:
            raise ValueError("No file uploaded")
        if len(data) > self.max_bytes:
            raise ValueError("Image is too large")

        ext = _sanitize_extension(filename, content_type)
        name = f"{secrets.token_hex(8)}_{int(time.time() * 1000)}.{ext}"
        relative_path = f"{NOTES_PREFIX}/{name}"
        target_dir = os.path.join(self.root, NOTES_PREFIX)
        os.makedirs(target_dir, exist_ok=True)
        try:
            with open(os.path.join(target_dir, name), "wb") as handle:
                handle.write(data)
        except OSError as exc:
            logger.warning("Image upload failed: %s", exc)
            raise RuntimeError("Failed to upload image") from exc
        return f"{self.public_base}/{relative_path}"


def markdown_image(filename, url):
    """Markdown snippet the editor inserts at the cursor."""
    label = str(escape(filename or "image")).replace("[", "").replace("]", "")
    return f"![{label}]({url})"
