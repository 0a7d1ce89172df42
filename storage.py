# storage.py
import os
import uuid

from flask import current_app, url_for
from werkzeug.utils import secure_filename

from core import logger
from errors import ValidationError

COVER_TYPES = {".jpg", ".jpeg", ".png", ".webp", ".gif", ".pdf"}
PDF_TYPES = {".pdf"}


def has_upload(file_storage):
    return file_storage is not None and bool(file_storage.filename)


def upload(file_storage, folder, allowed=None):
    """Store an uploaded file under ``folder`` and return its public URL."""
    filename = secure_filename(file_storage.filename or "")
    ext = os.path.splitext(filename)[1].lower()
    if not filename or (allowed and ext not in allowed):
        raise ValidationError(f"Unsupported file: {file_storage.filename!r}")
    name = f"{folder}/{uuid.uuid4().hex[:12]}_{filename}"
    target = os.path.join(current_app.config["UPLOAD_FOLDER"], *name.split("/"))
    os.makedirs(os.path.dirname(target), exist_ok=True)
    file_storage.save(target)
    logger.info("stored upload %s", name)
    return url_for("shop.uploaded_file", name=name, _external=True)
