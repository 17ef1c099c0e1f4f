from typing import Optional
import logging
import os
import uuid

from app import config

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "application/pdf": ".pdf",
}


class LocalReceiptStorage:
    """Stores receipt files on the local filesystem under RECEIPT_UPLOAD_DIR"""

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = base_dir or config.RECEIPT_UPLOAD_DIR

    def save(self, expense_id: int, content: bytes, content_type: str) -> str:
        directory = os.path.join(self.base_dir, str(expense_id))
        os.makedirs(directory, exist_ok=True)
        stored_name = f"{uuid.uuid4().hex}{_EXTENSIONS.get(content_type, '')}"
        path = os.path.join(directory, stored_name)
        with open(path, "wb") as fh:
            fh.write(content)
        logger.info(f"Stored receipt for expense {expense_id} at {path}")
        return path

    def delete(self, file_url: str) -> None:
        """Remove a stored file; cleanup failures are logged, not raised"""
        try:
            os.remove(file_url)
        except FileNotFoundError:
            logger.warning(f"Receipt file {file_url} was already gone")
        except OSError:
            logger.error(f"Failed to remove receipt file {file_url}", exc_info=True)


receipt_storage = LocalReceiptStorage()
