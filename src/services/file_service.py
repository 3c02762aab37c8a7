# src/services/file_service.py
import aiofiles
import hashlib
import logging
import magic
import uuid
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence
from ..config import Config
from ..exceptions import ValidationError

logger = logging.getLogger(__name__)

class FileService:
    """Stores submission photos on local disk"""

    ALLOWED_EXTENSIONS = {
        'image/jpeg': '.jpg',
        'image/png': '.png',
    }

    MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB

    def __init__(self, upload_path: Optional[Path] = None):
        self.upload_path = Path(upload_path or Config.UPLOAD_DIR)
        self.ensure_directories()

    def ensure_directories(self):
        (self.upload_path / 'products').mkdir(parents=True, exist_ok=True)

    def validate_image(self, content: bytes) -> str:
        """MIME type of an acceptable photo, else ValidationError"""
        if not content:
            raise ValidationError("Image is empty")
        if len(content) > self.MAX_FILE_SIZE:
            raise ValidationError("Image exceeds the 10MB limit")

        mime_type = magic.from_buffer(content, mime=True)
        if mime_type not in self.ALLOWED_EXTENSIONS:
            raise ValidationError(
                "Only JPEG and PNG images are accepted",
                {"mime_type": mime_type}
            )
        return mime_type

    async def save_image(self, content: bytes) -> str:
        """Write one validated photo and return its stored path"""
        mime_type = self.validate_image(content)

        file_hash = hashlib.sha256(content).hexdigest()
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        # same photo in the same second still gets its own file
        filename = (
            f"{timestamp}_{file_hash[:12]}_{uuid.uuid4().hex[:8]}"
            f"{self.ALLOWED_EXTENSIONS[mime_type]}"
        )
        save_path = self.upload_path / 'products' / filename

        async with aiofiles.open(save_path, 'wb') as f:
            await f.write(content)

        return str(save_path)

    async def save_images(self, images: Sequence[bytes]) -> List[str]:
        """Save all photos or none: a failure removes the ones already written"""
        saved = []
        try:
            for content in images:
                saved.append(await self.save_image(content))
        except Exception:
            self.delete_files(saved)
            raise
        return saved

    def delete_files(self, paths: Sequence[str]):
        for path in paths:
            try:
                Path(path).unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove {path}: {e}")
