"""On-disk storage of accepted uploads."""

import time
import uuid
from pathlib import Path

from textlens.utils.logger import get_logger

logger = get_logger(__name__)


class UploadStore:
    """Writes uploaded files under a directory and returns their paths.

    Args:
        directory: Upload directory, created on first save.
    """

    def __init__(self, directory: Path | str = "uploads") -> None:
        self.directory = Path(directory)

    def save(self, data: bytes, original_name: str) -> Path:
        """Persist upload bytes under a unique, timestamped name.

        Args:
            data: File contents.
            original_name: Client-side filename; only its extension is kept.

        Returns:
            Path of the stored file, used as the record's storage reference.
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        suffix = Path(original_name).suffix.lower()
        path = self.directory / f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}{suffix}"
        path.write_bytes(data)
        logger.debug("Stored upload %s as %s", original_name, path)
        return path
