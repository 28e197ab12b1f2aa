"""Avatar upload validation and storage."""

import os
import uuid
from pathlib import Path

from fastapi import UploadFile

from accounts.config import get_settings

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
ALLOWED_MIME_TYPES = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
}


class AvatarStorage:
    """Stores profile images under ``UPLOAD_DIR/avatars/<user_id>/``."""

    def validate_upload_metadata(self, filename: str, content_type: str | None) -> str | None:
        """Validate upload file metadata (extension + MIME). Returns error message or None if valid."""
        ext = Path(filename).suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            return f"Unsupported file type '{ext}'. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"

        if content_type and content_type not in ALLOWED_MIME_TYPES:
            return f"Invalid content type '{content_type}'. Must be an image."

        return None

    def user_dir(self, user_id: int) -> Path:
        return Path(get_settings().UPLOAD_DIR) / "avatars" / str(user_id)

    async def store_file(self, user_id: int, upload: UploadFile) -> tuple[str, int]:
        """Stream an uploaded image to disk. Returns (relative_path, file_size_bytes).

        Raises ValueError if the file exceeds the size limit.
        """
        settings = get_settings()
        max_bytes = settings.MAX_AVATAR_SIZE_MB * 1024 * 1024
        ext = Path(upload.filename or "avatar.bin").suffix.lower()
        stored_filename = f"{uuid.uuid4()}{ext}"
        user_dir = self.user_dir(user_id)
        user_dir.mkdir(parents=True, exist_ok=True)

        file_path = user_dir / stored_filename
        file_size = 0
        chunk_size = 1024 * 64

        try:
            with open(file_path, "wb") as f:
                while True:
                    chunk = await upload.read(chunk_size)
                    if not chunk:
                        break
                    file_size += len(chunk)
                    if file_size > max_bytes:
                        raise ValueError(f"File too large. Maximum: {settings.MAX_AVATAR_SIZE_MB}MB")
                    f.write(chunk)
        except ValueError:
            if file_path.exists():
                os.remove(file_path)
            raise

        return f"avatars/{user_id}/{stored_filename}", file_size

    def delete_file(self, relative_path: str | None) -> None:
        """Remove a previously stored avatar, ignoring paths outside the upload directory."""
        if not relative_path:
            return
        root = Path(get_settings().UPLOAD_DIR).resolve()
        file_path = (root / relative_path).resolve()
        if root in file_path.parents and file_path.exists():
            os.remove(file_path)


_avatar_storage: AvatarStorage | None = None


def get_avatar_storage() -> AvatarStorage:
    """Get singleton avatar storage instance."""
    global _avatar_storage
    if _avatar_storage is None:
        _avatar_storage = AvatarStorage()
    return _avatar_storage
