"""Local storage backend that organizes files with symbolic links."""
from __future__ import annotations

import logging
import mimetypes
import os
from pathlib import Path
from typing import Any, Dict, Union

from cluster_engine.errors import ExternalCallFailure

logger = logging.getLogger(__name__)

SYMLINK_MIME_TYPE = "inode/symlink"


class LocalShortcutStorage:
    """Organize files under ``base_dir`` into folders under ``target_dir``.

    File ids are paths relative to ``base_dir``. Folders are created inside
    ``target_dir`` and each organized file becomes a symlink pointing back at
    the source file, which is never moved.
    """

    def __init__(self, base_dir: Union[str, Path], target_dir: Union[str, Path]) -> None:
        self.base_dir = Path(base_dir).expanduser().resolve()
        self.target_dir = Path(target_dir).expanduser().resolve()

    def _inside(self, root: Path, relative: str) -> Path:
        candidate = (root / relative).resolve()
        if candidate != root and root not in candidate.parents:
            raise ExternalCallFailure(f"path escapes {root}: {relative}")
        return candidate

    def _source(self, file_id: str) -> Path:
        # resolve() would follow the link itself, so check the parent only
        parent = self._inside(self.base_dir, os.path.dirname(file_id) or ".")
        return parent / os.path.basename(file_id)

    def create_folder(self, name: str) -> str:
        folder = self._inside(self.target_dir, name)
        try:
            folder.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise ExternalCallFailure(f"could not create folder {name!r}: {err}") from err
        logger.info("Created folder %s", folder)
        return str(folder.relative_to(self.target_dir))

    def create_reference(self, target_file_id: str, folder_id: str, display_name: str) -> str:
        source = self._source(target_file_id)
        if not source.exists():
            raise ExternalCallFailure(f"file not found: {target_file_id}")
        folder = self._inside(self.target_dir, folder_id)
        link = folder / os.path.basename(display_name or source.name)
        if link.exists() or link.is_symlink():
            raise ExternalCallFailure(f"{link} already exists")
        try:
            os.symlink(source, link)
        except OSError as err:
            raise ExternalCallFailure(f"could not link {target_file_id}: {err}") from err
        logger.debug("Linked %s -> %s", link, source)
        return str(link.relative_to(self.target_dir))

    def get_file_metadata(self, file_id: str) -> Dict[str, Any]:
        source = self._source(file_id)
        if source.is_symlink():
            return {"mimeType": SYMLINK_MIME_TYPE, "name": source.name}
        if not source.exists():
            raise ExternalCallFailure(f"file not found: {file_id}")
        mime_type, _ = mimetypes.guess_type(source.name)
        return {
            "mimeType": mime_type or "application/octet-stream",
            "name": source.name,
            "size": source.stat().st_size,
        }


__all__ = ["LocalShortcutStorage", "SYMLINK_MIME_TYPE"]
