"""
Zip packaging of fetched file contents
"""

import io
import logging
import posixpath
import zipfile
from typing import Iterable, Tuple

logger = logging.getLogger(__name__)


def safe_archive_name(file_name: str) -> str:
    """Flatten a stored file name into a single archive member name"""
    name = posixpath.basename(file_name.replace("\\", "/")).strip()
    return name or "unnamed"


def build_zip_archive(files: Iterable[Tuple[str, str]]) -> bytes:
    """
    Package file contents into an in-memory zip archive

    Args:
        files: (file name, contents) pairs

    Returns:
        Zip archive bytes
    """
    buffer = io.BytesIO()
    used_names = set()
    count = 0
    with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as zipf:
        for file_name, contents in files:
            arcname = safe_archive_name(file_name)
            stem, ext = posixpath.splitext(arcname)
            suffix = 1
            while arcname in used_names:
                arcname = f"{stem} ({suffix}){ext}"
                suffix += 1
            used_names.add(arcname)
            zipf.writestr(arcname, contents.encode("utf-8"))
            count += 1

    logger.info(f"Packaged {count} files into zip archive")
    return buffer.getvalue()
