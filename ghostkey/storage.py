"""
Ghostkey key file storage.

Armored artifacts live in plain text files. Private key files are created
with mode 0600 and every read of a private key goes through
check_private_key_permissions() first.
"""

import logging
import os
import stat
from pathlib import Path
from typing import Union

from ghostkey.errors import InsecurePermissionsError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

PRIVATE_FILE_MODE = 0o600
PUBLIC_FILE_MODE = 0o644


def check_private_key_permissions(path: PathLike, ignore_permissions: bool = False) -> None:
    """
    Pre-flight check run before any private key file is read.

    Raises:
        InsecurePermissionsError: If the file grants any access to group or
            others and ignore_permissions is not set.
        OSError: If the file cannot be stat'ed.
    """
    if ignore_permissions:
        logger.debug(f"Skipping permission check for {path}")
        return
    mode = stat.S_IMODE(os.stat(path).st_mode)
    if mode & (stat.S_IRWXG | stat.S_IRWXO):
        raise InsecurePermissionsError(str(path), mode)


def read_private_key(path: PathLike, ignore_permissions: bool = False) -> str:
    """Read an armored private key file after the permission pre-flight."""
    check_private_key_permissions(path, ignore_permissions)
    return Path(path).read_text(encoding="ascii")


def read_text(path: PathLike) -> str:
    return Path(path).read_text(encoding="utf-8")


def write_artifact(
    path: PathLike, content: str, private: bool = False, overwrite: bool = False
) -> Path:
    """
    Write an armored artifact to disk.

    Private files are created with mode 0600 from the start, so the content
    is never readable by others, even briefly.

    Args:
        path: Destination file. Parent directories are created.
        content: Text to write.
        private: Whether the file holds a signing key.
        overwrite: Replace an existing file instead of refusing.

    Raises:
        FileExistsError: If path exists and overwrite is False.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    flags = os.O_WRONLY | os.O_CREAT | (os.O_TRUNC if overwrite else os.O_EXCL)
    mode = PRIVATE_FILE_MODE if private else PUBLIC_FILE_MODE
    fd = os.open(str(path), flags, mode)
    try:
        os.write(fd, content.encode("utf-8"))
    finally:
        os.close(fd)
    # O_CREAT leaves the mode of a pre-existing file untouched
    os.chmod(path, mode)

    logger.debug(f"Wrote {'private' if private else 'public'} artifact {path}")
    return path
