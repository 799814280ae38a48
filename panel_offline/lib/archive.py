from __future__ import annotations

import hashlib
import logging
import tarfile
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)


def is_valid_tar(path: Path) -> bool:
    """True when `path` opens as a gzip tar and every member header reads."""

    try:
        with tarfile.open(str(path), "r:gz") as tf:
            for _ in tf:
                pass
        return True
    except (tarfile.TarError, OSError, EOFError):
        return False


def _strip_one(name: str) -> str:
    parts = PurePosixPath(name).parts
    if parts and parts[0] == "/":
        raise tarfile.TarError(f"Absolute member path: {name}")
    if ".." in parts:
        raise tarfile.TarError(f"Member escapes archive root: {name}")
    return str(PurePosixPath(*parts[1:])) if len(parts) > 1 else ""


def extract_strip_components(archive: Path, dest: Path) -> int:
    """Extract a gzip tar into `dest` dropping its top-level directory.

    Equivalent to `tar -xf archive -C dest --strip-components=1`.
    Returns the number of members written.
    """

    dest.mkdir(parents=True, exist_ok=True)
    extract_kwargs = {"filter": "tar"} if hasattr(tarfile, "tar_filter") else {}
    written = 0
    with tarfile.open(str(archive), "r:gz") as tf:
        for member in tf.getmembers():
            stripped = _strip_one(member.name)
            if not stripped:
                continue
            member.name = stripped
            if member.islnk():
                member.linkname = _strip_one(member.linkname)
            tf.extract(member, str(dest), **extract_kwargs)
            written += 1
    return written


def create_tar_gz(src_dir: Path, out_path: Path) -> Path:
    """Compress `src_dir` so that it appears under its own name in the archive."""

    out_path.parent.mkdir(parents=True, exist_ok=True)
    tmp = out_path.with_name(out_path.name + ".tmp")
    with tarfile.open(str(tmp), "w:gz") as tf:
        tf.add(str(src_dir), arcname=src_dir.name)
    tmp.replace(out_path)
    return out_path


def sha256_file(path: Path, *, chunk_size: int = 1024 * 1024) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            h.update(chunk)
    return h.hexdigest()
