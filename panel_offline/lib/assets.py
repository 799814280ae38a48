from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)


ASSETS_DIR = Path(__file__).resolve().parents[1] / "assets"


def asset_path(name: str) -> Path:
    p = ASSETS_DIR / name
    if not p.is_file():
        raise FileNotFoundError(str(p))
    return p


def copy_tree(src: str, dst: str, *, ignore: Iterable[str] = ()) -> None:
    """Merge-copy `src` into `dst`, skipping any path component in `ignore`."""

    s = Path(src)
    d = Path(dst)
    if not s.exists():
        raise FileNotFoundError(src)

    skip = set(ignore)
    d.mkdir(parents=True, exist_ok=True)
    for item in s.rglob("*"):
        rel = item.relative_to(s)
        if skip.intersection(rel.parts):
            continue
        out = d / rel
        if item.is_dir():
            out.mkdir(parents=True, exist_ok=True)
        else:
            out.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(item, out)


def install_file(src: Path, dst: Path, *, mode: int | None = None) -> Path:
    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(src, dst)
    if mode is not None:
        dst.chmod(mode)
    return dst
