from __future__ import annotations

import io
import sys
import tarfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import pytest
import requests

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


INSTALL_SH = """#!/bin/bash
CURRENT_DIR=$(cd "$(dirname "$0")" || exit; pwd)
PASSWORD_MASK="**********"

function log() {
    echo -e "$1"
}

function Install_Docker(){
    if which docker >/dev/null 2>&1; then
        log "docker already installed"
    else
        while true; do
        read -p "$TXT_INSTALL_DOCKER_CONFIRM" install_docker_choice
        case "$install_docker_choice" in
            [yY]) break ;;
            *) exit 1 ;;
        esac
        done
    fi
}

function Set_Port(){
    PANEL_PORT=8888
}
"""


def make_tar_gz(files: Dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tf:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755
            tf.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def make_app_tarball(version: str, arch: str, install_sh: str = INSTALL_SH) -> bytes:
    top = f"1panel-{version}-linux-{arch}"
    return make_tar_gz(
        {
            f"{top}/install.sh": install_sh.encode("utf-8"),
            f"{top}/1pctl": f"ORIGINAL_VERSION={version}\n".encode("utf-8"),
            f"{top}/1panel-core": b"core-binary",
            f"{top}/lang/en.yaml": b"hello: Hello\n",
        }
    )


def make_docker_tgz() -> bytes:
    return make_tar_gz({"docker/dockerd": b"dockerd", "docker/docker": b"docker"})


class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b"", headers: Optional[dict] = None) -> None:
        self.status_code = status_code
        self.content = content
        self.headers = dict(headers or {})
        if content and "content-length" not in self.headers:
            self.headers["content-length"] = str(len(content))

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc) -> None:
        return None

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")

    def json(self):
        import json

        return json.loads(self.text)

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def iter_content(self, chunk_size: int = 1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i : i + chunk_size]


Route = Union[bytes, int, Callable[[dict], FakeResponse], List]


class FakeSession:
    """requests.Session stand-in serving canned bodies per URL; unknown URLs 404."""

    def __init__(self, routes: Optional[Dict[str, Route]] = None) -> None:
        self.routes: Dict[str, Route] = dict(routes or {})
        self.calls: List[str] = []
        self.headers_seen: List[dict] = []

    def get(self, url: str, headers: Optional[dict] = None, stream: bool = False, timeout=None) -> FakeResponse:
        self.calls.append(url)
        self.headers_seen.append(dict(headers or {}))
        route = self.routes.get(url, 404)
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(headers or {})
        if isinstance(route, int):
            return FakeResponse(status_code=route)
        return FakeResponse(content=route)


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def install_sh(tmp_path: Path) -> Path:
    p = tmp_path / "install.sh"
    p.write_text(INSTALL_SH, encoding="utf-8")
    return p
