from __future__ import annotations

import logging
import textwrap
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Literal, Sequence

logger = logging.getLogger(__name__)


PatchStatus = Literal["patched", "noop"]

SENTINEL = "OFFLINE_DOCKER_TGZ"


class PatchError(RuntimeError):
    pass


@dataclass(frozen=True)
class TextEdit:
    """Replace the first verbatim occurrence of `anchor` with `replacement`.

    An edit whose replacement text is already present counts as applied.
    """

    name: str
    anchor: str
    replacement: str


@dataclass
class PatchResult:
    content: str
    applied: List[str] = field(default_factory=list)
    already: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)


def apply_edits(content: str, edits: Sequence[TextEdit], *, strict: bool = True) -> PatchResult:
    """Apply `edits` in order to an in-memory string.

    strict: any missing anchor raises PatchError before anything is returned.
    lenient: edits with missing anchors are skipped and listed in `missing`.
    """

    result = PatchResult(content=content)
    cur = content
    for e in edits:
        if e.replacement in cur:
            result.already.append(e.name)
            continue
        if e.anchor not in cur:
            if strict:
                raise PatchError(f"Anchor for edit '{e.name}' not found; install.sh layout changed.")
            result.missing.append(e.name)
            continue
        cur = cur.replace(e.anchor, e.replacement, 1)
        result.applied.append(e.name)
    result.content = cur
    return result


_PASSWORD_MARKER = 'PASSWORD_MASK="**********"'

_OFFLINE_VARS = textwrap.dedent(
    """
    OFFLINE_DOCKER_TGZ="${CURRENT_DIR}/docker.tgz"
    OFFLINE_COMPOSE_BIN="${CURRENT_DIR}/docker-compose"
    OFFLINE_DOCKER_SERVICE="${CURRENT_DIR}/docker.service"
    """
).strip()

_HELPERS = textwrap.dedent(
    """
    function install_compose_offline() {
        if [ -f "${OFFLINE_COMPOSE_BIN}" ]; then
            log "docker-compose offline package detected, installing..."
            mkdir -p /usr/local/lib/docker/cli-plugins
            cp -f "${OFFLINE_COMPOSE_BIN}" /usr/local/lib/docker/cli-plugins/docker-compose
            cp -f "${OFFLINE_COMPOSE_BIN}" /usr/local/bin/docker-compose
            chmod +x /usr/local/lib/docker/cli-plugins/docker-compose /usr/local/bin/docker-compose
        fi
    }

    function install_docker_offline() {
        log "docker offline package detected, installing..."
        if [ ! -f "${OFFLINE_DOCKER_TGZ}" ]; then
            log "offline docker package missing: ${OFFLINE_DOCKER_TGZ}"
            return 1
        fi

        rm -rf "${CURRENT_DIR}/docker"
        tar -xf "${OFFLINE_DOCKER_TGZ}" -C "${CURRENT_DIR}" || return 1
        chown -R root:root "${CURRENT_DIR}/docker"
        chmod -R 755 "${CURRENT_DIR}/docker"
        cp -f "${CURRENT_DIR}/docker"/* /usr/local/bin
        rm -rf "${CURRENT_DIR}/docker"

        if command -v systemctl &>/dev/null; then
            if [ -f "${OFFLINE_DOCKER_SERVICE}" ]; then
                cp -f "${OFFLINE_DOCKER_SERVICE}" /etc/systemd/system/docker.service
            fi
            systemctl daemon-reload
            systemctl enable docker >/dev/null 2>&1 || true
            systemctl start docker >/dev/null 2>&1 || true
        elif command -v service &>/dev/null; then
            service dockerd start >/dev/null 2>&1 || true
        fi

        install_compose_offline
        log "$TXT_DOCKER_RESTARTED"
    }
    """
).strip()

_INSTALL_DOCKER_MARKER = "function Install_Docker(){"

_PROMPT_MARKER = (
    "    else\n"
    "        while true; do\n"
    '        read -p "$TXT_INSTALL_DOCKER_CONFIRM" install_docker_choice\n'
)
_PROMPT_REPLACEMENT = (
    "    else\n"
    '        if [[ -f "${OFFLINE_DOCKER_TGZ}" ]]; then\n'
    "            install_docker_offline\n"
    "            return\n"
    "        fi\n"
    "        while true; do\n"
    '        read -p "$TXT_INSTALL_DOCKER_CONFIRM" install_docker_choice\n'
)

_TAIL_MARKER = "    fi\n}\n\nfunction Set_Port(){"
_TAIL_REPLACEMENT = "    fi\n    install_compose_offline\n}\n\nfunction Set_Port(){"


INSTALL_SCRIPT_EDITS: Sequence[TextEdit] = (
    TextEdit("offline-vars", _PASSWORD_MARKER, _PASSWORD_MARKER + "\n\n" + _OFFLINE_VARS),
    TextEdit("offline-helpers", _INSTALL_DOCKER_MARKER, _HELPERS + "\n\n" + _INSTALL_DOCKER_MARKER),
    TextEdit("docker-prompt", _PROMPT_MARKER, _PROMPT_REPLACEMENT),
    TextEdit("compose-tail", _TAIL_MARKER, _TAIL_REPLACEMENT),
)


def patch_install_script(path: Path, *, strict: bool = True) -> PatchStatus:
    """Splice offline docker/compose install paths into 1Panel's install.sh.

    The file is rewritten atomically, and only when something changed.
    """

    if not path.is_file():
        raise PatchError(f"Installer script not found: {path}")

    content = path.read_text(encoding="utf-8")
    if SENTINEL in content:
        logger.info("%s already patched", path)
        return "noop"

    result = apply_edits(content, INSTALL_SCRIPT_EDITS, strict=strict)
    for name in result.missing:
        logger.warning("install.sh patch '%s' skipped: anchor not found (layout changed upstream?)", name)

    if result.content == content:
        return "noop"

    tmp = path.with_name(path.name + ".patching")
    tmp.write_text(result.content, encoding="utf-8")
    tmp.chmod(path.stat().st_mode & 0o7777)
    tmp.replace(path)
    logger.info("Patched %s (%s)", path, ", ".join(result.applied))
    return "patched"
