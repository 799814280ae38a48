from __future__ import annotations

import re
from pathlib import Path
from typing import Mapping, Optional


def _key_re(key: str) -> "re.Pattern[str]":
    return re.compile(rf"^{re.escape(key)}=(.*)$", re.MULTILINE)


def read_conf(path: Path, key: str) -> str:
    """Value of the first `KEY=value` line, or "" when absent."""

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return ""
    m = _key_re(key).search(text)
    return m.group(1) if m else ""


def set_conf_value(content: str, key: str, value: str) -> str:
    pattern = _key_re(key)
    line = f"{key}={value}"
    if pattern.search(content):
        # Callable replacement keeps backslashes in `value` literal.
        return pattern.sub(lambda _m: line, content)
    if content and not content.endswith("\n"):
        content += "\n"
    return content + line + "\n"


def update_conf(path: Path, values: Mapping[str, Optional[str]]) -> None:
    """Rewrite `KEY=value` lines in place; keys not present are appended.

    Keys mapped to None are left untouched.
    """

    content = path.read_text(encoding="utf-8")
    for key, value in values.items():
        if value is None:
            continue
        content = set_conf_value(content, key, value)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(content, encoding="utf-8")
    mode = path.stat().st_mode & 0o7777
    tmp.chmod(mode)
    tmp.replace(path)
