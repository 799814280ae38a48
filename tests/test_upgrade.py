from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from panel_offline import upgrade
from panel_offline.lib import services
from panel_offline.lib.command import CmdResult
from panel_offline.lib.conf_file import read_conf
from panel_offline.lib.env import HostPaths
from panel_offline.upgrade_steps import UpgradeError
from panel_offline.upgrade_steps import step_10_preflight, step_40_replace_artifacts, step_90_verify

OLD_CONF = """#!/bin/bash
BASE_DIR=/opt
ORIGINAL_PORT=20410
ORIGINAL_VERSION=v2.0.0
ORIGINAL_USERNAME=admin1
ORIGINAL_PASSWORD=p@ss&w\\rd
ORIGINAL_ENTRANCE=secret
LANGUAGE=en
CHANGE_USER_INFO=false
"""

NEW_CONF = """#!/bin/bash
BASE_DIR=/opt
ORIGINAL_PORT=10086
ORIGINAL_VERSION=v2.0.13
ORIGINAL_USERNAME=
ORIGINAL_PASSWORD=
ORIGINAL_ENTRANCE=
"""


@pytest.fixture
def host(tmp_path, monkeypatch):
    bundle = tmp_path / "bundle"
    (bundle / "lang").mkdir(parents=True)
    (bundle / "initscript").mkdir()
    for name in ("1panel-core", "1panel-agent"):
        (bundle / name).write_text("new", encoding="utf-8")
    (bundle / "1pctl").write_text(NEW_CONF, encoding="utf-8")
    (bundle / "GeoIP.mmdb").write_bytes(b"geo")
    (bundle / "lang" / "en.yaml").write_text("new: yes\n", encoding="utf-8")
    (bundle / "initscript" / "1panel-core.service").write_text("[Unit]\n", encoding="utf-8")
    (bundle / "1panel-agent.service").write_text("[Unit]\n", encoding="utf-8")

    bin_dir = tmp_path / "usr" / "local" / "bin"
    (bin_dir / "lang").mkdir(parents=True)
    for name in ("1panel-core", "1panel-agent"):
        (bin_dir / name).write_text("old", encoding="utf-8")
    (bin_dir / "1pctl").write_text(OLD_CONF, encoding="utf-8")
    (bin_dir / "lang" / "en.yaml").write_text("old: yes\n", encoding="utf-8")

    base = tmp_path / "custom-base"
    (base / "1panel" / "db").mkdir(parents=True)
    conn = sqlite3.connect(str(base / "1panel" / "db" / "core.db"))
    with conn:
        conn.execute("CREATE TABLE settings (key TEXT, value TEXT)")
        conn.execute("INSERT INTO settings VALUES ('SystemVersion', 'v2.0.0')")
    conn.close()

    commands = []

    def fake_run_cmd(argv, **kw):
        commands.append(list(argv))
        return CmdResult(argv=list(argv), returncode=0, stdout="10.0.0.5 \n", stderr="")

    monkeypatch.setattr(step_10_preflight, "_is_root", lambda: True)
    monkeypatch.setattr(services, "run_cmd", fake_run_cmd)
    monkeypatch.setattr(step_90_verify, "run_cmd", fake_run_cmd)
    monkeypatch.setenv("PANEL_BASE_DIR_OVERRIDE", str(base))

    paths = HostPaths(
        bin_dir=str(bin_dir),
        systemd_unit_dir=str(tmp_path / "etc" / "systemd" / "system"),
        init_dir=str(tmp_path / "etc" / "init.d"),
    )
    return {"bundle": bundle, "bin": bin_dir, "base": base, "paths": paths, "commands": commands, "tmp": tmp_path}


def _run(host, **kw):
    return upgrade.run(
        bundle_dir=host["bundle"],
        paths=host["paths"],
        log_path=str(host["tmp"] / "upgrade.log"),
        service_manager="systemd",
        settle_seconds=0,
        **kw,
    )


def test_upgrade_preserves_settings_under_custom_base_dir(host):
    state = _run(host)
    conf = host["bin"] / "1pctl"

    assert read_conf(conf, "BASE_DIR") == str(host["base"])
    assert read_conf(conf, "ORIGINAL_PORT") == "20410"
    assert read_conf(conf, "ORIGINAL_USERNAME") == "admin1"
    assert read_conf(conf, "ORIGINAL_PASSWORD") == "p@ss&w\\rd"
    assert read_conf(conf, "ORIGINAL_ENTRANCE") == "secret"
    assert read_conf(conf, "ORIGINAL_VERSION") == "v2.0.13"
    assert read_conf(conf, "LANGUAGE") == "en"
    assert read_conf(conf, "CHANGE_USER_INFO") == "false"

    assert (host["bin"] / "1panel-core").read_text(encoding="utf-8") == "new"
    assert (host["bin"] / "1panel-core").stat().st_mode & 0o777 == 0o700
    assert (host["base"] / "1panel" / "geo" / "GeoIP.mmdb").read_bytes() == b"geo"

    backup = Path(state["backup_dir"])
    assert (backup / "1panel-core").read_text(encoding="utf-8") == "old"
    assert (backup / "lang" / "en.yaml").exists()

    conn = sqlite3.connect(str(host["base"] / "1panel" / "db" / "core.db"))
    assert conn.execute("SELECT value FROM settings WHERE key='SystemVersion'").fetchone()[0] == "v2.0.13"
    conn.close()
    assert state["decisions"]["system_version"] == {"core.db": "updated"}

    units = host["tmp"] / "etc" / "systemd" / "system"
    assert (units / "1panel-core.service").exists()
    assert (units / "1panel-agent.service").exists()

    cmds = host["commands"]
    assert cmds.index(["systemctl", "stop", "1panel-core.service"]) < cmds.index(
        ["systemctl", "start", "1panel-core.service"]
    )
    assert state["execution"]["completed_steps"][-1] == "90_verify"


def test_failed_binary_copy_rolls_back_and_restarts(host, monkeypatch):
    real = step_40_replace_artifacts._install_binary

    def flaky(src, dst):
        if src.name == "1panel-agent":
            raise OSError("No space left on device")
        real(src, dst)

    monkeypatch.setattr(step_40_replace_artifacts, "_install_binary", flaky)

    with pytest.raises(UpgradeError):
        _run(host)

    assert (host["bin"] / "1panel-core").read_text(encoding="utf-8") == "old"
    assert (host["bin"] / "1pctl").read_text(encoding="utf-8") == OLD_CONF
    cmds = host["commands"]
    stop = cmds.index(["systemctl", "stop", "1panel-agent.service"])
    assert ["systemctl", "start", "1panel-core.service"] in cmds[stop:]
    assert ["systemctl", "start", "1panel-agent.service"] in cmds[stop:]


def test_failed_geoip_copy_rolls_back_and_restarts(host):
    geo = host["base"] / "1panel" / "geo"
    geo.parent.mkdir(parents=True, exist_ok=True)
    geo.write_text("not a directory", encoding="utf-8")

    with pytest.raises(UpgradeError):
        _run(host)

    assert (host["bin"] / "1panel-core").read_text(encoding="utf-8") == "old"
    cmds = host["commands"]
    stop = cmds.index(["systemctl", "stop", "1panel-core.service"])
    assert ["systemctl", "start", "1panel-core.service"] in cmds[stop:]
    assert ["systemctl", "start", "1panel-agent.service"] in cmds[stop:]


def test_services_restart_even_when_restore_fails(host, monkeypatch):
    def broken_copy(src, dst):
        raise OSError("Read-only file system")

    def broken_restore(state):
        raise OSError("backup unreadable")

    monkeypatch.setattr(step_40_replace_artifacts, "_install_binary", broken_copy)
    monkeypatch.setattr(step_40_replace_artifacts, "restore_backup", broken_restore)

    with pytest.raises(UpgradeError):
        _run(host)

    assert ["systemctl", "start", "1panel-core.service"] in host["commands"]


def test_preflight_failure_changes_nothing(host):
    (host["bundle"] / "GeoIP.mmdb").unlink()

    with pytest.raises(UpgradeError):
        _run(host)

    assert host["commands"] == []
    assert not list(host["bundle"].glob("backup_*"))
    assert (host["bin"] / "1panel-core").read_text(encoding="utf-8") == "old"


def test_requires_root_and_prior_install(host, monkeypatch):
    monkeypatch.setattr(step_10_preflight, "_is_root", lambda: False)
    with pytest.raises(UpgradeError, match="root"):
        _run(host)

    monkeypatch.setattr(step_10_preflight, "_is_root", lambda: True)
    (host["bin"] / "1pctl").unlink()
    with pytest.raises(UpgradeError, match="install first"):
        _run(host)


def test_unreadable_base_dir_requires_override(host, monkeypatch):
    monkeypatch.delenv("PANEL_BASE_DIR_OVERRIDE")
    (host["bin"] / "1pctl").write_text(OLD_CONF.replace("BASE_DIR=/opt", f"BASE_DIR={host['tmp'] / 'nope'}"))

    with pytest.raises(UpgradeError, match="PANEL_BASE_DIR_OVERRIDE"):
        _run(host)


def test_version_migration_failure_is_only_a_warning(host, monkeypatch):
    db = host["base"] / "1panel" / "db" / "agent.db"
    sqlite3.connect(str(db)).close()  # no settings table
    monkeypatch.setattr("panel_offline.upgrade_steps.step_60_migrate_version.shutil.which", lambda _n: None)

    state = _run(host)

    assert state["decisions"]["system_version"]["agent.db"] == "skipped"
    assert state["decisions"]["system_version"]["core.db"] == "updated"


def test_openrc_units_are_executable(host):
    (host["bundle"] / "initscript" / "1panel-core.openrc").write_text("#!/sbin/openrc-run\n", encoding="utf-8")

    upgrade.run(
        bundle_dir=host["bundle"],
        paths=host["paths"],
        log_path=str(host["tmp"] / "upgrade.log"),
        service_manager="openrc",
        settle_seconds=0,
    )

    unit = host["tmp"] / "etc" / "init.d" / "1panel-core"
    assert unit.stat().st_mode & 0o111
    assert not (host["tmp"] / "etc" / "init.d" / "1panel-agent").exists()
    assert ["rc-service", "1panel-core", "start"] in host["commands"]


def test_host_ip_falls_back_to_ip_addr(monkeypatch):
    outputs = {
        "hostname": "",
        "ip": "1: lo: <LOOPBACK>\n    inet 127.0.0.1/8 scope host lo\n2: eth0\n    inet 192.168.1.20/24 brd 192.168.1.255\n",
    }

    def fake_run_cmd(argv, **kw):
        return CmdResult(argv=list(argv), returncode=0, stdout=outputs[argv[0]], stderr="")

    monkeypatch.setattr(step_90_verify, "run_cmd", fake_run_cmd)
    assert step_90_verify.get_host_ip() == "192.168.1.20"

    outputs["ip"] = "    inet 127.0.0.1/8 scope host lo\n"
    assert step_90_verify.get_host_ip() == "127.0.0.1"
