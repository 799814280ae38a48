from __future__ import annotations

from panel_offline.lib.conf_file import read_conf, set_conf_value, update_conf


def test_read_conf_first_match_and_missing(tmp_path):
    p = tmp_path / "1pctl"
    p.write_text("BASE_DIR=/opt\nORIGINAL_PORT=8080\nORIGINAL_PORT=9090\n", encoding="utf-8")

    assert read_conf(p, "ORIGINAL_PORT") == "8080"
    assert read_conf(p, "LANGUAGE") == ""
    assert read_conf(tmp_path / "absent", "BASE_DIR") == ""


def test_update_replaces_in_place_and_appends_new_keys(tmp_path):
    p = tmp_path / "1pctl"
    p.write_text("#!/bin/bash\nBASE_DIR=/opt\nORIGINAL_PORT=10086\necho done", encoding="utf-8")
    p.chmod(0o700)

    update_conf(p, {"ORIGINAL_PORT": "20410", "LANGUAGE": "zh", "CHANGE_USER_INFO": None})

    assert p.read_text(encoding="utf-8") == "#!/bin/bash\nBASE_DIR=/opt\nORIGINAL_PORT=20410\necho done\nLANGUAGE=zh\n"
    assert p.stat().st_mode & 0o777 == 0o700


def test_special_characters_are_written_literally():
    out = set_conf_value("ORIGINAL_PASSWORD=old\n", "ORIGINAL_PASSWORD", r"a&b\1|c/d")
    assert out == "ORIGINAL_PASSWORD=a&b\\1|c/d\n"
