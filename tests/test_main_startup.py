from __future__ import annotations

import json

import pytest

import main
from config import SAVE_FILE


def test_headless_run_prints_summary(capsys):
    main.main(["--ticks", "5", "--seed", "3"])

    out = capsys.readouterr().out
    assert "headless_done tick=5 " in out
    assert "ore_nodes=" in out


def test_save_then_load_continues_the_game(tmp_path, capsys):
    path = tmp_path / "save.json"

    main.main(["--ticks", "5", "--save", str(path)])
    assert json.loads(path.read_text())["state"]["tick"] == 5

    main.main(["--ticks", "3", "--load", str(path)])
    assert "headless_done tick=8 " in capsys.readouterr().out


def test_bare_save_flag_uses_default_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    main.main(["--ticks", "1", "--save"])

    assert (tmp_path / SAVE_FILE).exists()


def test_auto_flag_enables_planner(tmp_path):
    path = tmp_path / "save.json"

    main.main(["--ticks", "2", "--auto", "--save", str(path)])

    automation = json.loads(path.read_text())["automation"]
    assert automation["enabled"] is True
    assert automation["use_roi_calculations"] is True


def test_offline_estimate_is_reported(capsys):
    main.main(["--ticks", "0", "--offline-seconds", "3600"])

    out = capsys.readouterr().out
    assert "offline_estimate seconds=3600 ticks=1800 " in out


def test_negative_ticks_is_a_startup_error(capsys):
    with pytest.raises(SystemExit) as exc:
        main.main(["--ticks", "-1"])

    assert exc.value.code == 2
    assert "Startup error:" in capsys.readouterr().err


def test_unwritable_save_path_exits_nonzero(tmp_path, capsys):
    with pytest.raises(SystemExit) as exc:
        main.main(["--ticks", "1", "--save", str(tmp_path)])

    assert exc.value.code == 1
    assert "Save error:" in capsys.readouterr().err


def test_corrupt_save_starts_fresh(tmp_path, capsys):
    path = tmp_path / "save.json"
    path.write_text("not json")

    main.main(["--ticks", "2", "--load", str(path)])

    out = capsys.readouterr().out
    assert "headless_done tick=2 " in out
    assert "started fresh" in out
