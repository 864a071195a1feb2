import json

import pytest

import main


@pytest.fixture
def recording(tmp_path):
    path = tmp_path / "ride.csv"
    path.write_text(
        "timestamp,beta\n"
        "0,5\n1,25\n2,30\n3,28\n4,10\n"
        "5,40\n5.5,10\n"
    )
    return str(path)


def test_prints_wheelies(recording, capsys):
    assert main.main([recording]) == 0
    out = capsys.readouterr().out
    assert "2 wheelie(s) in 7 samples" in out
    assert "max  30.0°" in out


def test_json_output(recording, capsys):
    assert main.main([recording, "--json"]) == 0
    lines = capsys.readouterr().out.strip().splitlines()
    records = [json.loads(line) for line in lines]
    assert [r["max_angle"] for r in records] == [30, 40]
    assert records[0]["duration"] == 3


def test_threshold_and_offset(recording, capsys):
    assert main.main([recording, "--json", "--offset", "6", "--threshold", "21"]) == 0
    records = [json.loads(l) for l in capsys.readouterr().out.strip().splitlines()]
    # 25-6=19 no longer qualifies, so the first run spans t=2..4
    assert records[0]["duration"] == 2
    assert records[0]["max_angle"] == 24


def test_re_arm_delay(tmp_path, capsys):
    path = tmp_path / "bounce.csv"
    path.write_text("0,25\n1,10\n1.2,25\n1.4,10\n3,25\n4,0\n")
    assert main.main([str(path), "--json", "--re-arm-delay", "1"]) == 0
    records = capsys.readouterr().out.strip().splitlines()
    assert len(records) == 2


def test_missing_file():
    assert main.main(["/nonexistent/ride.csv"]) == 2


def test_bad_nickname(recording):
    assert main.main([recording, "--nickname", "x"]) == 2


def test_save_without_store(recording, monkeypatch):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_KEY", raising=False)
    assert main.main([recording, "--save", "--nickname", "ann"]) == 2


def test_analyse_returns_stopped_session():
    from wheelie.detector import DetectorConfig

    session = main.analyse([(0, 30), (1, 0), (2, 35)], DetectorConfig())
    assert not session.is_measuring
    assert len(session.history) == 1
