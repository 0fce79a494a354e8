from __future__ import annotations

import json

from tripweaver.cli import main


def _write_request(tmp_path, payload):
    path = tmp_path / "trip.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_cli_transport_prints_mode_and_minutes(capsys):
    # ~1.5 km due east along the equator.
    assert main(["transport", "--from", "0,0", "--to", "0,0.0134898"]) == 0
    out = capsys.readouterr().out
    assert "mode=walking" in out
    assert "travel=23m" in out


def test_cli_optimize_prints_itinerary(tmp_path, capsys, payload):
    path = _write_request(tmp_path, payload)

    assert main(["optimize", "--input", str(path)]) == 0
    out = capsys.readouterr().out
    assert out.startswith("Trip lyon-day: ok")
    assert "Day 1 (2024-06-10)" in out
    assert "Part-Dieu" in out


def test_cli_optimize_json_output_and_overrides(tmp_path, capsys, payload):
    path = _write_request(tmp_path, payload)

    code = main(["optimize", "--input", str(path), "--json", "--override", "scheduling.include_meals=false"])
    assert code == 0
    data = json.loads(capsys.readouterr().out)
    assert data["status"] == "ok"
    assert all(i["item_type"] == "visit" for d in data["days"] for i in d["items"])
    assert data["meta"]["settings_snapshot"]["settings_overrides"] == {"scheduling": {"include_meals": False}}


def test_cli_optimize_exit_code_for_not_attempted(tmp_path, capsys, payload):
    payload["destinations"] = payload["destinations"][:1]
    path = _write_request(tmp_path, payload)

    assert main(["optimize", "--input", str(path)]) == 1
    assert "not_attempted" in capsys.readouterr().out


def test_cli_reports_bad_input_with_exit_code_2(tmp_path, capsys, payload):
    path = _write_request(tmp_path, payload)

    assert main(["optimize", "--input", str(path), "--override", "app.timezone=UTC"]) == 2
    assert "disallowed key" in capsys.readouterr().err

    assert main(["optimize", "--input", str(tmp_path / "missing.json")]) == 2
    assert capsys.readouterr().err.startswith("error:")

    assert main(["transport", "--from", "0", "--to", "1,1"]) == 2


def test_cli_normalize_accepts_a_plain_list(tmp_path, capsys):
    path = tmp_path / "prefs.yaml"
    path.write_text(
        "- {user_id: ana, destination_id: a, rating: 5}\n"
        "- {user_id: ana, destination_id: b, rating: 3}\n"
        "- {user_id: ana, destination_id: c, rating: 1}\n",
        encoding="utf-8",
    )

    assert main(["normalize", "--input", str(path)]) == 0
    data = json.loads(capsys.readouterr().out)
    assert [p["standardized_score"] for p in data["standardized"]] == [1.2247, 0.0, -1.2247]
    assert data["quality"]["is_valid"] is True
