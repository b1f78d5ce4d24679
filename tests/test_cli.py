from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from e2dupes import io_enigma
from e2dupes.__main__ import cli, main


def test_scan_prints_tree(enigma_settings: Path) -> None:
    result = CliRunner().invoke(cli, ["scan", str(enigma_settings)])

    assert result.exit_code == 0, result.output
    assert "Total: 14 services / 12 duplicates" in result.output
    assert "19.2E Astra 1KR/1L/1M/1N (19.2E)" in result.output
    assert "ORF1 HD    (ORF) / (2)  [132f:00c00000:0437:0001]" in result.output


def test_scan_json(enigma_settings: Path) -> None:
    result = CliRunner().invoke(cli, ["scan", "--json", str(enigma_settings)])

    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["total_duplicates"] == 12
    assert data["groups"][-1]["label"] == "DVB-T services"


def test_scan_without_path_fails() -> None:
    result = CliRunner().invoke(cli, ["scan"], env={"E2DUPES_CONFIG": ""})

    assert result.exit_code != 0
    assert "no settings folder given" in result.output


def test_remove_selected_writes_output(enigma_settings: Path, tmp_path: Path) -> None:
    out_dir = tmp_path / "cleaned"

    result = CliRunner().invoke(
        cli,
        [
            "remove-selected",
            str(enigma_settings),
            "--id",
            "1330:00c00000:0437:0001",
            "--id",
            "0002:01000000:0010:0002",
            "--output",
            str(out_dir),
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Successfully removed 2 services." in result.output
    assert "Total: 12 services / 8 duplicates" in result.output
    assert len(io_enigma.load_settings(out_dir).services) == 12
    assert len(io_enigma.load_settings(enigma_settings).services) == 14


def test_remove_selected_unknown_id(enigma_settings: Path, tmp_path: Path) -> None:
    result = CliRunner().invoke(
        cli,
        ["remove-selected", str(enigma_settings), "--id", "dead:00000000:0000:0000", "--output", str(tmp_path / "o")],
    )

    assert result.exit_code == 1
    assert "unknown service ids" in result.output
    assert not (tmp_path / "o").exists()


def test_remove_selected_requires_output(enigma_settings: Path) -> None:
    result = CliRunner().invoke(
        cli, ["remove-selected", str(enigma_settings), "--id", "1330:00c00000:0437:0001"], env={"E2DUPES_CONFIG": ""}
    )

    assert result.exit_code == 1
    assert "no output folder given" in result.output


def test_remove_unbouqueted_declined(enigma_settings: Path, tmp_path: Path) -> None:
    out_dir = tmp_path / "cleaned"

    result = CliRunner().invoke(
        cli, ["remove-unbouqueted", str(enigma_settings), "--output", str(out_dir)], input="n\n"
    )

    assert result.exit_code == 0, result.output
    assert "ALL services not in any bouquet" in result.output
    assert "Successfully removed 0 services." in result.output
    assert not out_dir.exists()


def test_remove_unbouqueted_confirmed(enigma_settings: Path, tmp_path: Path) -> None:
    out_dir = tmp_path / "cleaned"

    result = CliRunner().invoke(cli, ["remove-unbouqueted", str(enigma_settings), "--output", str(out_dir), "--yes"])

    assert result.exit_code == 0, result.output
    assert "Successfully removed 10 services." in result.output
    assert len(io_enigma.load_settings(out_dir).services) == 4


def test_remove_unbouqueted_duplicates(enigma_settings: Path, tmp_path: Path) -> None:
    out_dir = tmp_path / "cleaned"

    result = CliRunner().invoke(cli, ["remove-unbouqueted-duplicates", str(enigma_settings), "--output", str(out_dir)])

    assert result.exit_code == 0, result.output
    assert "Successfully removed 9 services." in result.output
    assert "Total: 5 services / 0 duplicates" in result.output
    reloaded = io_enigma.load_settings(out_dir)
    assert sorted(reloaded.services) == [
        "0001:01000000:0010:0002",
        "0203:eeee0000:0002:0085",
        "132f:00c00000:0437:0001",
        "1331:00c00000:0437:0001",
        "283d:00c00000:0441:0001",
    ]


def test_config_supplies_folders(enigma_settings: Path, tmp_path: Path) -> None:
    out_dir = tmp_path / "from-config"
    config = tmp_path / "e2dupes.yaml"
    config.write_text(
        f"settings_dir: {enigma_settings}\noutput_dir: {out_dir}\nrequire_confirmation: false\n",
        encoding="utf-8",
    )

    result = CliRunner().invoke(cli, ["--config", str(config), "remove-unbouqueted"])

    assert result.exit_code == 0, result.output
    assert "Are you sure" not in result.output
    assert "Successfully removed 10 services." in result.output
    assert (out_dir / "lamedb").exists()


def test_invalid_config(tmp_path: Path) -> None:
    config = tmp_path / "bad.yaml"
    config.write_text("unknown: 1\n", encoding="utf-8")

    result = CliRunner().invoke(cli, ["--config", str(config), "scan"])

    assert result.exit_code == 1
    assert "invalid config" in result.output


def test_main_exit_codes(enigma_settings: Path, tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("E2DUPES_CONFIG", raising=False)

    assert main(["scan", str(enigma_settings)]) == 0
    assert main(["scan", str(tmp_path)]) == 1
    assert main(["--version"]) == 0


def test_remove_unbouqueted_without_bouquets_does_not_prompt(enigma_settings: Path, tmp_path: Path) -> None:
    for bouquet_file in enigma_settings.glob("*bouquet*"):
        bouquet_file.unlink()
    out_dir = tmp_path / "cleaned"

    result = CliRunner().invoke(cli, ["remove-unbouqueted", str(enigma_settings), "--output", str(out_dir)])

    assert result.exit_code == 0, result.output
    assert "Are you sure" not in result.output
    assert "There are no bouquets" in result.output
    assert "Successfully removed 0 services." in result.output
    assert not out_dir.exists()
