"""环节五：测试命令行入口与目录解析。"""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image
from typer.testing import CliRunner

from image_transcoder.cli import main as cli
from image_transcoder.core.exceptions import DirectoryAccessError

runner = CliRunner()


def test_legacy_mode_bootstraps_missing_source(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(cli.app, [], input="y\n")

    assert result.exit_code == 0, result.output
    assert (tmp_path / "ToConvert").is_dir()
    assert not (tmp_path / "Converted").exists()


def test_legacy_mode_declined_bootstrap(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(cli.app, [], input="n\n")

    assert result.exit_code == 0
    assert not (tmp_path / "ToConvert").exists()


def test_legacy_mode_converts_into_timestamped_folder(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    source = tmp_path / "ToConvert"
    source.mkdir()
    Image.new("RGB", (30, 20), "orange").save(source / "sunset.png")
    (source / "broken.jpg").write_text("nope")

    result = runner.invoke(cli.app, ["--workers", "1"])

    assert result.exit_code == 0, result.output
    assert "目录内容（共 2 个文件）" in result.output
    assert "- sunset.png" in result.output
    sessions = list((tmp_path / "Converted").iterdir())
    assert len(sessions) == 1
    assert [p.name for p in sessions[0].iterdir()] == ["sunset.jpg"]


def test_explicit_source_and_output(tmp_path: Path) -> None:
    source = tmp_path / "photos"
    source.mkdir()
    Image.new("RGB", (300, 100), "navy").save(source / "banner.bmp")
    output = tmp_path / "exports"

    result = runner.invoke(
        cli.app,
        [str(source), "--output", str(output), "--workers", "1", "--max-dimension", "90", "--report", "report.csv"],
    )

    assert result.exit_code == 0, result.output
    (session,) = list(output.iterdir())
    with Image.open(session / "banner.jpg") as img:
        assert img.size == (90, 30)
    assert (session / "report.csv").exists()


def test_empty_source_reports_nothing_to_do(tmp_path: Path) -> None:
    source = tmp_path / "empty"
    source.mkdir()

    result = runner.invoke(cli.app, [str(source), "--output", str(tmp_path / "out")])

    assert result.exit_code == 0
    assert "没有找到图片文件" in result.output
    assert not (tmp_path / "out").exists()


def test_resolve_directories_defaults() -> None:
    source_dir, output_root, legacy = cli.resolve_directories(Path("/data/in"), None)

    assert legacy is False
    assert source_dir == Path("/data/in").resolve()
    assert output_root == Path("/data/in/Converted").resolve()


def test_directory_error_exits_with_distinct_code(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    source = tmp_path / "src"
    source.mkdir()
    Image.new("RGB", (8, 8)).save(source / "x.png")

    def deny(*_args, **_kwargs):
        raise DirectoryAccessError("无法创建输出目录")

    monkeypatch.setattr(cli, "run_batch", deny)

    result = runner.invoke(cli.app, [str(source)])

    assert result.exit_code == cli.EXIT_DIRECTORY_ERROR
    assert "目录访问失败" in result.output


def test_unexpected_error_exits_non_zero(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    source = tmp_path / "src"
    source.mkdir()
    Image.new("RGB", (8, 8)).save(source / "x.png")

    def crash(*_args, **_kwargs):
        raise RuntimeError("kaboom")

    monkeypatch.setattr(cli, "run_batch", crash)

    result = runner.invoke(cli.app, [str(source)])

    assert result.exit_code == cli.EXIT_UNEXPECTED_ERROR
    assert "kaboom" in result.output


def test_invalid_quality_is_rejected(tmp_path: Path) -> None:
    result = runner.invoke(cli.app, [str(tmp_path), "--min-quality", "0"])

    assert result.exit_code != 0
    assert not (tmp_path / "Converted").exists()
