from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from repo_snapshot import __version__, assembler, cli

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


@pytest.mark.unit
def test_parse_args_parses_rules_and_flags() -> None:
    settings = cli.parse_args(
        [
            "--root",
            "proj",
            "--include",
            r"^gen/",
            "--include",
            r"\.sql$",
            "--exclude",
            r"^docs/",
            "--exclude-ext",
            "log",
            "--max-file-mb",
            "2",
            "--no-redact",
            "--json",
            "--workers",
            "3",
        ],
    )

    assert settings.root == Path("proj")
    assert settings.include == [r"^gen/", r"\.sql$"]
    assert settings.exclude == [r"^docs/"]
    assert settings.exclude_ext == ["log"]
    assert settings.max_file_mb == 2.0
    assert settings.redact is False
    assert settings.preserve_manifests is True
    assert settings.json_metadata is True
    assert settings.workers == 3


@pytest.mark.unit
def test_parse_args_leaves_unset_scalars_out_of_fields_set() -> None:
    settings = cli.parse_args(["--config", "rules.yaml"])

    assert settings.config_file == "rules.yaml"
    assert "max_file_mb" not in settings.model_fields_set
    assert "redact" not in settings.model_fields_set
    assert "preserve_manifests" not in settings.model_fields_set


@pytest.mark.unit
def test_parse_args_version_flag(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.parse_args(["--version"])

    assert exc_info.value.code == 0
    captured = capsys.readouterr()
    assert __version__ in captured.out


@pytest.mark.unit
def test_main_returns_config_error_status_for_bad_regex(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    out_dir = tmp_path / "out"

    exit_code = cli.main(["--root", str(tmp_path), "--output-dir", str(out_dir), "--include", "[oops"])

    assert exit_code == cli.EXIT_CONFIG_ERROR
    assert "[oops" in capsys.readouterr().err
    assert not out_dir.exists()


@pytest.mark.unit
def test_main_returns_output_error_status_when_destination_is_a_file(tmp_path: Path) -> None:
    blocker = tmp_path / "out"
    blocker.write_text("", encoding="utf-8")

    exit_code = cli.main(["--root", str(tmp_path), "--output-dir", str(blocker)])

    assert exit_code == cli.EXIT_OUTPUT_ERROR


@pytest.mark.unit
def test_main_read_errors_do_not_change_exit_status(
    tmp_path: Path,
    mocker: MockerFixture,
    capsys: pytest.CaptureFixture[str],
) -> None:
    root = tmp_path / "proj"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.py").write_text("print('hi')\n", encoding="utf-8")
    mocker.patch.object(assembler, "read_text_content", side_effect=OSError("disk on fire"))
    mocker.patch.object(assembler, "git_log", return_value="")

    exit_code = cli.main(["--root", str(root), "--output-dir", str(tmp_path / "out")])

    assert exit_code == cli.EXIT_OK
    assert "read_errors=1" in capsys.readouterr().out
    content = (tmp_path / "out" / "content.md").read_text(encoding="utf-8")
    assert "[READ ERROR: src/app.py: disk on fire]" in content


@pytest.mark.unit
@pytest.mark.parametrize(
    ("flag", "value", "field"),
    [("--workers", "0", "workers"), ("--max-file-mb", "0", "max_file_mb"), ("--git-log-count", "-1", "git_log_count")],
)
def test_main_returns_config_error_status_for_invalid_option_values(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
    flag: str,
    value: str,
    field: str,
) -> None:
    out_dir = tmp_path / "out"

    exit_code = cli.main(["--root", str(tmp_path), "--output-dir", str(out_dir), flag, value])

    assert exit_code == cli.EXIT_CONFIG_ERROR
    assert field in capsys.readouterr().err
    assert not out_dir.exists()


@pytest.mark.unit
def test_main_returns_config_error_status_for_invalid_environment_default(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setenv("REPO_SNAPSHOT_MAX_FILE_MB", "abc")

    exit_code = cli.main(["--root", str(tmp_path), "--output-dir", str(tmp_path / "out")])

    assert exit_code == cli.EXIT_CONFIG_ERROR
    assert "REPO_SNAPSHOT_MAX_FILE_MB" in capsys.readouterr().err


@pytest.mark.unit
def test_main_returns_config_error_status_for_missing_root(tmp_path: Path) -> None:
    exit_code = cli.main(["--root", str(tmp_path / "nowhere"), "--output-dir", str(tmp_path / "out")])

    assert exit_code == cli.EXIT_CONFIG_ERROR


@pytest.mark.unit
def test_main_returns_output_error_status_when_a_bundle_file_cannot_be_written(
    tmp_path: Path,
    mocker: MockerFixture,
) -> None:
    root = tmp_path / "proj"
    root.mkdir()
    (root / "app.py").write_text("print(1)\n", encoding="utf-8")
    (tmp_path / "out" / "tree.txt").mkdir(parents=True)
    mocker.patch.object(assembler, "git_log", return_value="")

    exit_code = cli.main(["--root", str(root), "--output-dir", str(tmp_path / "out")])

    assert exit_code == cli.EXIT_OUTPUT_ERROR
