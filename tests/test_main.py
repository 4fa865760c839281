"""Tests for the command line interface."""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from build_reclaim.config import ReclaimConfig
from build_reclaim.main import main, setup_logging

from conftest import FakeAdapter


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Write a config rooted at the temp directory."""
    path = tmp_path / "build-reclaim.yaml"
    data = {
        "project_root": ".",
        "platform": "linux",
        "targets": ["release", "dist"],
        "processes": ["koala-desktop"],
        "quiescence_wait": 0,
        "logging": {"file": str(tmp_path / "logs" / "reclaim.log"), "level": "INFO"},
    }
    path.write_text(yaml.dump(data))
    return path


class TestRunCommand:
    """Tests for the run command."""

    def test_run_reclaims_configured_targets(
        self, config_file: Path, release_dir: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        adapter = FakeAdapter()
        with patch("build_reclaim.session.get_platform_adapter", return_value=adapter):
            code = main(["--config", str(config_file), "run"])

        assert code == 0
        assert not release_dir.exists()
        assert adapter.terminate_calls == ["koala-desktop"]
        out = capsys.readouterr().out
        assert "release" in out
        assert "removed" in out

    def test_run_is_default_command(self, config_file: Path, release_dir: Path) -> None:
        with patch("build_reclaim.session.get_platform_adapter", return_value=FakeAdapter()):
            code = main(["--config", str(config_file)])

        assert code == 0
        assert not release_dir.exists()

    def test_run_writes_log_file(self, config_file: Path, release_dir: Path, tmp_path: Path) -> None:
        with patch("build_reclaim.session.get_platform_adapter", return_value=FakeAdapter()):
            main(["--config", str(config_file), "run"])

        log_text = (tmp_path / "logs" / "reclaim.log").read_text()
        assert "Removed release (direct)" in log_text

    def test_target_and_process_overrides(self, config_file: Path, tmp_path: Path) -> None:
        (tmp_path / "temp-build").mkdir()
        adapter = FakeAdapter()
        with patch("build_reclaim.session.get_platform_adapter", return_value=adapter):
            code = main(
                ["--config", str(config_file), "run", "-t", "temp-build", "-p", "electron", "--quiescence", "0"]
            )

        assert code == 0
        assert not (tmp_path / "temp-build").exists()
        assert adapter.terminate_calls == ["electron"]

    def test_strict_fails_when_target_left(self, config_file: Path, release_dir: Path) -> None:
        adapter = FakeAdapter(direct_fails=True, forced_fails=True, rename_fails=True, schedule_fails=True)
        with patch("build_reclaim.session.get_platform_adapter", return_value=adapter):
            assert main(["--config", str(config_file), "run"]) == 0
            assert main(["--config", str(config_file), "run", "--strict"]) == 1

        assert release_dir.exists()

    def test_strict_accepts_deferred(self, config_file: Path, release_dir: Path) -> None:
        adapter = FakeAdapter(direct_fails=True, forced_fails=True)
        with patch("build_reclaim.session.get_platform_adapter", return_value=adapter):
            assert main(["--config", str(config_file), "run", "--strict"]) == 0

    def test_unmatched_glob_is_clean_run(self, config_file: Path) -> None:
        adapter = FakeAdapter()
        with patch("build_reclaim.session.get_platform_adapter", return_value=adapter):
            code = main(["--config", str(config_file), "run", "--strict", "-t", "electron-*"])

        assert code == 0
        assert adapter.terminate_calls == []

    def test_invalid_config_exit_code(self, tmp_path: Path) -> None:
        bad = tmp_path / "bad.yaml"
        bad.write_text("quiescence_wait: -3\n")

        assert main(["--config", str(bad), "run"]) == 2


class TestStatusCommand:
    """Tests for the status command."""

    def test_status_lists_targets(
        self, config_file: Path, release_dir: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        code = main(["--config", str(config_file), "status"])

        assert code == 0
        out = capsys.readouterr().out
        assert "release" in out
        assert "dist" in out
        assert release_dir.exists()


class TestConfigCommand:
    """Tests for the config command."""

    def test_init_creates_file(self, tmp_path: Path) -> None:
        config_path = tmp_path / "new" / "config.yaml"

        assert main(["--config", str(config_path), "config", "--init"]) == 0
        assert config_path.exists()
        assert main(["--config", str(config_path), "config", "--init"]) == 1

    def test_show(self, config_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["--config", str(config_file), "config", "--show"]) == 0
        assert "Quiescence wait" in capsys.readouterr().out

    def test_no_flag(self, config_file: Path) -> None:
        assert main(["--config", str(config_file), "config"]) == 1


class TestSetupLogging:
    """Tests for logging setup."""

    def test_invalid_log_level_raises(self, tmp_path: Path) -> None:
        config = ReclaimConfig.for_platform("linux", tmp_path)
        config.log_level = "INVALID"

        with pytest.raises(ValueError, match="Invalid log_level"):
            setup_logging(config)

    def test_handlers_not_duplicated(self, tmp_path: Path) -> None:
        config = ReclaimConfig.for_platform("linux", tmp_path)
        config.log_file = tmp_path / "reclaim.log"

        setup_logging(config)
        logger = setup_logging(config)

        assert len(logger.handlers) == 2
        assert logger.level == logging.INFO
