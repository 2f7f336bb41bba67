"""Unit tests for run settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from wcv.config import ValidatorSettings
from wcv.exceptions import ConfigError


class TestValidatorSettings:
    """Tests for ValidatorSettings.load."""

    def test_defaults(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)

        settings = ValidatorSettings.load()

        assert settings.max_concurrency == 10
        assert settings.workflow_path == ".github/workflows"
        assert settings.fail_on_error is True
        assert settings.workspace.resolve() == tmp_path.resolve()
        assert settings.output_file is None
        assert settings.annotations is False

    def test_environment(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("INPUT_MAX_CONCURRENCY", "4")
        monkeypatch.setenv("INPUT_WORKFLOW_PATH", "ci/workflows")
        monkeypatch.setenv("INPUT_FAIL_ON_ERROR", "false")
        monkeypatch.setenv("GITHUB_WORKSPACE", str(tmp_path))
        monkeypatch.setenv("GITHUB_OUTPUT", str(tmp_path / "out"))
        monkeypatch.setenv("GITHUB_ACTIONS", "true")

        settings = ValidatorSettings.load()

        assert settings.max_concurrency == 4
        assert settings.fail_on_error is False
        assert settings.workflow_dir == tmp_path / "ci" / "workflows"
        assert settings.output_file == tmp_path / "out"
        assert settings.annotations is True

    def test_empty_environment_values_ignored(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Unset action inputs arrive as empty strings."""
        monkeypatch.setenv("INPUT_MAX_CONCURRENCY", "")
        monkeypatch.setenv("INPUT_FAIL_ON_ERROR", "")

        settings = ValidatorSettings.load()

        assert settings.max_concurrency == 10
        assert settings.fail_on_error is True

    def test_overrides_beat_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("INPUT_MAX_CONCURRENCY", "4")

        settings = ValidatorSettings.load(
            max_concurrency="7", fail_on_error=None, workspace=tmp_path
        )

        assert settings.max_concurrency == 7
        assert settings.fail_on_error is True
        assert settings.workspace.resolve() == tmp_path.resolve()

    @pytest.mark.parametrize("value", ["abc", "0", "-3", "2.5"])
    def test_invalid_ceiling(self, value: str) -> None:
        with pytest.raises(ConfigError) as exc_info:
            ValidatorSettings.load(max_concurrency=value)

        assert str(exc_info.value) == "max-concurrency must be a positive number"
        assert exc_info.value.field == "max-concurrency"

    def test_invalid_ceiling_from_environment(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("INPUT_MAX_CONCURRENCY", "many")

        with pytest.raises(ConfigError, match="positive number"):
            ValidatorSettings.load()

    def test_invalid_flag(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("INPUT_FAIL_ON_ERROR", "sometimes")

        with pytest.raises(ConfigError) as exc_info:
            ValidatorSettings.load()

        assert exc_info.value.field == "fail-on-error"
        assert str(exc_info.value).startswith("Invalid value for fail-on-error")
