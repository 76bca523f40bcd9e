"""Unit tests for runtime settings."""

from pathlib import Path

from pydantic import ValidationError
import pytest

from caselaw_search.config import Settings


@pytest.mark.unit
class TestSettings:
    def test_defaults(self, settings):
        assert settings.default_max_results == 20
        assert settings.max_results_limit == 1000
        assert settings.max_snippets_per_document == 3
        assert settings.max_snippet_results == 5
        assert settings.default_timeout_ms == 0
        assert settings.strict_invariants is False
        assert settings.snapshot_path is None
        assert settings.port == 15080

    def test_environment_overrides(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("CASELAW_SEARCH_MAX_SNIPPET_RESULTS", "2")
        monkeypatch.setenv("CASELAW_SEARCH_STRICT_INVARIANTS", "true")
        monkeypatch.setenv("CASELAW_SEARCH_SNAPSHOT_PATH", "/var/lib/caselaw/index.clsx")

        settings = Settings()

        assert settings.max_snippet_results == 2
        assert settings.strict_invariants is True
        assert settings.snapshot_path == Path("/var/lib/caselaw/index.clsx")

    def test_dotenv_file_is_read(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env").write_text("CASELAW_SEARCH_PORT=18080\n", encoding="utf-8")

        assert Settings().port == 18080

    def test_invalid_values_rejected(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("CASELAW_SEARCH_MAX_RESULTS_LIMIT", "0")

        with pytest.raises(ValidationError):
            Settings()

    def test_default_must_not_exceed_limit(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        with pytest.raises(ValidationError, match="default_max_results"):
            Settings(default_max_results=50, max_results_limit=10)

    @pytest.mark.parametrize(("requested", "expected"), [(None, 20), (5, 5), (0, 0), (5000, 1000)])
    def test_resolve_max_results(self, settings, requested, expected):
        assert settings.resolve_max_results(requested) == expected

    def test_resolve_timeout(self, settings):
        assert settings.resolve_timeout(None) is None
        assert settings.resolve_timeout(0.25) == 0.25

    def test_resolve_timeout_uses_default_ms(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert Settings(default_timeout_ms=1500).resolve_timeout(None) == 1.5
        assert Settings(default_timeout_ms=1500).resolve_timeout(0) is None
