"""Unit tests for configuration loading and validation."""

import json
import os
import pytest
import yaml

from siteaudit.audit.exceptions import ConfigurationError
from siteaudit.audit.models.config import AuditOptions, RedirectPolicy
from siteaudit.cli.config import (
    CLIConfiguration,
    ConfigurationLoader,
    load_configuration,
    print_configuration,
    validate_configuration,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep SITEAUDIT_* variables from the host out of the tests."""
    for key in list(os.environ):
        if key.startswith(ConfigurationLoader.ENV_PREFIX):
            monkeypatch.delenv(key)


def config_with(tmp_path, **sections) -> CLIConfiguration:
    sections.setdefault("output", {})
    sections["output"].setdefault("output_dir", tmp_path / "out")
    return CLIConfiguration(**sections)


class TestAuditOptions:
    """Tests for the validated audit options model."""

    def test_defaults(self):
        options = AuditOptions()
        assert options.concurrency == 4
        assert options.max_retries == 2
        assert options.base_delay_ms == 1000
        assert options.redirect_policy == RedirectPolicy.FOLLOW
        assert options.enabled_audits == ["http", "perf", "seo", "a11y", "content_weight", "mobile"]

    def test_unknown_audit_rejected(self):
        with pytest.raises(ValueError, match="lighthouse"):
            AuditOptions(enabled_audits=["http", "lighthouse"])

    def test_content_quality_accepted_but_not_default(self):
        assert "content_quality" not in AuditOptions().enabled_audits
        assert AuditOptions(enabled_audits=["content_quality"]).enabled_audits == ["content_quality"]

    def test_duplicate_audits_dropped(self):
        assert AuditOptions(enabled_audits=["seo", "http", "seo"]).enabled_audits == ["seo", "http"]

    def test_budget_normalized(self):
        assert AuditOptions(performance_budget="ECOMMERCE").performance_budget == "ecommerce"
        with pytest.raises(ValueError):
            AuditOptions(performance_budget="fast")

    def test_concurrency_bounds(self):
        with pytest.raises(ValueError):
            AuditOptions(concurrency=0)


class TestConfigurationLoader:
    """Tests for source precedence: defaults < file < env < CLI."""

    def test_defaults_only(self, tmp_path):
        config = load_configuration(search_paths=[tmp_path])
        assert config.loaded_from == ["defaults"]
        assert config.input.max_pages == 1000
        assert config.server.port == 8080
        assert config.batch.workers == 4

    def test_auto_discovered_yaml(self, tmp_path):
        (tmp_path / "siteaudit.yaml").write_text(yaml.safe_dump({
            "input": {"urls": ["https://a.test/"]},
            "audit": {"concurrency": 6, "redirect_policy": "skip"},
        }))

        config = load_configuration(search_paths=[tmp_path])

        assert config.input.urls == ["https://a.test/"]
        assert config.audit.concurrency == 6
        assert config.audit.redirect_policy == RedirectPolicy.SKIP
        assert config.loaded_from[1].startswith("auto-discovered")

    def test_explicit_json_file(self, tmp_path):
        path = tmp_path / "custom.json"
        path.write_text(json.dumps({"browser": {"headless": False, "max_pages": 3}}))

        config = load_configuration(config_file=path, search_paths=[tmp_path])

        assert config.browser.headless is False
        assert config.browser.max_pages == 3
        assert config.config_file_path == path

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "siteaudit.yaml"
        path.write_text("audit:\n  concurrency: 6\n")
        monkeypatch.setenv("SITEAUDIT_CONCURRENCY", "8")
        monkeypatch.setenv("SITEAUDIT_URLS", "https://a.test/, https://b.test/")
        monkeypatch.setenv("SITEAUDIT_HEADLESS", "false")
        monkeypatch.setenv("SITEAUDIT_JOB_TIMEOUT", "12.5")

        config = load_configuration(config_file=path)

        assert config.audit.concurrency == 8
        assert config.input.urls == ["https://a.test/", "https://b.test/"]
        assert config.browser.headless is False
        assert config.batch.timeout_seconds == 12.5
        assert "environment variables" in config.loaded_from

    def test_cli_overrides_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SITEAUDIT_CONCURRENCY", "8")

        config = load_configuration(
            cli_overrides={"audit": {"concurrency": 2}},
            search_paths=[tmp_path],
        )

        assert config.audit.concurrency == 2
        assert config.loaded_from[-1] == "CLI flags"

    def test_nested_sections_merge(self, tmp_path):
        path = tmp_path / "siteaudit.yaml"
        path.write_text("audit:\n  concurrency: 6\n  max_retries: 4\n")

        config = load_configuration(config_file=path, cli_overrides={"audit": {"concurrency": 1}})

        assert config.audit.concurrency == 1
        assert config.audit.max_retries == 4

    def test_invalid_env_number(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SITEAUDIT_PORT", "eighty")
        with pytest.raises(ConfigurationError, match="server.port"):
            load_configuration(search_paths=[tmp_path])

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_configuration(config_file=tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("audit: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_configuration(config_file=path)

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("x = 1")
        with pytest.raises(ConfigurationError, match="Unsupported"):
            load_configuration(config_file=path)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "siteaudit.yaml"
        path.write_text("audit:\n  concurrency: 100\n")
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            load_configuration(config_file=path)

    def test_print_configuration(self, tmp_path):
        config = load_configuration(search_paths=[tmp_path])

        as_yaml = yaml.safe_load(print_configuration(config, "yaml"))
        as_json = json.loads(print_configuration(config, "json"))

        assert as_yaml["audit"]["concurrency"] == 4
        assert as_json["browser"]["engine"] == "chromium"
        assert "loaded_from" not in as_json


class TestValidateConfiguration:
    """Tests for semantic checks beyond field validation."""

    def test_valid(self, tmp_path):
        config = config_with(tmp_path, input={"urls": ["https://a.test/"]})
        assert validate_configuration(config, require_input=True) == []
        assert (tmp_path / "out").is_dir()

    def test_urls_and_sitemap_conflict(self, tmp_path):
        config = config_with(tmp_path, input={
            "urls": ["https://a.test/"],
            "sitemap_url": "https://a.test/sitemap.xml",
        })
        errors = validate_configuration(config)
        assert any("Both URLs and a sitemap" in e for e in errors)

    def test_input_required(self, tmp_path):
        config = config_with(tmp_path)
        assert validate_configuration(config) == []
        errors = validate_configuration(config, require_input=True)
        assert any("No input" in e for e in errors)

    def test_bad_urls_and_patterns(self, tmp_path):
        config = config_with(tmp_path, input={"urls": ["a.test/page"], "include": ["(oops"]})
        errors = validate_configuration(config)
        assert any("Not an http(s) URL" in e for e in errors)
        assert any("Invalid include pattern" in e for e in errors)

    def test_missing_axe_source(self, tmp_path):
        config = config_with(tmp_path, audit={"axe_source": str(tmp_path / "axe.min.js")})
        errors = validate_configuration(config)
        assert any("axe-core source not found" in e for e in errors)

    def test_verbose_and_quiet(self, tmp_path):
        config = config_with(tmp_path, output={"verbose": True, "quiet": True})
        errors = validate_configuration(config)
        assert any("mutually exclusive" in e for e in errors)
