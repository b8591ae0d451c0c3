"""
Unit Tests for Configuration Loading.

Test Aspects Covered:
    ✅ Business Logic: YAML load, profile merge, environment overrides
    ✅ Error Handling: Missing profile, invalid values, duplicate stages
    ✅ Defaults: Model defaults without any YAML
"""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from enrichment_funnel.config.loader import ConfigLoader, load_config
from enrichment_funnel.config.models import DEFAULT_STAGE_ORDER, PipelineConfig


class TestConfigDefaults:
    """Test model defaults."""

    def test_defaults(self) -> None:
        config = PipelineConfig()

        assert config.stages == DEFAULT_STAGE_ORDER
        assert config.global_settings.staleness_days == 90
        assert config.global_settings.provider_retry_attempts == 2
        assert config.headcount_filter.min_employees == 10
        assert config.headcount_filter.max_employees == 1500
        assert config.country_presence.threshold_pct == 20.0
        assert config.title_relevance.window_size == 100

    def test_duplicate_stage_ids_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PipelineConfig(stages=["titleRelevance", "titleRelevance"])

    def test_invalid_window_size_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PipelineConfig.model_validate({"person_enrichment": {"window_size": 0}})


class TestConfigLoader:
    """Test YAML loading."""

    def test_load_sample_config(self, sample_config_path: Path) -> None:
        """
        SCENARIO: Load the sample YAML
        EXPECTED: Values from YAML, defaults elsewhere
        """
        config = load_config(sample_config_path)

        assert config.global_settings.persistence_namespace == "test"
        assert config.global_settings.staleness_days == 30
        assert config.stages == [
            "titleRelevance",
            "personEnrichment",
            "headcountFilter",
            "countryPresence",
        ]
        assert config.headcount_filter.min_employees == 20
        assert config.country_presence.threshold_pct == 25
        assert config.advisor_scoring.window_size == 5

    def test_profile_merged_deeply(self, tmp_path: Path, sample_config_path: Path) -> None:
        """
        SCENARIO: Profile overrides one key in a section
        EXPECTED: Overridden key changes, siblings kept
        """
        profiles = tmp_path / "config" / "profiles"
        profiles.mkdir(parents=True)
        (profiles / "strict.yaml").write_text(
            yaml.safe_dump({"headcount_filter": {"max_employees": 500}}), encoding="utf-8"
        )

        config = ConfigLoader(base_path=tmp_path, environ={}).load(sample_config_path, "strict")

        assert config.headcount_filter.max_employees == 500
        assert config.headcount_filter.min_employees == 20

    def test_missing_profile(self, tmp_path: Path, sample_config_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            ConfigLoader(base_path=tmp_path, environ={}).load(sample_config_path, "nope")

    def test_environment_overrides(self, sample_config_path: Path) -> None:
        environ = {
            "ENRICHMENT_FUNNEL_PROXY_URL": "http://proxy:9000",
            "ENRICHMENT_FUNNEL_NAMESPACE": "staging",
        }

        config = ConfigLoader(environ=environ).load(sample_config_path)

        assert config.proxy.base_url == "http://proxy:9000"
        assert config.global_settings.persistence_namespace == "staging"
        assert config.global_settings.staleness_days == 30

    def test_relative_path_resolved_against_base(self, tmp_path: Path) -> None:
        (tmp_path / "pipeline.yaml").write_text("global:\n  staleness_days: 7\n", encoding="utf-8")

        config = ConfigLoader(base_path=tmp_path, environ={}).load("pipeline.yaml")

        assert config.global_settings.staleness_days == 7

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        config = ConfigLoader(environ={}).load(path)

        assert config.stages == DEFAULT_STAGE_ORDER

    def test_load_from_dict(self) -> None:
        config = ConfigLoader().load_from_dict({"global": {"cancel_timeout_seconds": 1.5}})

        assert config.global_settings.cancel_timeout_seconds == 1.5
