"""
Tests for configuration models and loading.

Precedence, lowest first: model defaults, YAML file or dictionary,
``TESTMATRIX_*`` environment variables.
"""

from pathlib import Path

import pytest
import yaml

from testmatrix.config import (
    EngineConfig,
    ExtractionRules,
    MergePolicy,
    QualityThresholds,
    apply_env_overrides,
    is_supported_version,
    load_config,
    parse_schema_version,
)
from testmatrix.exceptions import ConfigError


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "testmatrix.yaml"
    path.write_text(yaml.safe_dump({
        "project": {"name": "Storefront", "version": "4.2.0", "test_manager": "A. Okafor"},
        "quality": {"min_pass_rate": 90, "slow_test_threshold_ms": 8000},
        "storage": {"snapshot_path": "out/snapshot.json", "merge_policy": "latest_run"},
    }), encoding="utf-8")
    return path


class TestDefaults:

    def test_engine_config_defaults(self):
        config = EngineConfig()

        assert config.project.name == "Unnamed Project"
        assert config.storage.merge_policy is MergePolicy.LAST_WRITE
        assert config.storage.snapshot_path == Path("reports") / "coverage-snapshot.json"
        assert config.quality.min_pass_rate == 95
        assert config.extraction.default_condition == "Standard"

    def test_identification_is_copied_verbatim(self):
        config = EngineConfig.model_validate({
            "project": {"name": "Shop", "release_version": "2026.10", "environment": "uat"},
        })

        identification = config.identification()

        assert identification.project_name == "Shop"
        assert identification.release_version == "2026.10"
        assert identification.environment == "uat"

    def test_unknown_top_level_key_is_rejected(self):
        with pytest.raises(ValueError):
            EngineConfig.model_validate({"unexpected": True})

    def test_health_bands_must_be_ordered(self):
        with pytest.raises(ValueError):
            QualityThresholds(excellent_health=70, good_health=80)

    def test_invalid_keyword_regex_is_rejected(self):
        with pytest.raises(ValueError):
            ExtractionRules.model_validate({"feature_rules": [{"pattern": "(", "value": "Broken"}]})

    def test_environmental_tags_are_normalized(self):
        rules = ExtractionRules(environmental_tags=[" Visual ", "", "FLAKY-NETWORK"])

        assert rules.environmental_tags == ["visual", "flaky-network"]


class TestLoadConfig:

    def test_from_yaml_file(self, config_file):
        config = load_config(config_file, environ={})

        assert config.project.name == "Storefront"
        assert config.project.test_manager == "A. Okafor"
        assert config.quality.min_pass_rate == 90
        assert config.quality.slow_test_threshold_ms == 8000
        assert config.storage.merge_policy is MergePolicy.LATEST_RUN
        assert config.storage.snapshot_path == Path("out/snapshot.json")

    def test_from_string_path(self, config_file):
        assert load_config(str(config_file), environ={}).project.name == "Storefront"

    def test_from_dictionary(self):
        config = load_config({"project": {"name": "Dict Project"}}, environ={})

        assert config.project.name == "Dict Project"

    def test_from_engine_config(self):
        original = EngineConfig.model_validate({"project": {"name": "Original"}})

        config = load_config(original, environ={"TESTMATRIX_ENVIRONMENT": "prod"})

        assert config.project.name == "Original"
        assert config.project.environment == "prod"
        assert original.project.environment is None

    def test_none_without_env_gives_defaults(self):
        assert load_config(None, environ={}) == EngineConfig()

    def test_none_uses_config_path_from_env(self, config_file):
        config = load_config(None, environ={"TESTMATRIX_CONFIG": str(config_file)})

        assert config.project.name == "Storefront"

    def test_environment_overrides_file(self, config_file):
        environ = {
            "TESTMATRIX_PROJECT_NAME": "From Env",
            "TESTMATRIX_SNAPSHOT_PATH": "/tmp/env-snapshot.json",
            "TESTMATRIX_MERGE_POLICY": "last_write",
            "TESTMATRIX_TEST_LEAD": "   ",
        }

        config = load_config(config_file, environ=environ)

        assert config.project.name == "From Env"
        assert config.storage.snapshot_path == Path("/tmp/env-snapshot.json")
        assert config.storage.merge_policy is MergePolicy.LAST_WRITE
        assert config.project.test_lead is None

    def test_apply_env_false_ignores_environment(self, config_file):
        config = load_config(config_file, environ={"TESTMATRIX_PROJECT_NAME": "Ignored"}, apply_env=False)

        assert config.project.name == "Storefront"

    def test_reads_process_environment(self, clean_env):
        clean_env.setenv("TESTMATRIX_PROJECT_NAME", "Process Env")

        assert load_config({}).project.name == "Process Env"

    def test_apply_env_overrides_does_not_mutate_input(self):
        raw = {"project": {"name": "Original"}}

        merged = apply_env_overrides(raw, environ={"TESTMATRIX_PROJECT_NAME": "Changed"})

        assert merged["project"]["name"] == "Changed"
        assert raw["project"]["name"] == "Original"


class TestLoadConfigErrors:

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path / "absent.yaml", environ={})

        assert exc_info.value.error_code == "CONFIG_001"

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("project: [unclosed", encoding="utf-8")

        with pytest.raises(ConfigError) as exc_info:
            load_config(path, environ={})

        assert exc_info.value.error_code == "CONFIG_002"

    def test_yaml_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n", encoding="utf-8")

        with pytest.raises(ConfigError) as exc_info:
            load_config(path, environ={})

        assert exc_info.value.error_code == "CONFIG_002"

    def test_empty_yaml_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("# nothing configured\n", encoding="utf-8")

        assert load_config(path, environ={}) == EngineConfig()

    def test_validation_failure_lists_fields(self):
        with pytest.raises(ConfigError) as exc_info:
            load_config({"quality": {"min_pass_rate": 150}}, environ={})

        error = exc_info.value
        assert error.error_code == "CONFIG_003"
        assert any("min_pass_rate" in detail for detail in error.context["validation_errors"])

    def test_invalid_merge_policy_from_env(self):
        with pytest.raises(ConfigError) as exc_info:
            load_config({}, environ={"TESTMATRIX_MERGE_POLICY": "whatever"})

        assert exc_info.value.error_code == "CONFIG_003"

    def test_unsupported_schema_version(self):
        with pytest.raises(ConfigError) as exc_info:
            load_config({"schema_version": "9.0.0"}, environ={})

        assert exc_info.value.error_code == "CONFIG_003"

    def test_section_must_be_mapping_for_overrides(self):
        with pytest.raises(ConfigError) as exc_info:
            load_config({"project": "flat"}, environ={"TESTMATRIX_PROJECT_NAME": "x"})

        assert exc_info.value.error_code == "CONFIG_003"

    @pytest.mark.parametrize("source", [42, ["a"], object()])
    def test_unsupported_source_type(self, source):
        with pytest.raises(ConfigError) as exc_info:
            load_config(source, environ={})

        assert exc_info.value.error_code == "CONFIG_004"


class TestVersioning:

    @pytest.mark.parametrize("version,supported", [
        ("1.0.0", True),
        ("0.9.0", False),
        ("1.1.0", False),
        ("2.0.0", False),
    ])
    def test_is_supported_version(self, version, supported):
        assert is_supported_version(version) is supported

    def test_parse_schema_version_errors(self):
        with pytest.raises(ValueError):
            parse_schema_version("one")
        with pytest.raises(TypeError):
            parse_schema_version(1)
