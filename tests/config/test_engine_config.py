"""
Tests for engine configuration loading.
"""

import logging
from decimal import Decimal

import pytest
import yaml

from execution_config import EngineConfig, PayableRuleDef, load_engine_config


class TestBundledDefaults:
    def test_engine_settings(self, engine_config):
        assert engine_config.identity_tolerance == Decimal("0.01")
        assert engine_config.relative_tolerance is None
        assert engine_config.verification_debounce_ms == 300

    def test_alias_table(self, engine_config):
        aliases = dict(engine_config.code_aliases)

        assert aliases["_D_D-01_1"] == "_D_VAT_COMMUNICATION_ALL"
        assert aliases["_D_VAT_AIRTIME"] == "_D_VAT_COMMUNICATION_ALL"
        assert aliases["_G_G-01_3"] == "_G_3"

    def test_payable_rules_keep_file_order(self, engine_config):
        rules = engine_config.payable_rules

        assert rules[0] == PayableRuleDef(subcategory="B-01", payable_patterns=("salaries",))
        assert rules[-1].subcategory == "B-05"
        assert rules[-1].payable_patterns == ()

    def test_load_emits_config_trace(self, caplog):
        caplog.set_level(logging.INFO, logger="execution_kernel")

        load_engine_config()

        record = next(r for r in caplog.records if r.getMessage() == "EXECUTION_CONFIG_TRACE")
        assert record.alias_count > 0
        assert record.identity_tolerance == "0.01"


class TestLoadFromFile:
    def test_custom_file(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "engine": {"identity_tolerance": "0.5", "relative_tolerance": "0.001"},
                    "code_aliases": {"_OLD": "_NEW"},
                }
            )
        )

        config = load_engine_config(path)

        assert config.identity_tolerance == Decimal("0.5")
        assert config.relative_tolerance == Decimal("0.001")
        assert config.verification_debounce_ms == 300
        assert config.code_aliases == (("_OLD", "_NEW"),)
        assert config.payable_rules == ()

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_engine_config(path) == EngineConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_engine_config(tmp_path / "absent.yaml")


class TestEngineConfigValidation:
    def test_negative_tolerance(self):
        with pytest.raises(ValueError):
            EngineConfig(identity_tolerance=Decimal("-0.01"))

    @pytest.mark.parametrize("relative", [Decimal("-0.1"), Decimal("1")])
    def test_relative_tolerance_range(self, relative):
        with pytest.raises(ValueError):
            EngineConfig(relative_tolerance=relative)

    def test_negative_debounce(self):
        with pytest.raises(ValueError):
            EngineConfig(verification_debounce_ms=-1)

    def test_duplicate_alias(self):
        with pytest.raises(ValueError, match="duplicate"):
            EngineConfig(code_aliases=(("_A", "_B"), ("_A", "_C")))

    def test_with_defaults(self):
        assert EngineConfig.with_defaults() == EngineConfig()


class TestPayableRuleDef:
    def setup_method(self):
        self.rule = PayableRuleDef(
            subcategory="B-04",
            payable_patterns=("fuel",),
            name_contains=("fuel",),
            name_excludes=("refund",),
        )

    def test_matches(self):
        assert self.rule.matches("B-04", "Fuel for generator")

    def test_excluded_term(self):
        assert not self.rule.matches("B-04", "Fuel refund")

    def test_other_subcategory(self):
        assert not self.rule.matches("B-03", "Fuel")
