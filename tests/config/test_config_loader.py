"""
Tests for payroll_config.loader.

Covers:
- Bundled tax-year and policy YAML files parse into schema objects
- Decimal parsing never passes through binary floats
- base_tax is filled in cumulatively when omitted
- Missing settings are a configuration fault
- Checksums are deterministic
"""

from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from payroll_config.loader import (
    compute_checksum,
    load_payroll_policy,
    load_tax_config,
    load_yaml_file,
    parse_brackets,
    parse_decimal,
    parse_tax_config,
)
from payroll_config.schema import EmployerContributionBasis
from payroll_config.store import DEFAULT_CONFIG_DIR
from payroll_kernel.domain.values import ResidencyClass, Subsidiary
from payroll_kernel.exceptions import MalformedSettingsError


class TestParseDecimal:
    @pytest.mark.parametrize("raw, expected", [
        (150000, Decimal("150000")),
        ("0.05", Decimal("0.05")),
        (0.075, Decimal("0.075")),
        (Decimal("1.5"), Decimal("1.5")),
    ])
    def test_parses(self, raw, expected):
        assert parse_decimal(raw) == expected

    def test_float_keeps_short_form(self):
        """0.1 parses as exactly 0.1, not its binary expansion."""
        assert parse_decimal(0.1) == Decimal("0.1")

    @pytest.mark.parametrize("raw", [True, "abc"])
    def test_rejects(self, raw):
        with pytest.raises(ValueError, match="Cannot parse decimal"):
            parse_decimal(raw)


class TestBundledFiles:
    def test_tax_2025(self):
        config = load_tax_config(DEFAULT_CONFIG_DIR / "tax_2025.yaml")

        assert config.tax_year == 2025
        assert len(config.brackets) == 8
        assert config.brackets[0].lower_bound == Decimal("0")
        assert config.top_bracket.upper_bound is None
        assert config.top_bracket.rate == Decimal("0.35")
        assert config.settings.employment_deduction_cap == Decimal("100000")
        assert config.settings.personal_allowance == Decimal("60000")
        assert config.settings.ssf_monthly_cap == Decimal("750")

    def test_payroll_policy(self):
        policy = load_payroll_policy(DEFAULT_CONFIG_DIR / "payroll_policy.yaml")

        assert policy.health_welfare_floor == Decimal("60")
        assert policy.hub_grant_for(Subsidiary.BHF) == "S22001"
        assert policy.hub_grant_for(Subsidiary.SMRU) == "S0031"
        assert policy.employer_basis_for(
            Subsidiary.SMRU, ResidencyClass.EXPAT,
        ) is EmployerContributionBasis.EMPLOYEE_TIER
        assert policy.employer_basis_for(
            Subsidiary.SMRU, ResidencyClass.LOCAL_ID,
        ) is EmployerContributionBasis.NONE

    def test_load_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_yaml_file(tmp_path / "absent.yaml")

    def test_load_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "broken.yaml"
        path.write_text("brackets: [unclosed\n")

        with pytest.raises(yaml.YAMLError):
            load_yaml_file(path)


class TestParseBrackets:
    def test_base_tax_filled_cumulatively(self):
        """Omitted base_tax values accumulate the full-width tax below."""
        brackets = parse_brackets([
            {"order": 2, "lower_bound": 100, "upper_bound": 200, "rate": "0.10"},
            {"order": 1, "lower_bound": 0, "upper_bound": 100, "rate": "0"},
            {"order": 3, "lower_bound": 200, "upper_bound": None, "rate": "0.20"},
        ])

        assert [b.order for b in brackets] == [1, 2, 3]
        assert [b.base_tax for b in brackets] == [Decimal("0"), Decimal("0"), Decimal("10.00")]

    def test_provided_base_tax_kept(self):
        brackets = parse_brackets([
            {"order": 1, "lower_bound": 0, "upper_bound": 100, "rate": "0", "base_tax": 0},
            {"order": 2, "lower_bound": 100, "upper_bound": None, "rate": "0.1", "base_tax": 999},
        ])

        assert brackets[1].base_tax == Decimal("999")


class TestParseTaxConfig:
    def _document(self) -> dict:
        return load_yaml_file(DEFAULT_CONFIG_DIR / "tax_2025.yaml")

    def test_missing_setting_is_config_fault(self):
        document = self._document()
        del document["settings"]["ssf_rate"]

        with pytest.raises(MalformedSettingsError, match="missing setting 'ssf_rate'"):
            parse_tax_config(document)

    def test_parent_allowance_optional(self):
        document = self._document()
        del document["settings"]["parent_allowance"]

        assert parse_tax_config(document).settings.parent_allowance == Decimal("0")

    def test_checksum_tracks_content(self):
        first = parse_tax_config(self._document())
        second = parse_tax_config(self._document())
        changed = self._document()
        changed["settings"]["personal_allowance"] = 70000

        assert first.checksum == second.checksum
        assert parse_tax_config(changed).checksum != first.checksum


class TestChecksum:
    def test_key_order_irrelevant(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})
