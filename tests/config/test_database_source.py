"""
Tests for DatabaseTaxConfigSource.

Administrators maintain brackets and settings in the database; the
ConfigStore must serve exactly what the tables hold, with switched-off
settings contributing zero.
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from payroll_config.sources import DatabaseTaxConfigSource
from payroll_config.store import ConfigStore
from payroll_engines.tax import TaxCalculator
from payroll_kernel.domain.values import FilerProfile
from payroll_kernel.models.tax_config import TaxBracketModel, TaxSettingModel

from conftest import TEST_ACTOR_ID


@pytest.fixture
def db_source(session_factory, deterministic_clock):
    return DatabaseTaxConfigSource(session_factory, clock=deterministic_clock, actor_id=TEST_ACTOR_ID)


@pytest.fixture
def db_store(db_source, config_store, tax_config_2025):
    db_source.save_tax_config(tax_config_2025)
    return ConfigStore(source=db_source, policy=config_store.policy)


class TestDatabaseSource:
    def test_absent_year(self, db_source):
        assert db_source.load_tax_config(2025) is None

    def test_save_then_load(self, db_source, tax_config_2025):
        db_source.save_tax_config(tax_config_2025)

        loaded = db_source.load_tax_config(2025)

        assert [b.order for b in loaded.brackets] == [b.order for b in tax_config_2025.brackets]
        assert [b.lower_bound for b in loaded.brackets] == [b.lower_bound for b in tax_config_2025.brackets]
        assert loaded.top_bracket.upper_bound is None
        assert loaded.settings.personal_allowance == Decimal("60000")
        assert loaded.settings.ssf_rate == Decimal("0.05")

    def test_save_replaces_rows(self, db_source, session_factory, tax_config_2025):
        db_source.save_tax_config(tax_config_2025)
        db_source.save_tax_config(tax_config_2025)

        with session_factory() as session:
            brackets = session.scalar(select(func.count()).select_from(TaxBracketModel))
            settings = session.scalar(select(func.count()).select_from(TaxSettingModel))

        assert brackets == len(tax_config_2025.brackets)
        assert settings == len(tax_config_2025.settings.field_names())

    def test_setting_keys_stored_upper_case(self, db_source, session_factory, tax_config_2025):
        db_source.save_tax_config(tax_config_2025)

        with session_factory() as session:
            keys = set(session.scalars(select(TaxSettingModel.setting_key)))

        assert "PERSONAL_ALLOWANCE" in keys
        assert "SSF_MONTHLY_CAP" in keys


class TestDatabaseBackedStore:
    def test_store_validates_database_rows(self, db_store):
        config = db_store.get_tax_config(2025)

        assert config.version == 1
        assert len(config.brackets) == 8

    def test_deselected_setting_contributes_zero(self, db_store):
        """Switching off the spouse allowance removes it from the tax."""
        married = FilerProfile(has_spouse=True)
        calculator = TaxCalculator()
        before = calculator.compute_annual_tax(
            annual_income=Decimal("600000"),
            filer_profile=married,
            tax_config=db_store.get_tax_config(2025),
        )

        db_store.set_setting_selected(2025, "spouse_allowance", False)
        after = calculator.compute_annual_tax(
            annual_income=Decimal("600000"),
            filer_profile=married,
            tax_config=db_store.get_tax_config(2025),
        )

        assert db_store.get_tax_config(2025).settings.spouse_allowance == Decimal("0")
        assert before.allowances.spouse == Decimal("60000")
        assert after.allowances.spouse == Decimal("0")
        assert after.annual_tax > before.annual_tax

    def test_toggle_invalidates_cached_year(self, db_store):
        first = db_store.get_tax_config(2025)

        db_store.set_setting_selected(2025, "SPOUSE_ALLOWANCE", False)

        assert not db_store.is_cached(2025)
        assert db_store.get_tax_config(2025).version == first.version + 1

    def test_reselecting_restores_value(self, db_store):
        db_store.set_setting_selected(2025, "spouse_allowance", False)
        db_store.set_setting_selected(2025, "spouse_allowance", True)

        assert db_store.get_tax_config(2025).settings.spouse_allowance == Decimal("60000")
