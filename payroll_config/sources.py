"""
Tax configuration sources consumed by ``ConfigStore``.

A source knows where a tax year's brackets and settings live; it does no
caching and no validation (``ConfigStore`` does both).  Two sources ship:

* ``YamlTaxConfigSource`` -- ``tax_<year>.yaml`` files in a directory.
* ``DatabaseTaxConfigSource`` -- the ``payroll_tax_brackets`` and
  ``payroll_tax_settings`` tables.  Settings switched off
  (``is_selected`` False) contribute zero.
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from payroll_config.loader import compute_checksum, load_tax_config, parse_brackets, parse_settings
from payroll_config.schema import TaxConfig
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.values import SYSTEM_ACTOR_ID
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.tax_config import TaxBracketModel, TaxSettingModel

logger = get_logger("config.sources")


@runtime_checkable
class TaxConfigSource(Protocol):
    """Where tax configurations come from."""

    def load_tax_config(self, tax_year: int) -> TaxConfig | None:
        """Return the raw config for ``tax_year``, or None if absent."""
        ...


class YamlTaxConfigSource:
    """Reads ``tax_<year>.yaml`` from a directory."""

    def __init__(self, directory: Path):
        self._directory = Path(directory)

    def path_for(self, tax_year: int) -> Path:
        return self._directory / f"tax_{tax_year}.yaml"

    def load_tax_config(self, tax_year: int) -> TaxConfig | None:
        path = self.path_for(tax_year)
        if not path.exists():
            return None
        config = load_tax_config(path)
        if config.tax_year != tax_year:
            raise ValueError(f"{path.name} declares tax_year {config.tax_year}")
        return config


class DatabaseTaxConfigSource:
    """Reads and writes tax configuration rows through SQLAlchemy."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._actor_id = actor_id

    def load_tax_config(self, tax_year: int) -> TaxConfig | None:
        with self._session_factory() as session:
            brackets = session.execute(
                select(TaxBracketModel)
                .where(TaxBracketModel.tax_year == tax_year)
                .order_by(TaxBracketModel.bracket_order)
            ).scalars().all()
            if not brackets:
                return None
            settings = session.execute(
                select(TaxSettingModel).where(TaxSettingModel.tax_year == tax_year)
            ).scalars().all()

            bracket_rows = [
                {
                    "order": b.bracket_order,
                    "lower_bound": Decimal(b.lower_bound),
                    "upper_bound": Decimal(b.upper_bound) if b.upper_bound is not None else None,
                    "rate": Decimal(b.rate),
                    "base_tax": Decimal(b.base_tax) if b.base_tax is not None else None,
                }
                for b in brackets
            ]
            setting_values = {
                s.setting_key.lower(): (Decimal(s.setting_value) if s.is_selected else Decimal("0"))
                for s in settings
            }

        raw = {"tax_year": tax_year, "brackets": bracket_rows, "settings": setting_values}
        return TaxConfig(
            tax_year=tax_year,
            brackets=parse_brackets(bracket_rows),
            settings=parse_settings(tax_year, setting_values),
            checksum=compute_checksum(raw),
        )

    def save_tax_config(self, config: TaxConfig) -> None:
        """Replace every bracket and setting row of ``config.tax_year``."""
        now = self._clock.now()
        with self._session_factory() as session, session.begin():
            session.execute(delete(TaxBracketModel).where(TaxBracketModel.tax_year == config.tax_year))
            session.execute(delete(TaxSettingModel).where(TaxSettingModel.tax_year == config.tax_year))
            for bracket in config.brackets:
                session.add(
                    TaxBracketModel(
                        tax_year=config.tax_year,
                        bracket_order=bracket.order,
                        lower_bound=bracket.lower_bound,
                        upper_bound=bracket.upper_bound,
                        rate=bracket.rate,
                        base_tax=bracket.base_tax,
                        created_by_id=self._actor_id,
                        created_at=now,
                        updated_at=now,
                    )
                )
            for key, value in config.settings.as_dict().items():
                session.add(
                    TaxSettingModel(
                        tax_year=config.tax_year,
                        setting_key=key.upper(),
                        setting_value=value,
                        is_selected=True,
                        created_by_id=self._actor_id,
                        created_at=now,
                        updated_at=now,
                    )
                )
        logger.info(
            "tax_config_saved",
            extra={"tax_year": config.tax_year, "brackets": len(config.brackets)},
        )

    def set_setting_selected(self, tax_year: int, setting_key: str, selected: bool) -> None:
        """Switch one setting on or off for a year."""
        with self._session_factory() as session, session.begin():
            row = session.execute(
                select(TaxSettingModel).where(
                    TaxSettingModel.tax_year == tax_year,
                    TaxSettingModel.setting_key == setting_key.upper(),
                )
            ).scalar_one()
            row.is_selected = selected
            row.updated_at = self._clock.now()
            row.updated_by_id = self._actor_id
        logger.info(
            "tax_setting_toggled",
            extra={"tax_year": tax_year, "setting_key": setting_key.upper(), "selected": selected},
        )
