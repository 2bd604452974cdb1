"""
ConfigStore -- versioned, explicitly invalidated tax configuration cache.

Responsibility:
    Hands TaxCalculator and PayrollEngine a validated ``TaxConfig`` per
    tax year, plus the year-independent ``PayrollPolicy``.  Loaded configs
    are cached in memory for the life of the store (typically a bulk run,
    or the process).

Invariants enforced:
    - Nothing is served unvalidated: every load passes
      ``validate_tax_config`` before it enters the cache.
    - No TTL.  A cached year is dropped only by ``invalidate(tax_year)`` /
      ``invalidate_all()``, which take effect synchronously: the next
      ``get_tax_config`` after the call returns reloads from the source.
    - Writes through ``replace_tax_config`` / ``set_setting_selected``
      invalidate the affected year before returning.
    - Every (re)load increments the year's ``version``.

Failure modes:
    - TaxConfigNotFoundError when the source has no config for the year.
    - MalformedBracketConfigError / MalformedSettingsError (ComputationError)
      for structurally unsound configs; these are never cached.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from pathlib import Path

from payroll_config.loader import load_payroll_policy
from payroll_config.schema import PayrollPolicy, TaxConfig
from payroll_config.sources import TaxConfigSource, YamlTaxConfigSource
from payroll_config.validator import validate_tax_config
from payroll_kernel.exceptions import TaxConfigNotFoundError
from payroll_kernel.logging_config import get_logger

logger = get_logger("config.store")

DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


class ConfigStore:
    """
    Thread-safe cache of validated tax configurations.

    Contract:
        Passed by dependency injection into PayrollEngine (and from there
        into TaxCalculator calls).  Safe to share across bulk-run workers.

    Non-goals:
        - Does NOT watch the source for changes; whoever mutates config
          calls ``invalidate``.
    """

    def __init__(self, source: TaxConfigSource, policy: PayrollPolicy):
        self._source = source
        self._policy = policy
        self._cache: dict[int, TaxConfig] = {}
        self._versions: dict[int, int] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_directory(cls, directory: Path | None = None) -> ConfigStore:
        """Store backed by ``tax_<year>.yaml`` files and ``payroll_policy.yaml``."""
        directory = Path(directory) if directory is not None else DEFAULT_CONFIG_DIR
        return cls(
            source=YamlTaxConfigSource(directory),
            policy=load_payroll_policy(directory / "payroll_policy.yaml"),
        )

    @property
    def policy(self) -> PayrollPolicy:
        return self._policy

    @property
    def source(self) -> TaxConfigSource:
        return self._source

    def get_tax_config(self, tax_year: int) -> TaxConfig:
        """
        Return the validated config for ``tax_year``.

        Raises:
            TaxConfigNotFoundError: no config for the year.
            ComputationError: the config is malformed.
        """
        with self._lock:
            cached = self._cache.get(tax_year)
            if cached is not None:
                return cached

            raw = self._source.load_tax_config(tax_year)
            if raw is None:
                logger.warning("tax_config_not_found", extra={"tax_year": tax_year})
                raise TaxConfigNotFoundError(tax_year)

            validate_tax_config(raw)
            version = self._versions.get(tax_year, 0) + 1
            self._versions[tax_year] = version
            config = replace(raw, version=version)
            self._cache[tax_year] = config

            logger.info(
                "tax_config_loaded",
                extra={
                    "tax_year": tax_year,
                    "version": version,
                    "checksum": config.checksum,
                    "brackets": len(config.brackets),
                },
            )
            return config

    def is_cached(self, tax_year: int) -> bool:
        with self._lock:
            return tax_year in self._cache

    def invalidate(self, tax_year: int) -> None:
        """Drop ``tax_year`` from the cache; the next read reloads it."""
        with self._lock:
            dropped = self._cache.pop(tax_year, None) is not None
        logger.info("tax_config_invalidated", extra={"tax_year": tax_year, "was_cached": dropped})

    def invalidate_all(self) -> None:
        with self._lock:
            years = sorted(self._cache)
            self._cache.clear()
        logger.info("tax_config_invalidated_all", extra={"tax_years": years})

    def replace_tax_config(self, config: TaxConfig) -> None:
        """
        Validate and write ``config`` through the source, then invalidate.

        Raises:
            ComputationError: ``config`` is malformed (nothing is written).
            TypeError: the source is read-only.
        """
        validate_tax_config(config)
        save = getattr(self._source, "save_tax_config", None)
        if save is None:
            raise TypeError(f"{type(self._source).__name__} is read-only")
        with self._lock:
            save(config)
            self.invalidate(config.tax_year)

    def set_setting_selected(self, tax_year: int, setting_key: str, selected: bool) -> None:
        """Toggle one setting through the source, then invalidate the year."""
        toggle = getattr(self._source, "set_setting_selected", None)
        if toggle is None:
            raise TypeError(f"{type(self._source).__name__} is read-only")
        with self._lock:
            toggle(tax_year, setting_key, selected)
            self.invalidate(tax_year)

    def replace_policy(self, policy: PayrollPolicy) -> None:
        with self._lock:
            self._policy = policy
        logger.info("payroll_policy_replaced", extra={"checksum": policy.checksum})
