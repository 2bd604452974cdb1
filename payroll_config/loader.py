"""
Configuration Loader (``payroll_config.loader``).

Responsibility
--------------
Loads YAML configuration files and parses them into the frozen dataclasses
of ``payroll_config.schema``.  Runtime code never calls this directly; it
goes through ``ConfigStore``, whose sources use the loader.

Invariants enforced
-------------------
* Numbers are parsed into ``Decimal`` from their textual form; YAML floats
  never reach arithmetic as binary floats.
* Missing required keys raise ``KeyError`` with the key name; no silent
  defaults for statutory parameters.
* ``compute_checksum`` is deterministic for identical content.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing settings key -> ``MalformedSettingsError`` (config-level fault).
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from payroll_config.schema import (
    EmployerContributionBasis,
    EmployerHealthWelfareRule,
    HealthWelfareTier,
    PayrollPolicy,
    TaxBracket,
    TaxConfig,
    TaxSettings,
)
from payroll_kernel.domain.values import ResidencyClass, Subsidiary
from payroll_kernel.exceptions import MalformedSettingsError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any) -> Decimal:
    """Parse a YAML scalar into Decimal via its text form."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Cannot parse decimal from {value!r}")
    try:
        # repr() of a YAML float is the shortest round-tripping text
        return Decimal(repr(value) if isinstance(value, float) else str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Cannot parse decimal from {value!r}") from exc


def compute_checksum(data: Any) -> str:
    """Deterministic SHA-256 of a JSON-serializable structure."""
    canonical = json.dumps(data, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_brackets(rows: list[dict[str, Any]]) -> tuple[TaxBracket, ...]:
    """
    Parse bracket rows, filling ``base_tax`` where absent.

    ``base_tax`` of each bracket is the previous bracket's base plus the tax
    on its full width.  Rows are sorted by ``order`` first.  Provided base
    values are kept as given so the validator can detect inconsistencies.
    """
    ordered = sorted(rows, key=lambda r: int(r["order"]))
    brackets: list[TaxBracket] = []
    running_base = Decimal("0")
    for row in ordered:
        lower = parse_decimal(row["lower_bound"])
        upper_raw = row.get("upper_bound")
        upper = parse_decimal(upper_raw) if upper_raw is not None else None
        rate = parse_decimal(row["rate"])
        base_raw = row.get("base_tax")
        base = parse_decimal(base_raw) if base_raw is not None else running_base
        brackets.append(
            TaxBracket(
                order=int(row["order"]),
                lower_bound=lower,
                upper_bound=upper,
                rate=rate,
                base_tax=base,
            )
        )
        if upper is not None:
            running_base = base + (upper - lower) * rate
    return tuple(brackets)


def parse_settings(tax_year: int, data: dict[str, Any]) -> TaxSettings:
    missing = [k for k in TaxSettings.required_field_names() if k not in data]
    if missing:
        raise MalformedSettingsError(tax_year, [f"missing setting '{k}'" for k in missing])
    values: dict[str, Decimal] = {}
    problems: list[str] = []
    for name in TaxSettings.field_names():
        if name not in data:
            continue
        try:
            values[name] = parse_decimal(data[name])
        except ValueError as exc:
            problems.append(f"{name}: {exc}")
    if problems:
        raise MalformedSettingsError(tax_year, problems)
    return TaxSettings(**values)


def parse_tax_config(data: dict[str, Any]) -> TaxConfig:
    """Parse a ``tax_<year>.yaml`` document (not yet validated)."""
    tax_year = int(data["tax_year"])
    return TaxConfig(
        tax_year=tax_year,
        brackets=parse_brackets(data["brackets"]),
        settings=parse_settings(tax_year, data.get("settings") or {}),
        version=int(data.get("version", 1)),
        checksum=compute_checksum(data),
    )


def parse_payroll_policy(data: dict[str, Any]) -> PayrollPolicy:
    """Parse ``payroll_policy.yaml``."""
    hw = data["health_welfare"]
    tiers = tuple(
        HealthWelfareTier(above=parse_decimal(t["above"]), amount=parse_decimal(t["amount"]))
        for t in hw.get("tiers", [])
    )
    rules = tuple(
        EmployerHealthWelfareRule(
            subsidiary=Subsidiary(r["subsidiary"]),
            residency_classes=frozenset(ResidencyClass(c) for c in r.get("residency_classes", [])),
            basis=EmployerContributionBasis(r.get("basis", "none")),
        )
        for r in data.get("employer_health_welfare", [])
    )
    hub_grants = {
        Subsidiary(sub): str(grant) for sub, grant in (data.get("hub_grants") or {}).items()
    }
    return PayrollPolicy(
        health_welfare_tiers=tiers,
        health_welfare_floor=parse_decimal(hw["floor"]),
        employer_health_welfare_rules=rules,
        hub_grants=hub_grants,
        checksum=compute_checksum(data),
    )


def load_tax_config(path: Path) -> TaxConfig:
    return parse_tax_config(load_yaml_file(path))


def load_payroll_policy(path: Path) -> PayrollPolicy:
    return parse_payroll_policy(load_yaml_file(path))
