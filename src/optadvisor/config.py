"""
Analysis configuration.

Every tunable constant of the five passes and of the aggregator lives here
rather than inline in the analyses. The bounded-lookahead and threshold
values trade precision for a single linear pass; changing them never makes
a positive claim unsound, it only changes how many claims are made.

Configurations can be loaded from an ``optadvisor.toml`` file::

    [optadvisor]
    stack_threshold = 2048
    dead_branch_lookahead = 32
    expect_allocation_free = false

or from the ``[tool.optadvisor]`` table of a ``pyproject.toml``.
"""

from __future__ import annotations

import dataclasses
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from optadvisor.utils.errors import ConfigError


# Escape analysis
DEFAULT_STACK_THRESHOLD = 4096  # bytes; below this a non-escaping allocation may live on the stack
DEFAULT_SCALAR_THRESHOLD = 256  # bytes; below this a non-escaping array may be scalarized

# Constant propagation
DEFAULT_DEAD_BRANCH_LOOKAHEAD = 20  # statements counted per dead arm

# Devirtualization
DEFAULT_SWITCH_MAX_TARGETS = 4

# Monomorphization
DEFAULT_MAX_SPECIALIZATION_FACTOR = 8
DEFAULT_MAX_ENUMERATED_VARIANTS = 64

# Scoring
DEFAULT_ESCAPE_PENALTY = 10.0
DEFAULT_ESCAPE_PENALTY_CAP = 50.0
DEFAULT_UNRESOLVED_CALL_PENALTY = 5.0
DEFAULT_UNRESOLVED_CALL_PENALTY_CAP = 30.0
DEFAULT_DEAD_STATEMENT_PENALTY = 1.0
DEFAULT_DEAD_STATEMENT_PENALTY_CAP = 30.0
DEFAULT_VARIANT_PENALTY = 2.0
DEFAULT_VARIANT_PENALTY_CAP = 40.0

# Aggregator
DEFAULT_MAX_WORKERS = 5


@dataclass(frozen=True, slots=True)
class AnalysisConfig:
    """
    Configuration shared by all analyses of one pipeline.

    Attributes:
        stack_threshold: Largest allocation (exclusive, bytes) that may be stack-promoted
        scalar_threshold: Largest array (exclusive, bytes) that may be scalar-replaced
        dead_branch_lookahead: Statements counted per dead branch arm
        switch_max_targets: Most candidate targets for switch-based devirtualization
        max_specialization_factor: Variant count above which a finding is raised
        max_enumerated_variants: Most monomorphized variants listed in a report
        escape_penalty: Performance points lost per escaping allocation
        escape_penalty_cap: Maximum total escape penalty
        unresolved_call_penalty: Performance points lost per unresolved virtual call
        unresolved_call_penalty_cap: Maximum total unresolved-call penalty
        dead_statement_penalty: Size points lost per dead statement
        dead_statement_penalty_cap: Maximum total dead-statement penalty
        variant_penalty: Size points lost per extra monomorphized variant
        variant_penalty_cap: Maximum total variant penalty
        expect_allocation_free: Escaping allocations are critical in this context
        parallel: Run the passes on a worker pool
        max_workers: Worker pool size (at most one task per pass)
        timeout: Seconds to wait for the passes; None waits indefinitely
    """

    stack_threshold: int = DEFAULT_STACK_THRESHOLD
    scalar_threshold: int = DEFAULT_SCALAR_THRESHOLD
    dead_branch_lookahead: int = DEFAULT_DEAD_BRANCH_LOOKAHEAD
    switch_max_targets: int = DEFAULT_SWITCH_MAX_TARGETS
    max_specialization_factor: int = DEFAULT_MAX_SPECIALIZATION_FACTOR
    max_enumerated_variants: int = DEFAULT_MAX_ENUMERATED_VARIANTS
    escape_penalty: float = DEFAULT_ESCAPE_PENALTY
    escape_penalty_cap: float = DEFAULT_ESCAPE_PENALTY_CAP
    unresolved_call_penalty: float = DEFAULT_UNRESOLVED_CALL_PENALTY
    unresolved_call_penalty_cap: float = DEFAULT_UNRESOLVED_CALL_PENALTY_CAP
    dead_statement_penalty: float = DEFAULT_DEAD_STATEMENT_PENALTY
    dead_statement_penalty_cap: float = DEFAULT_DEAD_STATEMENT_PENALTY_CAP
    variant_penalty: float = DEFAULT_VARIANT_PENALTY
    variant_penalty_cap: float = DEFAULT_VARIANT_PENALTY_CAP
    expect_allocation_free: bool = True
    parallel: bool = True
    max_workers: int = DEFAULT_MAX_WORKERS
    timeout: Optional[float] = None

    def __post_init__(self) -> None:
        for name in ("stack_threshold", "scalar_threshold", "switch_max_targets", "max_workers"):
            if getattr(self, name) < 1:
                raise ConfigError(f"'{name}' must be positive, got {getattr(self, name)}")
        for name in ("dead_branch_lookahead", "max_specialization_factor", "max_enumerated_variants"):
            if getattr(self, name) < 0:
                raise ConfigError(f"'{name}' must not be negative, got {getattr(self, name)}")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigError(f"'timeout' must be positive, got {self.timeout}")

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> AnalysisConfig:
        """
        Build a configuration from plain key/value pairs.

        Raises:
            ConfigError: On unknown keys or values of the wrong type
        """
        fields = {f.name: f for f in dataclasses.fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in values.items():
            if key not in fields:
                known = ", ".join(sorted(fields))
                raise ConfigError(f"Unknown configuration key '{key}' (known: {known})")
            kwargs[key] = _coerce(key, value, cls._field_kind(key))
        return cls(**kwargs)

    @classmethod
    def from_toml(cls, path: Path | str) -> AnalysisConfig:
        """
        Load the ``[optadvisor]`` (or ``[tool.optadvisor]``) table of a TOML file.

        A file without either table yields the default configuration.
        """
        path = Path(path)
        try:
            with path.open("rb") as fh:
                document = tomllib.load(fh)
        except FileNotFoundError as e:
            raise ConfigError(f"Configuration file not found: {path}") from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {path}: {e}") from e

        table = document.get("optadvisor")
        if table is None:
            tool = document.get("tool", {})
            if not isinstance(tool, dict):
                raise ConfigError(f"'tool' in {path} must be a table")
            table = tool.get("optadvisor", {})
        if not isinstance(table, dict):
            raise ConfigError(f"'optadvisor' in {path} must be a table")
        return cls.from_mapping(table)

    def with_overrides(self, **overrides: Any) -> AnalysisConfig:
        """Return a copy with some values replaced."""
        merged = {f.name: getattr(self, f.name) for f in dataclasses.fields(self)}
        merged.update(overrides)
        return type(self).from_mapping(merged)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in dataclasses.fields(self)}

    @staticmethod
    def _field_kind(name: str) -> type:
        defaults = AnalysisConfig()
        value = getattr(defaults, name)
        if name == "timeout":
            return float
        return type(value)


def _coerce(key: str, value: Any, kind: type) -> Any:
    if key == "timeout" and value is None:
        return None
    if kind is bool:
        if not isinstance(value, bool):
            raise ConfigError(f"'{key}' must be a boolean, got {value!r}")
        return value
    if kind is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"'{key}' must be an integer, got {value!r}")
        return value
    if kind is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"'{key}' must be a number, got {value!r}")
        return float(value)
    return value


DEFAULT_CONFIG = AnalysisConfig()
