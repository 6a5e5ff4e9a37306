"""
Pytest configuration and shared fixtures for optadvisor tests.
"""

import pytest

from optadvisor.analysis.pipeline import AnalysisPipeline
from optadvisor.config import AnalysisConfig
from optadvisor.ir.method_table import MethodSignature, MethodTable
from optadvisor.ir.nodes import Function, Statement, make_function
from optadvisor.ir.types import ANY_TYPE, AbstractType, ConcreteType, Type


# =============================================================================
# IR Fixtures
# =============================================================================


@pytest.fixture
def function_factory():
    """Factory fixture for building functions from statements."""

    def _create_function(
        *statements: Statement,
        params: tuple[Type, ...] = (),
        name: str = "f",
    ) -> Function:
        return make_function(name, statements, params)

    return _create_function


@pytest.fixture
def animal_types():
    """A small abstract hierarchy: Animal > {Dog, Cat, Cow, Fox, Owl}."""
    animal = AbstractType("Animal")
    kinds = {name: ConcreteType.derived(name, animal) for name in ("Dog", "Cat", "Cow", "Fox", "Owl")}
    return animal, kinds


@pytest.fixture
def method_table_factory():
    """Factory fixture for building method tables from (name, param types) pairs."""

    def _create_table(*entries: tuple[str, tuple[Type, ...]]) -> MethodTable:
        return MethodTable.from_signatures(
            MethodSignature(name, tuple(params), ANY_TYPE) for name, params in entries
        )

    return _create_table


# =============================================================================
# Pipeline Fixtures
# =============================================================================


@pytest.fixture
def config_factory():
    """Factory fixture for configurations with overrides."""

    def _create_config(**overrides) -> AnalysisConfig:
        return AnalysisConfig(**overrides)

    return _create_config


@pytest.fixture
def pipeline_factory():
    """Factory fixture for analysis pipelines."""

    def _create_pipeline(method_table: MethodTable | None = None, **config) -> AnalysisPipeline:
        return AnalysisPipeline(method_table or MethodTable(), AnalysisConfig(**config))

    return _create_pipeline
