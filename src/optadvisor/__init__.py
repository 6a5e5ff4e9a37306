"""
optadvisor - static optimization advisories for typed SSA functions.

optadvisor inspects a function's typed IR and reports which allocations can
live on the stack, which branches are dead, which dynamic calls can be
devirtualized, which abstract parameters can be specialized, and where
manually-managed memory can be released automatically. Every positive claim
it makes is sound; anything it cannot prove is reported conservatively.
"""

import logging

from optadvisor.analysis import (
    AnalysisPipeline,
    AnalysisReport,
    AnalysisResult,
    Finding,
    Priority,
    Section,
    SectionStatus,
    analyze,
    analyze_or_raise,
)
from optadvisor.config import AnalysisConfig
from optadvisor.ir import Function, MethodSignature, MethodTable, make_function
from optadvisor.utils.errors import AdvisorError, AnalysisError, ConfigError, MalformedIRError

logging.getLogger("optadvisor").addHandler(logging.NullHandler())

__version__ = "0.1.0"
__all__ = [
    "analyze",
    "analyze_or_raise",
    "AnalysisPipeline",
    "AnalysisConfig",
    "AnalysisReport",
    "AnalysisResult",
    "Finding",
    "Priority",
    "Section",
    "SectionStatus",
    "Function",
    "MethodSignature",
    "MethodTable",
    "make_function",
    "AdvisorError",
    "AnalysisError",
    "ConfigError",
    "MalformedIRError",
]
