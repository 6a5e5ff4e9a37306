"""
Analysis passes and the pipeline that combines them.

Passes:
- escape: heap allocations that can be stack-promoted or scalar-replaced
- const_prop: constant SSA values and dead branches
- devirtualization: dynamic calls with a bounded target set
- monomorphization: abstract parameters and their concrete variants
- lifetime: safe automatic release points for manual allocations
"""

from optadvisor.analysis.allocations import (
    AllocationClassifier,
    AllocationKind,
    AllocationSite,
    AllocatorSpec,
    UseKind,
    ValueUse,
)
from optadvisor.analysis.const_evaluator import ConstEvalError, ConstEvaluator, evaluate_const
from optadvisor.analysis.const_prop import (
    ConstantPropagator,
    ConstantRecord,
    ConstantReport,
    DeadBranchRecord,
    analyze_constants,
)
from optadvisor.analysis.devirtualization import (
    DevirtStrategy,
    DevirtualizationReport,
    Devirtualizer,
    VirtualCallSite,
    analyze_devirtualization,
)
from optadvisor.analysis.escape import EscapeAnalyzer, EscapeRecord, EscapeReport, analyze_escapes
from optadvisor.analysis.lifetime import (
    AllocationLifetime,
    LifetimeAnalyzer,
    LifetimeReport,
    analyze_lifetimes,
)
from optadvisor.analysis.monomorphization import (
    AbstractParameter,
    MonomorphizationAnalyzer,
    MonomorphizationReport,
    MonomorphizedVariant,
    analyze_monomorphization,
)
from optadvisor.analysis.pipeline import AnalysisPipeline, analyze, analyze_or_raise
from optadvisor.analysis.report import (
    AnalysisReport,
    AnalysisResult,
    Category,
    Finding,
    Priority,
    Section,
    SectionStatus,
)

__all__ = [
    # Allocations
    "AllocationClassifier",
    "AllocationKind",
    "AllocationSite",
    "AllocatorSpec",
    "UseKind",
    "ValueUse",
    # Escape
    "EscapeAnalyzer",
    "EscapeRecord",
    "EscapeReport",
    "analyze_escapes",
    # Constants
    "ConstEvalError",
    "ConstEvaluator",
    "evaluate_const",
    "ConstantPropagator",
    "ConstantRecord",
    "ConstantReport",
    "DeadBranchRecord",
    "analyze_constants",
    # Devirtualization
    "DevirtStrategy",
    "DevirtualizationReport",
    "Devirtualizer",
    "VirtualCallSite",
    "analyze_devirtualization",
    # Monomorphization
    "AbstractParameter",
    "MonomorphizationAnalyzer",
    "MonomorphizationReport",
    "MonomorphizedVariant",
    "analyze_monomorphization",
    # Lifetime
    "AllocationLifetime",
    "LifetimeAnalyzer",
    "LifetimeReport",
    "analyze_lifetimes",
    # Report
    "AnalysisReport",
    "AnalysisResult",
    "Category",
    "Finding",
    "Priority",
    "Section",
    "SectionStatus",
    # Pipeline
    "AnalysisPipeline",
    "analyze",
    "analyze_or_raise",
]
