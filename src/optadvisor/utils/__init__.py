"""
Utility modules for optadvisor.
"""

from optadvisor.utils.errors import (
    AdvisorError,
    AnalysisError,
    ConfigError,
    IRLocation,
    MalformedIRError,
)

__all__ = [
    "AdvisorError",
    "AnalysisError",
    "ConfigError",
    "IRLocation",
    "MalformedIRError",
]
