"""PineScript static-analysis and transformation engine."""

from ._version import __version__
from .engine import PineScriptEngine

__all__ = [
    "__version__",
    "PineScriptEngine",
]
