"""
Engine exceptions.

Only validation can fail fatally (time budget). The autofix engine never
raises; the formatter, converter and history store only raise ValueError
for invalid arguments.
"""

from __future__ import annotations

from .models.diagnostics import Diagnostic, DiagnosticCategory, DiagnosticSeverity


class ValidationTimeoutError(Exception):
    """Raised when validation exceeds its wall-clock budget. No partial result is returned."""

    def __init__(self, elapsed: float, limit: float, steps_done: int = 0, total_steps: int = 0):
        self.elapsed = elapsed
        self.limit = limit
        self.steps_done = steps_done
        self.total_steps = total_steps
        self.diagnostic = Diagnostic(
            severity=DiagnosticSeverity.ERROR,
            category=DiagnosticCategory.TIMEOUT,
            rule_id="PS9001",
            message=(
                f"Timeout: validation exceeded {limit:.1f}s "
                f"(elapsed {elapsed:.1f}s, {steps_done}/{total_steps} checks done)"
            ),
        )
        super().__init__(self.diagnostic.message)
