"""Exception types raised by the simplification engine."""

from typing import Optional

from simplifier.models import Span


class SimplifyError(Exception):
    """Base class for engine errors."""


class ParseError(SimplifyError):
    """Source text the adapter cannot represent (tree-sitter ERROR/MISSING nodes)."""

    def __init__(self, message: str, span: Optional[Span] = None):
        super().__init__(message)
        self.message = message
        self.span = span

    def __str__(self):
        if self.span is None:
            return self.message
        return f"{self.span.start_line}:{self.span.start_column}: {self.message}"


class ConfigError(SimplifyError):
    """The run-wide configuration cannot be constructed.  Always fatal."""


class RewriteConflict(SimplifyError):
    """Two accepted rewrites touch overlapping spans."""


class UnsupportedConstruct(SimplifyError):
    """A shape the rewrite synthesizer declines to transform.  The finding
    stays informational with this message as its unavailable reason."""


class AnalysisCancelled(SimplifyError):
    """A file task observed its stop event (run cancelled or timed out)."""
