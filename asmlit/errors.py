"""asmlit error taxonomy.

Every failure the rewriter can surface derives from RewriteError, so callers
can abort a run with a single handler. ClassificationAmbiguous is the one
non-fatal kind: the classifier catches it and passes the line through.
"""
from __future__ import annotations


class RewriteError(Exception):
    """Base class for all rewriter failures."""
    pass


class ClassificationAmbiguous(RewriteError):
    """A line partially matches the literal grammar."""

    def __init__(self, line_number: int, text: str, reason: str = ""):
        msg = f"line {line_number}: ambiguous literal prefix"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)
        self.line_number = line_number
        self.text        = text


class EncoderUnavailable(RewriteError):
    """An oracle backend could not be started at all."""

    def __init__(self, backend: str, detail: str = ""):
        msg = f"{backend}: encoder not available"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)
        self.backend = backend


class EncodeError(RewriteError):
    """The oracle rejected an instruction (or never answered)."""

    def __init__(self, line_number: int, instruction: str, diagnostic: str):
        super().__init__(
            f"line {line_number}: cannot encode '{instruction}': {diagnostic}"
        )
        self.line_number = line_number
        self.instruction = instruction
        self.diagnostic  = diagnostic


class ListingCorrelationError(RewriteError):
    """Batched oracle output does not map 1:1 onto the submitted instructions."""

    def __init__(self, message: str, submitted: int | None = None,
                 returned: int | None = None):
        if submitted is not None and returned is not None:
            message = f"{message} (submitted {submitted}, got {returned})"
        super().__init__(message)
        self.submitted = submitted
        self.returned  = returned


class ResourceError(RewriteError):
    """Work directory could not be created or removed."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path
