"""
Error taxonomy for repline.

Only ``FatalInterpreterFault`` is allowed to escape an interactive session;
everything else is reported at the boundary of the operation that caused it
(prompt return, import/export job completion).
"""

from typing import Optional


class ReplineError(Exception):
    """Base class for all repline errors."""


class EvaluationError(ReplineError):
    """
    A failure detected while evaluating user input.

    Never raised through the session: it is attached to the evaluation
    result, recorded on the Command Record and drives the prompt status.

    Attributes:
        via_hook: The interpreter's error hook fired.
        via_output: Printed output looked like an error report.
    """

    def __init__(self, via_hook: bool = False, via_output: bool = False,
                 exc_type: Optional[str] = None):
        self.via_hook = via_hook
        self.via_output = via_output
        self.exc_type = exc_type
        sources = [name for name, hit in (("hook", via_hook), ("output", via_output)) if hit]
        detail = f" ({exc_type})" if exc_type else ""
        super().__init__(f"evaluation failed via {'+'.join(sources) or 'unknown'}{detail}")


class PersistenceError(ReplineError):
    """History store I/O failed."""


class HistoryJobError(ReplineError):
    """An import or export job failed as a whole."""


class ImportConflictError(HistoryJobError):
    """The import source is the same physical file as a destination container."""


class ImportParseError(ReplineError):
    """
    One source record could not be parsed. Non-fatal; collected per job.

    Attributes:
        location: Human-readable source position (``line 12``, ``r#4``).
    """

    def __init__(self, location: str, reason: str):
        self.location = location
        self.reason = reason
        super().__init__(f"{location}: {reason}")


class FatalInterpreterFault(ReplineError):
    """The embedded interpreter failed outside of user code. Ends the process."""
