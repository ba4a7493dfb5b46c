"""Exception types shared across the scanner and the query layer."""
from typing import Dict, List, Optional


class ScanOptionsError(ValueError):
    """Raised when scan options fail validation.

    ``errors`` holds one ``{"field": ..., "message": ...}`` entry per problem so
    callers can report every bad field at once.
    """
    def __init__(self, errors: List[Dict[str, str]]):
        self.errors = errors
        summary = "; ".join(f"{e['field']}: {e['message']}" for e in errors)
        super().__init__(f"Invalid scan options: {summary}")


class GitCommandError(RuntimeError):
    """A git invocation exited non-zero or ran past its timeout."""
    def __init__(self, args: List[str], message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.args_list = args
        self.returncode = returncode
