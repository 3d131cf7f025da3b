"""Exception types raised by the query serializer, transport and loaders."""

from typing import Any


class KendoGridError(Exception):
    """Base class for all errors raised by reflex-kendo-grid."""


class UnsupportedOperatorError(KendoGridError):
    """A filter operator has no token in the remote query grammar.

    Raised instead of dropping the clause, so a filter the user sees in
    the grid is never silently missing from the issued query.
    """

    def __init__(self, operator: Any) -> None:
        self.operator = operator
        super().__init__(f"Filter operator {operator!r} has no protocol token")


class TransportFailure(KendoGridError):
    """The HTTP request failed or its body could not be decoded."""

    def __init__(self, url: str, message: str) -> None:
        self.url = url
        super().__init__(f"Request to {url} failed: {message}")
