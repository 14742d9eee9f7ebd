"""
Error types shared by the data access layer, the report builders and the
route handlers.

Reads never raise: a failed fetch degrades to an empty ``QueryResult`` (or
``None`` for single documents) so dashboards still render, but the result
carries a ``FetchFailed`` record so callers and logs can tell "nothing
there" apart from "could not ask".
"""

from dataclasses import dataclass
from typing import Optional


class PortalError(Exception):
    status_code = 400
    code = 'BAD_REQUEST'

    def __init__(self, message=''):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'error': {'code': self.code, 'message': self.message}}


class ValidationError(PortalError):
    status_code = 400
    code = 'VALIDATION_ERROR'


class AccessDeniedError(PortalError):
    status_code = 403
    code = 'ACCESS_DENIED'


class NotFoundError(PortalError):
    status_code = 404
    code = 'NOT_FOUND'


FETCH_TRANSPORT = 'transport'
FETCH_PARSE = 'parse'


@dataclass
class FetchFailed:
    kind: str
    collection: str
    detail: str = ''
    doc_id: Optional[str] = None


class QueryResult(list):
    """A list of records that remembers whether the fetch behind it failed."""

    def __init__(self, items=(), error: Optional[FetchFailed] = None):
        super().__init__(items)
        self.error = error

    @property
    def failed(self) -> bool:
        return self.error is not None

    @classmethod
    def failure(cls, error: FetchFailed) -> 'QueryResult':
        return cls((), error)
