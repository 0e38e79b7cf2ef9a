"""
Error taxonomy

Validation problems are data (lists of Violation); these exceptions only
carry them out of the service layer. StoreFailure wraps whatever pymongo
raised and is never retried.
"""
from typing import List

from schemas import Violation


class GuideError(Exception):
    pass


class ValidationFailure(GuideError):
    def __init__(self, violations: List[Violation]):
        super().__init__(f"{len(violations)} violation(s)")
        self.violations = violations


class MalformedIdentity(GuideError):
    def __init__(self, field: str, value):
        self.violation = Violation(field=field, value=value, message="Invalid ID format")
        super().__init__(self.violation.message)


class NotFound(GuideError):
    def __init__(self, field: str, value, message: str):
        self.violation = Violation(field=field, value=value, message=message)
        super().__init__(message)


class StoreFailure(GuideError):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
