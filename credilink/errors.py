"""
Error kinds raised by the learning core.
Routers never catch these; main.py maps them to HTTP responses.
"""


class LearningError(Exception):
    status_code = 500

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail or self.__class__.__name__


class InvalidArgument(LearningError):
    """Missing or malformed identifier, answer index or answer map"""
    status_code = 400


class NotFound(LearningError):
    """Referenced user, course, module or progress record does not exist"""
    status_code = 404


class PreconditionFailed(LearningError):
    """Business rule violated, e.g. final test before all modules are done"""
    status_code = 412


class Conflict(LearningError):
    """Concurrent write detected where at-most-once is required"""
    status_code = 409


class Unavailable(LearningError):
    """Store or AI collaborator unreachable; safe to retry"""
    status_code = 503


class GenerationFailed(LearningError):
    """AI collaborator returned no usable questions"""
    status_code = 502
