"""
Error taxonomy for the request queue.
Route handlers turn QueueError subclasses into JSON error responses.
"""


class QueueError(Exception):
    """Base class for errors raised by the queue services"""

    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"error": self.message}


class ValidationError(QueueError):
    """The caller's input was missing or malformed"""

    status_code = 400


class NotFound(QueueError):
    """An admin operation referenced an entry that does not exist"""

    status_code = 404


class ConflictingState(QueueError):
    """The requested change does not fit the current queue state"""

    status_code = 409


class ExternalServiceDegraded(QueueError):
    """A lyrics or classifier call failed; callers treat it as no signal"""

    status_code = 503

    def __init__(self, service, message):
        super().__init__(f"{service}: {message}")
        self.service = service
