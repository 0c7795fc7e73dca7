class BillError(Exception):
    """Base class for errors reported to API clients"""
    status_code = 400

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'success': False, 'error': self.message}


class InvalidStructure(BillError):
    """The receipt candidate does not have the shape of a bill"""
    status_code = 422


class InvalidArgument(BillError):
    status_code = 400


class NotFound(BillError):
    status_code = 404


class Conflict(BillError):
    status_code = 409
