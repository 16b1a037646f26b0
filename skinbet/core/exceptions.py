class SkinBetError(Exception):
    """Base class for errors surfaced at the settlement boundary."""

    status_code = 500
    error = "Internal error"

    def __init__(self, detail: str = None):
        self.detail = detail or self.error
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.error, "detail": self.detail}


class InvalidInput(SkinBetError):
    status_code = 400
    error = "InvalidInput"


class InsufficientBalance(SkinBetError):
    status_code = 400
    error = "InsufficientBalance"


class UserNotFound(SkinBetError):
    status_code = 404
    error = "UserNotFound"


class RoundNotFound(SkinBetError):
    status_code = 404
    error = "RoundNotFound"


class StorageUnavailable(SkinBetError):
    status_code = 500
    error = "StorageUnavailable"


class GameNotFound(SkinBetError):
    status_code = 404
    error = "GameNotFound"
