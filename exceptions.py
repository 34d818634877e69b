class ChatError(Exception):
    """Base class for errors the rooms API reports to clients."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailure(ChatError):
    """Rejected input. Raised before any state is mutated."""

    status_code = 400


class RoomNotFound(ChatError):
    """Room is absent, closed or past its expiry. The three are indistinguishable."""

    status_code = 404

    def __init__(self, message: str = "Room not found or expired"):
        super().__init__(message)


class Forbidden(ChatError):
    status_code = 403
