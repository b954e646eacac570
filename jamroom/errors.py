"""
Per-message error taxonomy. Every RoomError is recoverable: the router
replies to the sender with an `error` message and keeps the connection open.
"""


class RoomError(Exception):
    """Base class; `message` is the text sent back to the client"""

    default_message = "Invalid request."

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AlreadyInRoom(RoomError):
    default_message = "You are already in a room."


class RoomNotFound(RoomError):
    def __init__(self, code):
        super().__init__(f'Room "{code}" not found.')
        self.code = code


class RoomFull(RoomError):
    def __init__(self, code):
        super().__init__(f'Room "{code}" is full.')
        self.code = code


class InvalidRole(RoomError):
    def __init__(self, role):
        super().__init__(f"Invalid instrument selected: {role}")
        self.role = role


class NotInRoom(RoomError):
    default_message = "You are not in a valid room."


class InvalidPayload(RoomError):
    default_message = "Invalid message payload."


class UnknownMessageKind(RoomError):
    def __init__(self, kind):
        super().__init__(f"Unknown message type: {kind}")
        self.kind = kind


class MalformedEnvelope(RoomError):
    default_message = "Invalid message format."
