"""Business errors surfaced to the acting user as a blocking notice."""


class GameError(Exception):
    message = "Request rejected"

    def __init__(self, message: str = ""):
        if message:
            self.message = message
        super().__init__(self.message)


class InvalidCredentialsError(GameError):
    message = "Invalid student id or password"


class RoomNotFoundError(GameError):
    message = "Room not found"


class RoomFullError(GameError):
    message = "Room is full"


class MatchInProgressError(GameError):
    message = "Match already in progress"


class EnergyExhaustedError(GameError):
    message = "Not enough energy to join a match"


class AnswerRejectedError(GameError):
    message = "Answer not accepted"
