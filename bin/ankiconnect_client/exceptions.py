"""Exceptions raised by the AnkiConnect client."""

DECK_NOT_FOUND_MESSAGE = "deck was not found"


class AnkiError(Exception):
    """AnkiConnect answered with an error message."""

    def __init__(self, message: str, action: str = ""):
        super().__init__(message)
        self.message = message
        self.action = action

    @property
    def is_deck_not_found(self) -> bool:
        return DECK_NOT_FOUND_MESSAGE in self.message


class AnkiConnectionError(AnkiError):
    """AnkiConnect could not be reached or returned an unreadable response."""
