"""Error types shared by the scheduler core and its callers."""


class MnemoError(Exception):
    """Base class for every error raised by mnemo."""


class InvalidRatingError(MnemoError, ValueError):
    """A rating or legacy quality value outside its allowed integer range."""

    def __init__(self, value: object, low: int, high: int, kind: str = "rating"):
        self.value = value
        self.low = low
        self.high = high
        self.kind = kind
        super().__init__(f"{kind.capitalize()} must be an integer in [{low}, {high}], got {value!r}")


class CardNotFoundError(MnemoError, LookupError):
    """No progress record exists for the (user, flashcard) pair."""

    def __init__(self, user_id: str, flashcard_id: str):
        self.user_id = user_id
        self.flashcard_id = flashcard_id
        super().__init__(f"No progress for user {user_id!r} on flashcard {flashcard_id!r}")
