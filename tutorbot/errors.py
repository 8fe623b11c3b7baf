"""Exception types shared across the bot."""


class TutorError(Exception):
    """Base class for all bot errors."""


class ContentLoadError(TutorError):
    """A playbook file is missing, unreadable or inconsistent."""


class ContentNotFoundError(TutorError):
    """A lesson, quiz, task, opener or reflection id did not resolve."""

    def __init__(self, kind: str, content_id: str | None):
        self.kind = kind
        self.content_id = content_id
        super().__init__(f"{kind} not found: {content_id}")


class InvalidSlotError(TutorError):
    """Broadcast trigger with a slot that has no starter."""

    def __init__(self, slot: str | None):
        self.slot = slot
        super().__init__(f"Invalid slot: {slot!r}")


class OracleError(TutorError):
    """The grading oracle failed, timed out or answered with nothing usable."""


class StoreError(TutorError):
    """Persistence read or write failed; wraps the aiosqlite/asyncpg error."""


class ConcurrentUpdateError(StoreError):
    """The session row changed between read and write (lost compare-and-set)."""

    def __init__(self, identity: str, expected_version: int):
        self.identity = identity
        self.expected_version = expected_version
        super().__init__(
            f"Session {identity} was modified concurrently (expected version {expected_version})"
        )
