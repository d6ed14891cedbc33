class GachaSourceError(Exception):
    """The upstream record service returned an error or an unreadable payload."""

    def __init__(self, message: str, *, status_code: int | None = None, code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class StoreConflictError(Exception):
    """A compare-and-set against the record store lost a race."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Concurrent update conflict on key {key!r}")
        self.key = key
