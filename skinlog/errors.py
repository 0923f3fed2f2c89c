"""Exception types shared across the chat action pipeline."""


class SkinlogError(Exception):
    """Base class for skinlog errors."""


class WriteError(SkinlogError):
    """A write-through to the record backend failed.

    Raised by the shared data store after its optimistic cache update so
    callers can surface the failure in the transcript.
    """

    def __init__(self, operation: str, detail: str = "") -> None:
        self.operation = operation
        self.detail = detail
        msg = f"{operation} failed"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class StreamInterrupted(SkinlogError):
    """The advisor stream broke off before end-of-data.

    ``partial`` holds everything assembled up to the failure (possibly
    empty) so the caller can still persist it.
    """

    def __init__(self, partial: str, cause: BaseException | None = None) -> None:
        self.partial = partial
        self.cause = cause
        super().__init__(f"Advisor stream interrupted after {len(partial)} chars")
