from __future__ import annotations


class Web2NoteError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FetchError(Web2NoteError):
    """Network error, timeout or non-2xx response while retrieving a page or image."""


class ScrapeError(FetchError):
    pass


class ExtractionError(Web2NoteError):
    """Reserved. Extraction degrades to sentinel values instead of raising."""


class PublishError(Web2NoteError):
    """Remote publishing API rejected the request or could not be reached."""


class ExportError(Web2NoteError):
    pass


class ScheduleError(Web2NoteError):
    pass
