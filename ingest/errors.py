from __future__ import annotations


class WarningPipelineError(Exception):
    pass


class FetchError(WarningPipelineError):
    def __init__(self, status: int | None, message: str, url: str | None = None) -> None:
        super().__init__(f"{message} ({url})" if url else message)
        self.status = status
        self.message = message
        self.url = url


class ArchiveError(WarningPipelineError):
    pass


class ParseError(WarningPipelineError):
    pass


class NormalizationError(WarningPipelineError):
    pass


class ConfigurationError(WarningPipelineError):
    pass
