from __future__ import annotations


class FolioError(Exception):
    """Base class for every error raised by the generator."""


class ConfigError(FolioError):
    pass


class DocumentError(FolioError):
    """An error tied to a single content document."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message


class LoadError(DocumentError):
    pass


class SchemaError(LoadError):
    pass


class RenderError(DocumentError):
    pass


class RouteCollisionError(FolioError):
    def __init__(self, key: str, first: str, second: str) -> None:
        super().__init__(f"{key} is produced by both {first} and {second}")
        self.key = key
        self.first = first
        self.second = second


class EmitError(FolioError):
    def __init__(self, url: str, cause: BaseException) -> None:
        super().__init__(f"{url}: {cause}")
        self.url = url
        self.cause = cause


class BuildTimeout(FolioError, TimeoutError):
    pass


class Cancelled(FolioError):
    pass
