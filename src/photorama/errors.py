from __future__ import annotations

from enum import StrEnum


class PhotoramaError(Exception):
    """Base class for every error raised by the photorama core."""


class TransportError(PhotoramaError):
    def __init__(self, message: str, *, url: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ParseError(PhotoramaError):
    pass


class DecodeError(PhotoramaError):
    pass


class StoreError(PhotoramaError):
    pass


class PhotoNotFoundError(StoreError):
    def __init__(self, photo_id: str) -> None:
        super().__init__(f"photo not found: {photo_id}")
        self.photo_id = photo_id


class CacheError(PhotoramaError):
    def __init__(self, message: str, *, key: str) -> None:
        super().__init__(message)
        self.key = key


class MissingImageURLError(ValueError):
    """Raised when an uncached photo without a remote URL is asked for its image."""

    def __init__(self, photo_id: str) -> None:
        super().__init__(f"photo {photo_id} has no remote image URL and is not cached")
        self.photo_id = photo_id


class FetchErrorKind(StrEnum):
    TRANSPORT = "transport"
    PARSE = "parse"
    DECODE = "decode"
    STORE = "store"


class FetchError(PhotoramaError):
    def __init__(self, kind: FetchErrorKind, cause: BaseException) -> None:
        super().__init__(f"{kind.value} failure: {cause}")
        self.kind = kind
        self.cause = cause
        self.__cause__ = cause

    @classmethod
    def transport(cls, cause: BaseException) -> FetchError:
        return cls(FetchErrorKind.TRANSPORT, cause)

    @classmethod
    def parse(cls, cause: BaseException) -> FetchError:
        return cls(FetchErrorKind.PARSE, cause)

    @classmethod
    def decode(cls, cause: BaseException) -> FetchError:
        return cls(FetchErrorKind.DECODE, cause)

    @classmethod
    def store(cls, cause: BaseException) -> FetchError:
        return cls(FetchErrorKind.STORE, cause)
