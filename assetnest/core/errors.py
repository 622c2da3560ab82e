from __future__ import annotations


class NestError(Exception):
    """Base class for every error raised by the asset layer."""

    message = "An unknown error occurred."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NestError):
            return NotImplemented
        return type(self) is type(other) and str(self) == str(other)

    def __hash__(self) -> int:
        return hash((type(self), str(self)))


class _CausedError(NestError):
    """A storage or database failure that keeps the originating exception."""

    def __init__(self, cause: BaseException | None = None, message: str | None = None) -> None:
        self.cause = cause
        text = message or self.message
        if cause is not None:
            text = f"{text} Underlying error: {cause}"
        super().__init__(text)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NestError):
            return NotImplemented
        if type(self) is not type(other):
            return False
        lhs, rhs = self.cause, getattr(other, "cause", None)
        if lhs is None or rhs is None:
            return lhs is rhs
        return type(lhs) is type(rhs) and str(lhs) == str(rhs)

    def __hash__(self) -> int:
        return hash((type(self), type(self.cause), str(self.cause)))


class AssetAlreadyExists(NestError):
    message = "An asset with this identifier already exists."


class AssetNotFound(NestError):
    message = "The requested asset could not be found."


class DataNotFound(NestError):
    message = "The requested data could not be found in storage."


class InvalidAssetURL(NestError):
    message = "The asset's URL is invalid or cannot be processed."


class InvalidAssetIdentifier(NestError):
    message = "The asset identifier cannot be used as a storage file name."


class InvalidImageFormat(NestError):
    message = "The image format is invalid or unsupported."


class InvalidAssetType(NestError):
    message = "The asset type is invalid or unsupported."


class InvalidQueryFilter(NestError):
    message = "The query filter cannot be applied to the asset store."


class UnableToConvertData(NestError):
    message = "Failed to convert the input into valid data."


class WriteFailed(_CausedError):
    message = "Failed to write data to storage."


class ReadFailed(_CausedError):
    message = "Failed to read data from storage."


class DeleteFailed(_CausedError):
    message = "Failed to delete data from storage."


class UnknownNestError(_CausedError):
    message = "An unknown error occurred."
