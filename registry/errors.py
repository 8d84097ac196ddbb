"""
Error taxonomy of the registry engine.

Every rejected call raises exactly one of these. The HTTP layer maps them to
responses through ``code`` and ``status_code``; the client maps them back.
"""

from typing import Dict, Type

from rest_framework import status


class RegistryError(Exception):
    """Base class for every rejection raised by the registry engine."""

    code = "registry_error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Registry call rejected."

    def __init__(self, detail: str = ""):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidArgument(RegistryError):
    code = "invalid_argument"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Malformed argument."


class DuplicateKey(RegistryError):
    code = "duplicate_key"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Key already exists."


class NotFound(RegistryError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Key not found."


class Forbidden(RegistryError):
    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Caller is not authorized for this call."


class Frozen(RegistryError):
    code = "frozen"
    status_code = status.HTTP_423_LOCKED
    default_detail = "Entry is frozen."


class AlreadyPaused(RegistryError):
    code = "paused"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Registry is paused; new entries cannot be created."


class OutOfRange(RegistryError):
    code = "out_of_range"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Index is beyond the owner's key count."


ERRORS_BY_CODE: Dict[str, Type[RegistryError]] = {
    cls.code: cls
    for cls in (InvalidArgument, DuplicateKey, NotFound, Forbidden, Frozen, AlreadyPaused, OutOfRange)
}
