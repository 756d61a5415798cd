"""
Error codes and exceptions of the authorization engine.

Codes are grouped by category and share the service prefix 100:
validation 100_422xxx, bad request 100_400xxx, not found 100_404xxx,
authentication 100_401xxx, system 100_500xxx.
"""

from enum import IntEnum
from typing import Any, Iterable, List, Optional, Union


class AuthValidatorErrorCode(IntEnum):
    """Field-level rule violations."""
    DEFAULT_VALIDATION_ERROR = 100_422000
    USER_EMAIL_NOT_PRESENT = 100_422001
    USER_EMAIL_NOT_VALID = 100_422002
    USER_EMAIL_ALREADY_TAKEN = 100_422003
    USER_PASSWORD_OR_PIN_NOT_PRESENT = 100_422004
    USER_PASSWORD_NOT_VALID = 100_422005
    USER_ID_NOT_PRESENT = 100_422006
    USER_ID_ALREADY_TAKEN = 100_422007
    USER_USERNAME_NOT_PRESENT = 100_422008
    USER_USERNAME_NOT_VALID = 100_422009
    USER_USERNAME_ALREADY_TAKEN = 100_422010
    ROLE_PERMISSION_ROLE_ID_NOT_PRESENT = 100_422011
    ROLE_PERMISSION_PERMISSION_ID_NOT_PRESENT = 100_422012
    ROLE_PERMISSION_READ_LEVEL_NOT_SET = 100_422013
    ROLE_PERMISSION_WRITE_LEVEL_NOT_SET = 100_422014
    ROLE_PERMISSION_EXECUTE_LEVEL_NOT_SET = 100_422015
    ROLE_NAME_NOT_PRESENT = 100_422016
    USER_PIN_NOT_CORRECT_LENGTH = 100_422017
    USER_PIN_ALREADY_TAKEN = 100_422018
    ROLE_NAME_ALREADY_TAKEN = 100_422019
    ROLE_PERMISSION_NAME_NOT_PRESENT = 100_422020
    ROLE_PERMISSION_READ_LEVEL_NOT_VALID = 100_422021
    ROLE_PERMISSION_WRITE_LEVEL_NOT_VALID = 100_422022
    ROLE_PERMISSION_EXECUTE_LEVEL_NOT_VALID = 100_422023


class AuthBadRequestErrorCode(IntEnum):
    """Missing call arguments or a mutation that conflicts with existing state."""
    DEFAULT_BAD_REQUEST_ERROR = 100_400000
    MISSING_DATA_ERROR = 100_400001
    ROLE_PERMISSION_ALREADY_EXISTS = 100_400002
    AUTH_USER_ROLE_ALREADY_EXISTS = 100_400003
    AUTH_USER_ROLE_DOES_NOT_EXISTS = 100_400004


class AuthResourceNotFoundErrorCode(IntEnum):
    DEFAULT_RESOURCE_NOT_FOUND_ERROR = 100_404000
    AUTH_USER_DOES_NOT_EXISTS = 100_404001
    ROLE_DOES_NOT_EXISTS = 100_404002
    ROLE_PERMISSION_DOES_NOT_EXISTS = 100_404003


class AuthAuthenticationErrorCode(IntEnum):
    MISSING_AUTHENTICATION_TOKEN = 100_401001
    INVALID_TOKEN = 100_401002
    USER_NOT_AUTHENTICATED = 100_401003


class AuthSystemErrorCode(IntEnum):
    """Store failures and unexpected exceptions."""
    DEFAULT_SYSTEM_ERROR = 100_500000
    UNHANDLED_SYSTEM_ERROR = 100_500001
    SQL_SYSTEM_ERROR = 100_500002


ErrorCode = Union[
    AuthValidatorErrorCode,
    AuthBadRequestErrorCode,
    AuthResourceNotFoundErrorCode,
    AuthAuthenticationErrorCode,
    AuthSystemErrorCode,
]


def merge_codes(*groups: Iterable[ErrorCode]) -> List[ErrorCode]:
    """Union of code lists, keeping first-seen order."""
    merged: List[ErrorCode] = []
    for group in groups:
        for code in group:
            if code not in merged:
                merged.append(code)
    return merged


class AuthError(Exception):
    """
    Expected, typed failure of an engine operation.

    Raised inside a store transaction so the unit of work rolls back;
    converted into a failed response envelope at the facade.
    """

    default_code: ErrorCode = AuthSystemErrorCode.DEFAULT_SYSTEM_ERROR

    def __init__(self, *codes: ErrorCode, details: Optional[Any] = None):
        self.codes: List[ErrorCode] = list(codes) or [self.default_code]
        self.details = details
        super().__init__(", ".join(code.name for code in self.codes))


class FieldValidationError(AuthError):
    default_code = AuthValidatorErrorCode.DEFAULT_VALIDATION_ERROR


class BadRequestError(AuthError):
    default_code = AuthBadRequestErrorCode.DEFAULT_BAD_REQUEST_ERROR


class ResourceNotFoundError(AuthError):
    default_code = AuthResourceNotFoundErrorCode.DEFAULT_RESOURCE_NOT_FOUND_ERROR


class AuthenticationError(AuthError):
    default_code = AuthAuthenticationErrorCode.USER_NOT_AUTHENTICATED
