from enum import Enum


class ErrorCode(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    ALREADY_PROCESSED = "already_processed"
    UPSTREAM_FAILURE = "upstream_failure"
    VALIDATION_ERROR = "validation_error"


# Codes that mean "the record exists but is not in a state that allows this"
INVALID_STATE_CODES = {ErrorCode.INVALID_STATE.value, ErrorCode.ALREADY_PROCESSED.value}


class SalesAgentError(Exception):
    code = "unknown"


class UpstreamError(SalesAgentError):
    code = ErrorCode.UPSTREAM_FAILURE.value

    def __init__(self, service: str, message: str):
        self.service = service
        super().__init__(f"{service}: {message}")


class CommandValidationError(SalesAgentError):
    code = ErrorCode.VALIDATION_ERROR.value


class ConfigurationError(SalesAgentError):
    """Required setting missing at client construction."""
