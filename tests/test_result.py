from sales_agent.services.errors import ErrorCode, UpstreamError
from sales_agent.services.result import Result


class TestResultSuccess:
    def test_success_creates_ok_result(self):
        result = Result.success("test value")
        assert result.ok is True
        assert result.value == "test value"
        assert result.error is None

    def test_success_is_never_invalid_state(self):
        assert Result.success(42).is_invalid_state is False


class TestResultFailure:
    def test_failure_creates_not_ok_result(self):
        result = Result.failure("Payment not found", ErrorCode.NOT_FOUND.value)
        assert result.ok is False
        assert result.error == "Payment not found"
        assert result.error_code == "not_found"
        assert result.value is None

    def test_failure_default_code(self):
        result = Result.failure("Error message")
        assert result.error_code == "unknown"


class TestResultUnwrapOr:
    def test_unwrap_or_returns_value_on_success(self):
        result = Result.success("actual value")
        assert result.unwrap_or("default") == "actual value"

    def test_unwrap_or_returns_default_on_failure(self):
        result = Result.failure("Error", "code")
        assert result.unwrap_or("default") == "default"


class TestInvalidState:
    def test_already_processed_counts_as_invalid_state(self):
        result = Result.failure("Payment already approved", ErrorCode.ALREADY_PROCESSED.value)
        assert result.is_invalid_state is True

    def test_invalid_state_code(self):
        result = Result.failure("Not in handoff", ErrorCode.INVALID_STATE.value)
        assert result.is_invalid_state is True

    def test_not_found_is_not_invalid_state(self):
        result = Result.failure("Missing", ErrorCode.NOT_FOUND.value)
        assert result.is_invalid_state is False


class TestErrors:
    def test_upstream_error_names_service(self):
        error = UpstreamError("gemini", "HTTP 503")
        assert error.service == "gemini"
        assert str(error) == "gemini: HTTP 503"
        assert error.code == "upstream_failure"
