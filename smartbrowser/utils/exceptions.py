class SmartBrowserError(Exception):
    """Base exception for the browser automation service.

    Subclasses set ``code`` (the machine-readable error code surfaced in
    results and HTTP bodies), ``status_code`` and ``retryable``.
    """

    code = "INTERNAL_ERROR"
    status_code = 500
    retryable = False


class ValidationError(SmartBrowserError):
    code = "VALIDATION_ERROR"
    status_code = 400


class SecurityError(SmartBrowserError):
    code = "SECURITY_ERROR"
    status_code = 400


class NoExecutorFoundError(SmartBrowserError):
    code = "NO_EXECUTOR_FOUND"
    status_code = 400

    def __init__(self, task_type: str):
        self.task_type = task_type
        super().__init__(f"No executor found for task type: {task_type}")


class ExecutorMismatchError(SmartBrowserError):
    code = "EXECUTOR_MISMATCH"
    status_code = 400

    def __init__(self, executor_name: str, task_type: str):
        self.executor_name = executor_name
        self.task_type = task_type
        super().__init__(
            f"Executor '{executor_name}' cannot handle task type: {task_type}"
        )


class ExecutionTimeoutError(SmartBrowserError):
    code = "EXECUTION_TIMEOUT"
    status_code = 408
    retryable = True

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Task execution timed out after {timeout:g}s")


class MaxRetriesExceededError(SmartBrowserError):
    code = "MAX_RETRIES_EXCEEDED"

    def __init__(self, attempts: int, detail: str):
        self.attempts = attempts
        super().__init__(f"Operation failed after {attempts} attempts: {detail}")


class TaskCancelledError(SmartBrowserError):
    code = "TASK_CANCELLED"
    status_code = 400

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task was cancelled: {task_id}")


class BrowserError(SmartBrowserError):
    code = "BROWSER_ERROR"
    retryable = True


class ContentExtractionError(SmartBrowserError):
    code = "CONTENT_EXTRACTION_ERROR"


class LLMError(SmartBrowserError):
    code = "LLM_ERROR"
    status_code = 502
    retryable = True

    def __init__(self, provider: str, detail: str):
        self.provider = provider
        super().__init__(f"LLM error ({provider}): {detail}")


class LLMRateLimitError(LLMError):
    code = "LLM_RATE_LIMITED"
    status_code = 429


class LLMAuthenticationError(LLMError):
    code = "LLM_AUTH_ERROR"
    status_code = 401
    retryable = False


class RateLimitError(SmartBrowserError):
    code = "RATE_LIMIT_ERROR"
    status_code = 429

    def __init__(self, retry_after: int):
        self.retry_after = retry_after
        super().__init__(
            f"Too many requests, retry in {retry_after} seconds"
        )


class ServiceUnavailableError(SmartBrowserError):
    code = "SERVICE_UNAVAILABLE"
    status_code = 503

    def __init__(self, service: str):
        self.service = service
        super().__init__(f"{service} is not configured")
