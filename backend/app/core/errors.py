"""Error taxonomy shared by the stores, the job runtime and the API layer."""


class PolarisError(Exception):
    """Base class for every error raised on purpose by the backend."""


class ConfigurationError(PolarisError):
    """Required configuration (e.g. the internal key) is missing."""


class UnauthorizedError(PolarisError):
    """A call crossed the trust boundary without a valid internal key."""


class NotFoundError(PolarisError):
    """A referenced conversation, message, file or folder does not exist."""


class ValidationError(PolarisError):
    """Malformed parameters or a rule violation such as a duplicate sibling name."""


class NonRetriableError(PolarisError):
    """Raised inside a job to fail it immediately, skipping step retries."""


class StepFailedError(PolarisError):
    """A job step kept failing after all of its attempts."""

    def __init__(self, step_id: str, attempts: int, cause: BaseException):
        self.step_id = step_id
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"Step '{step_id}' failed after {attempts} attempt(s): {cause}")


class JobCancelled(Exception):
    """Signals that a job observed its cancellation at a step boundary.

    Not a PolarisError: cancellation is a terminal state, not a failure.
    """

    def __init__(self, job_run_id: str):
        self.job_run_id = job_run_id
        super().__init__(f"Job run {job_run_id} was cancelled")
