"""Exceptions raised by the pipeline and protocol layers."""


class PipelineError(Exception):
    """Base class for pipeline faults."""


class DiskBudgetExceeded(PipelineError):
    """A harvest run would leave too little free disk space."""

    def __init__(self, remaining: float, minimum: float):
        self.remaining = remaining
        self.minimum = minimum
        percent = round(remaining * 100, 1)
        super().__init__(f"Harvest would leave {percent}% disk space remaining.")


class HarvestError(PipelineError):
    """Deposit content could not be fetched from the provider."""


class ScannerError(PipelineError):
    """The virus scanner could not produce a report."""


class TransmitError(PipelineError):
    """The downstream preservation service refused or could not be reached."""


class StageConfigurationError(PipelineError):
    """Stages are wired in an order the state machine does not allow."""


class EnvelopeError(ValueError):
    """A deposit envelope could not be turned into a deposit."""

    def __init__(self, message: str, malformed: bool = False):
        self.malformed = malformed
        super().__init__(message)


class SwordError(Exception):
    """Protocol-level error returned to the remote party."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(message)
