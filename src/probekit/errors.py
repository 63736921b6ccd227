"""
Exception hierarchy for ProbeKit.

Network conditions observed while probing are never raised; they are
recorded as classified outcomes. These exceptions cover the failures
that stop an operation before or instead of probing.
"""


class ProbeKitError(Exception):
    """Base exception for ProbeKit errors."""
    pass


class InvalidTargetError(ProbeKitError):
    """Malformed host, IP address or port, rejected before any I/O."""

    def __init__(self, target: str, reason: str = "Invalid host or IP address"):
        self.target = target
        self.reason = reason
        super().__init__(f"{reason}: {target!r}")


class ResolutionError(ProbeKitError):
    """The target name could not be resolved for the requested family."""
    pass


class AddressFamilyUnavailable(ProbeKitError):
    """The requested IP version has no usable local route."""
    pass


class CloudProbeError(ProbeKitError):
    """The cloud probe API rejected a request or could not be reached."""

    def __init__(self, details: str, return_code: int | None = None, req_id: str | None = None):
        self.details = details
        self.return_code = return_code
        self.req_id = req_id
        super().__init__(details)
