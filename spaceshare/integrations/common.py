from __future__ import annotations


class IntegrationDisabledError(RuntimeError):
    pass


class IntegrationMisconfiguredError(RuntimeError):
    pass


class GatewayUnavailableError(RuntimeError):
    """The gateway could not be reached or answered with an error. Retryable."""
