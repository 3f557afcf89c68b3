"""Exception types and retryability classification for remote calls.

Errors fall into three groups:

* transient remote failures (throttling, timeouts, 5xx) -- retried by the
  executor and invisible above it until retries are exhausted;
* data anomalies (missing items, duplicate attributes, missing ETags) --
  the affected item is skipped, never retried;
* unrecognized input (unknown job types, event discriminators or status
  values) -- logged and ignored by the dispatcher.  A pipeline job of a
  known type with invalid parameters is the exception: it is still failed
  so the pipeline and the resource do not wait forever.
"""

from __future__ import annotations

from typing import Any

import httpx
from botocore.exceptions import ClientError, HTTPClientError
from botocore.exceptions import ConnectionError as BotoConnectionError


class DappbotError(Exception):
    """Base class for errors raised by the lifecycle engine."""


class DataAnomalyError(DappbotError):
    """Raised when remote state is missing or shaped unexpectedly."""


class UnrecognizedInputError(DappbotError):
    """Raised when an inbound payload matches none of the known variants."""

    def __init__(self, message: str, payload: Any = None) -> None:
        super().__init__(message)
        self.payload = payload


class InvalidJobParametersError(UnrecognizedInputError):
    """Raised when a pipeline job of a known type carries invalid parameters.

    The job id is known, so the pipeline can still be told the job failed.
    *params* holds the decoded parameter object, or ``None`` when the
    parameters were not JSON.
    """

    def __init__(self, message: str, job_id: str, params: Any = None, payload: Any = None) -> None:
        super().__init__(message, payload)
        self.job_id = job_id
        self.params = params


# Error codes AWS services use for throttling and transient unavailability.
# Codes vary per service, so this set is the union across the services we call.
_TRANSIENT_ERROR_CODES: frozenset[str] = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "ThrottledException",
        "TooManyRequestsException",
        "RequestLimitExceeded",
        "RequestThrottled",
        "RequestThrottledException",
        "SlowDown",
        "ProvisionedThroughputExceededException",
        "TransactionInProgressException",
        "LimitExceededException",
        "RequestTimeout",
        "RequestTimeoutException",
        "PriorRequestNotComplete",
        "ServiceUnavailable",
        "ServiceUnavailableException",
        "InternalError",
        "InternalFailure",
        "InternalServerError",
        "InternalErrorException",
    }
)

_RETRYABLE_HTTP_STATUSES: frozenset[int] = frozenset({408, 429})


def client_error_code(exc: ClientError) -> str:
    """Return the AWS error code carried by *exc* (empty when absent)."""
    return str(exc.response.get("Error", {}).get("Code", ""))


def _is_retryable_status(status: int) -> bool:
    return status >= 500 or status in _RETRYABLE_HTTP_STATUSES


def is_transient_error(exc: BaseException) -> bool:
    """Return ``True`` when *exc* is worth retrying.

    Structurally invalid requests (``ParamValidationError``, 4xx client
    errors, ``ValueError`` and friends) are never retried.
    """
    if isinstance(exc, ClientError):
        if client_error_code(exc) in _TRANSIENT_ERROR_CODES:
            return True
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return isinstance(status, int) and _is_retryable_status(status)
    if isinstance(exc, (BotoConnectionError, HTTPClientError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return _is_retryable_status(exc.response.status_code)
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, TimeoutError)
