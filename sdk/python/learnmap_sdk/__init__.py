from learnmap_sdk.client import AsyncLearnMapClient, GenerateMapRequest, LearnMapApiError
from learnmap_sdk.errors import ErrorKind, NormalizedError, clean_error_message, normalize
from learnmap_sdk.resilient import RequestFailed, RequestResult, RequestState, ResilientRequestClient
from learnmap_sdk.retry_policy import (
    COLD_START_PROFILE,
    GENERIC_PROFILE,
    RetryProfile,
    get_profile,
    should_retry,
)

__all__ = [
    "AsyncLearnMapClient",
    "COLD_START_PROFILE",
    "ErrorKind",
    "GENERIC_PROFILE",
    "GenerateMapRequest",
    "LearnMapApiError",
    "NormalizedError",
    "RequestFailed",
    "RequestResult",
    "RequestState",
    "ResilientRequestClient",
    "RetryProfile",
    "clean_error_message",
    "get_profile",
    "normalize",
    "should_retry",
]
