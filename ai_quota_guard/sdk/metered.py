"""
Metered execution of arbitrary AI calls.

Admits the request, runs it and records its usage afterwards.
"""

from typing import Any, Callable, Mapping, Optional, TypeVar

from ..core.errors import AdmissionDenied
from ..core.recorder import DEFAULT_REQUEST_TYPE
from ..core.service import MeteringService
from ..core.token_counter import estimate_tokens

T = TypeVar("T")


def metered_call(
    service: MeteringService,
    account_id: str,
    fn: Callable[..., T],
    *args: Any,
    request_type: str = DEFAULT_REQUEST_TYPE,
    token_counter: Optional[Callable[[T], Optional[int]]] = None,
    payload: Optional[Mapping[str, Any]] = None,
    **kwargs: Any
) -> T:
    """Run fn as a metered request for the account.

    The call slot is reserved atomically at admission. Usage is recorded
    once admission succeeds whether fn returns, raises or is cancelled:
    the slot was consumed either way.

    Args:
        service: Metering service
        account_id: Already-authenticated account id
        fn: The business call to run
        *args: Positional arguments for fn
        request_type: Label stored on the ledger entry
        token_counter: Extracts the exact token count from fn's result,
            or returns None to keep the estimate
        payload: Request body used for the estimate when no exact count exists
        **kwargs: Keyword arguments for fn

    Returns:
        Whatever fn returns, unchanged

    Raises:
        AdmissionDenied: If the account may not make the request
        Exception: Anything fn raises is propagated after recording
    """
    result = service.check_and_reserve(account_id)
    if not result.allowed:
        raise AdmissionDenied(result)

    tokens_used = estimate_tokens(payload)
    try:
        response = fn(*args, **kwargs)
        if token_counter is not None:
            counted = token_counter(response)
            if counted is not None:
                tokens_used = counted
        return response
    finally:
        service.record_usage(account_id, tokens_used, request_type, reserved=True)
