"""
Metered OpenAI client wrapper.

Checks the account's quota before each chat completion and records
usage afterwards without modifying the response.
"""

from typing import Any, Dict, List, Optional

from openai import OpenAI

from ..core.service import MeteringService
from .metered import metered_call


def _total_tokens(response: Any) -> Optional[int]:
    usage = getattr(response, "usage", None)
    if not usage:
        return None
    return usage.total_tokens


class MeteredOpenAI:
    """OpenAI client wrapper that enforces daily quotas.

    Each chat call is one metered request for the configured account.
    Denied requests never reach OpenAI. A call that fails after admission
    still consumes its slot and is recorded with an estimated token count.
    """

    def __init__(
        self,
        account_id: str,
        service: MeteringService,
        model: str,
        request_type: str = "chat",
        client: Optional[OpenAI] = None,
    ):
        """Initialize metered OpenAI client.

        Args:
            account_id: Account charged for the calls (required)
            service: Metering service used for admission and recording
            model: OpenAI model name (required)
            request_type: Ledger label for the calls
            client: Preconfigured OpenAI client, created if omitted

        Raises:
            ValueError: If account_id or model is missing/empty
        """
        if not account_id or not account_id.strip():
            raise ValueError("account_id is required and cannot be empty")
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")

        self.account_id = account_id
        self.service = service
        self.model = model
        self.request_type = request_type
        self.client = client or OpenAI()

    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs: Any
    ) -> Any:
        """Create a chat completion as a metered request.

        Args:
            messages: List of message dictionaries (required)
            temperature: Sampling temperature (optional)
            max_tokens: Maximum tokens to generate (optional)
            **kwargs: Additional OpenAI parameters

        Returns:
            OpenAI chat completion response

        Raises:
            ValueError: If messages is empty
            AdmissionDenied: If the account is over quota, blocked or deactivated
            OpenAI API errors: Propagated without modification
        """
        if not messages:
            raise ValueError("messages is required and cannot be empty")

        prompt = "\n".join(str(m.get("content", "")) for m in messages)

        return metered_call(
            self.service,
            self.account_id,
            self.client.chat.completions.create,
            request_type=self.request_type,
            token_counter=_total_tokens,
            payload={"prompt": prompt},
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs
        )
