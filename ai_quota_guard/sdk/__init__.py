"""
SDK for AI Quota Guard.

Wraps AI calls with admission control and usage recording.
"""

from .metered import metered_call
from .openai_client import MeteredOpenAI

__all__ = ["MeteredOpenAI", "metered_call"]
