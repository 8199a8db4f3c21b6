"""
Concrete model adapters.
"""

from .litellm import LiteLLMClient

__all__ = ["LiteLLMClient"]
