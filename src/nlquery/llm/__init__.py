"""
LLM Layer

Dual-credential OpenAI client for classification, self-correction and chat.
"""

from src.nlquery.llm.client import DualCredentialLLMClient
from src.nlquery.llm.credentials import Credential, CredentialPool, CredentialState
from src.nlquery.llm.factory import (
    create_credential_pool,
    create_gate,
    create_llm_client,
    create_openai_client,
)
from src.nlquery.llm.protocols import LLMMessage, LLMResponse, MessageRole

__all__ = [
    "Credential",
    "CredentialPool",
    "CredentialState",
    "DualCredentialLLMClient",
    "LLMMessage",
    "LLMResponse",
    "MessageRole",
    "create_credential_pool",
    "create_gate",
    "create_llm_client",
    "create_openai_client",
]
