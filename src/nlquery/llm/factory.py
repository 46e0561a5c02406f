"""
LLM Client Factory

Builds the credential pool and the dual-credential client from configuration.
"""

from __future__ import annotations

import logging

import httpx
import openai

from src.nlquery.config import NLQueryConfig
from src.nlquery.exceptions import MissingConfigError
from src.nlquery.gate import ConcurrencyGate
from src.nlquery.llm.client import DualCredentialLLMClient
from src.nlquery.llm.credentials import CredentialPool

logger = logging.getLogger(__name__)


def create_openai_client(api_key: str, http_client: httpx.AsyncClient | None = None) -> openai.AsyncOpenAI:
    """
    Create a completion client with SDK retries disabled.

    DualCredentialLLMClient owns retry and failover; SDK-level retries would
    sleep on a rate-limited key while holding a gate slot.
    """
    return openai.AsyncOpenAI(api_key=api_key, max_retries=0, http_client=http_client)


def create_credential_pool(
    config: NLQueryConfig,
    http_client: httpx.AsyncClient | None = None,
) -> CredentialPool:
    """
    Create AsyncOpenAI clients for the configured keys.

    The backup key is only used when it differs from the primary.

    Args:
        config: Engine configuration
        http_client: Optional transport shared by both clients

    Raises:
        MissingConfigError: No primary key configured
    """
    if not config.openai_api_key:
        raise MissingConfigError("openai_api_key", hint="Set OPENAI_API_KEY or NLQUERY_OPENAI_API_KEY")

    primary = create_openai_client(config.openai_api_key, http_client)
    backup = None
    if config.openai_api_key_backup and config.openai_api_key_backup != config.openai_api_key:
        backup = create_openai_client(config.openai_api_key_backup, http_client)
    else:
        logger.info("No distinct backup OpenAI key configured, failover disabled")

    return CredentialPool(primary, backup)


def create_gate(config: NLQueryConfig) -> ConcurrencyGate:
    return ConcurrencyGate(
        max_concurrent=config.gate_max_concurrent,
        min_spacing=config.gate_min_spacing_ms / 1000,
    )


def create_llm_client(
    config: NLQueryConfig,
    gate: ConcurrencyGate | None = None,
) -> DualCredentialLLMClient:
    """
    Create the LLM client.

    Args:
        config: Engine configuration
        gate: Shared concurrency gate (a new one is created if omitted)

    Returns:
        Configured DualCredentialLLMClient
    """
    return DualCredentialLLMClient(
        pool=create_credential_pool(config),
        model=config.llm_model,
        gate=gate or create_gate(config),
        classify_max_attempts=config.classify_max_attempts,
        classify_max_tokens=config.classify_max_tokens,
        chat_max_tokens=config.chat_max_tokens,
        reclassify_max_attempts=config.reclassify_max_attempts,
        reclassify_max_tokens=config.reclassify_max_tokens,
    )
