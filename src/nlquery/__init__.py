"""
NLQuery Engine

Turns plain-English questions about project data into validated
`{function_name, arguments}` classifications, resolves dates, amounts and
size tiers deterministically, and self-corrects when execution fails.

Usage:
    from src.nlquery import QueryInterpreter, create_interpreter, load_config

    interpreter = create_interpreter(load_config(), executor)
    result = await interpreter.interpret("Large projects starting next year")
"""

from src.nlquery.config import NLQueryConfig, load_config
from src.nlquery.exceptions import (
    ConfigurationError,
    LLMError,
    MalformedResponseError,
    MissingConfigError,
    NLQueryError,
    RateLimitExhaustedError,
    VectorStoreError,
)
from src.nlquery.executor import DataExecutor, ExecutionResult, InMemoryExecutor
from src.nlquery.gate import ConcurrencyGate
from src.nlquery.interpreter import InterpretationResult, QueryInterpreter, create_interpreter
from src.nlquery.models import (
    Classification,
    ClassificationErrorKind,
    ClassificationRequest,
    ErrorFeedback,
    FeedbackErrorType,
    FunctionSpec,
    ParameterSpec,
    RAGContext,
)

__all__ = [
    "Classification",
    "ClassificationErrorKind",
    "ClassificationRequest",
    "ConcurrencyGate",
    "ConfigurationError",
    "DataExecutor",
    "ErrorFeedback",
    "ExecutionResult",
    "FeedbackErrorType",
    "FunctionSpec",
    "InMemoryExecutor",
    "InterpretationResult",
    "LLMError",
    "MalformedResponseError",
    "MissingConfigError",
    "NLQueryConfig",
    "NLQueryError",
    "ParameterSpec",
    "QueryInterpreter",
    "RAGContext",
    "RateLimitExhaustedError",
    "VectorStoreError",
    "create_interpreter",
    "load_config",
]
