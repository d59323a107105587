"""Completion providers used for memory summarization."""
from .completion import (
    CompletionFn, ProviderCompleter, MockCompleter, SUPPORTED_PROVIDERS
)

__all__ = [
    'CompletionFn', 'ProviderCompleter', 'MockCompleter', 'SUPPORTED_PROVIDERS',
]
