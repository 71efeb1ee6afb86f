"""Error types raised inside the assistant pipeline."""

from __future__ import annotations


class FinsightAgentError(Exception):
    """Base class for assistant errors."""


class DuplicateToolError(FinsightAgentError, ValueError):
    """Raised by strict registration when a tool name is already taken."""


class ModelUnavailableError(FinsightAgentError):
    """Raised when no chat model is configured."""


class ModelCallError(FinsightAgentError):
    """Raised when a chat model call fails or times out."""


class MarketDataError(FinsightAgentError):
    """Raised when a market data endpoint cannot produce JSON."""


class SynthesisError(FinsightAgentError):
    """Raised when the primary answer cannot be generated."""
