"""Soroban RPC event source."""

from __future__ import annotations

from .client import EventSource, SorobanRpcClient, SorobanRpcConfig
from .errors import SorobanResponseShapeError, SorobanRpcError
from .models import EventPage, RawContractEvent

__all__ = [
    "EventPage",
    "EventSource",
    "RawContractEvent",
    "SorobanResponseShapeError",
    "SorobanRpcClient",
    "SorobanRpcConfig",
    "SorobanRpcError",
]
