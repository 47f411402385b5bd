"""Tallyman: a Soroban loan-event indexer backed by a relational store."""

from __future__ import annotations

__version__ = "0.1.0"
