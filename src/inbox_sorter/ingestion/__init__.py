"""Ingestion pipeline components."""

from .fetcher import FetchCriteria, MessageFetcher
from .parser import MessageParser

__all__ = ["FetchCriteria", "MessageFetcher", "MessageParser"]
