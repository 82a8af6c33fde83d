"""Trigger-based memory capture, storage, and life-document sync."""

from threadbridge.memory.context import ContextBuilder
from threadbridge.memory.extractor import detect_category, extract
from threadbridge.memory.models import CaptureResult, Extraction, ExtractionResult, StoredMemory, SyncResult
from threadbridge.memory.store import MemoryStore
from threadbridge.memory.sweep import ThreadSweeper
from threadbridge.memory.sync import LifeDocSync

__all__ = [
    "CaptureResult",
    "ContextBuilder",
    "Extraction",
    "ExtractionResult",
    "LifeDocSync",
    "MemoryStore",
    "StoredMemory",
    "SyncResult",
    "ThreadSweeper",
    "detect_category",
    "extract",
]
