"""Storage layer for workflow graphs and instances."""

from nodeflow.storage.repository import SQLiteWorkflowStore, InMemoryWorkflowStore

__all__ = ["SQLiteWorkflowStore", "InMemoryWorkflowStore"]
