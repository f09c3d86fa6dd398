"""
Graph persistence: Neo4j store and batched page writer.
"""

from .persistence import PersistenceLayer, SaveResult
from .store import Neo4jGraphStore

__all__ = ["Neo4jGraphStore", "PersistenceLayer", "SaveResult"]
