"""Chat transcripts: the persistence protocol and its in-memory and SQLite implementations."""

from nexus.session.store import PersistentTranscript, SQLiteTranscriptStore
from nexus.session.transcript import InMemoryTranscript, Transcript

__all__ = [
    "InMemoryTranscript",
    "PersistentTranscript",
    "SQLiteTranscriptStore",
    "Transcript",
]
