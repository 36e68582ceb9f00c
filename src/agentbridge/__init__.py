"""Bridge between chat conversations and a stream-emitting agent backend."""

__version__ = "0.1.0"
