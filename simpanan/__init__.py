"""Local HTTP workspace for .simp files: in-memory buffers, an event bus and session recovery."""

__version__ = "0.1.0"