"""Browser-driven validation harness for an asynchronous settlement backend."""

__version__ = "1.0.0"
