"""tessera-schemas: Pydantic models shared across tessera packages."""

__version__ = "0.1.0"
