"""tessera-io: Service transport, document and sink adapters for tessera."""

from tessera_io.document import InMemoryDocument, TextFileDocument
from tessera_io.transport import HttpStreamTransport

__version__ = "0.1.0"

__all__ = ["HttpStreamTransport", "InMemoryDocument", "TextFileDocument"]
