from .documents import FirestoreService, InMemoryDocumentStore
from .identity import IdentityService

__all__ = ["FirestoreService", "IdentityService", "InMemoryDocumentStore"]
