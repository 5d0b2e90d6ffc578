"""Identity matching and descriptor store synchronization"""

from facesense.identity.matcher import UNKNOWN_LABEL, IdentityMatcher
from facesense.identity.repository import (
    InMemoryDescriptorRepository,
    parse_descriptor_payload,
    store_signature
)
from facesense.identity.synchronizer import StoreSynchronizer

__all__ = [
    'UNKNOWN_LABEL',
    'IdentityMatcher',
    'InMemoryDescriptorRepository',
    'StoreSynchronizer',
    'parse_descriptor_payload',
    'store_signature',
]
