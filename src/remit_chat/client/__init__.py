# src/remit_chat/client/__init__.py
"""Client-side key management, hybrid encryption and API access."""

from .api import ChatApiError, ChatClient
from .cipher import DecryptedMessage, DecryptionError, EncryptedPair, EncryptionError, decrypt, decrypt_or_placeholder, encrypt
from .identity import ChatIdentity, IdentityStore, KeyPair

__all__ = [
    "ChatApiError",
    "ChatClient",
    "ChatIdentity",
    "DecryptedMessage",
    "DecryptionError",
    "EncryptedPair",
    "EncryptionError",
    "IdentityStore",
    "KeyPair",
    "decrypt",
    "decrypt_or_placeholder",
    "encrypt",
]
