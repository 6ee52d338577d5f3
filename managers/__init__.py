# Managers module exports
from managers.credential_manager import CredentialStore, Credentials

__all__ = [
    "CredentialStore",
    "Credentials",
]
