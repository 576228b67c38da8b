"""Local collaborators: sync state, session contexts and credentials."""

from ._io import write_json
from .auth import CredentialStore
from .contexts import ContextStore
from .state import StateStore

__all__ = ["ContextStore", "CredentialStore", "StateStore", "write_json"]
