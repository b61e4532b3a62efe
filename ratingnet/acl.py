"""
RatingNet Ciphertext Access Control

Append-only relation `allow: handle x principal -> Permission`. A principal
holding a permission on a handle may ask the decryption oracle for its
cleartext; a contract holding one may keep computing on it across
transitions. Permissions are never inherited from operand handles and can
never be revoked.

The oracle consults this relation directly at decryption time; nothing here
is cached on the client side.
"""

import threading
import time
from dataclasses import dataclass
from typing import Dict, FrozenSet, Set, Tuple

from .encoding import normalize_address
from .fhe import CiphertextHandle


@dataclass(frozen=True)
class Permission:
    """Capability token: `principal` may use `handle`."""
    handle: str
    principal: str
    granted_at: float


class ACLManager:
    """
    Authoritative store of handle permissions.

    Thread-safe. `allow` is idempotent: granting an existing pair returns the
    original token unchanged.
    """

    def __init__(self):
        self._entries: Dict[Tuple[str, str], Permission] = {}
        self._by_handle: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    def allow(self, handle: CiphertextHandle, principal: str) -> Permission:
        principal = normalize_address(principal)
        key = (handle.value, principal)
        with self._lock:
            existing = self._entries.get(key)
            if existing is not None:
                return existing
            permission = Permission(handle=handle.value, principal=principal, granted_at=time.time())
            self._entries[key] = permission
            self._by_handle.setdefault(handle.value, set()).add(principal)
            return permission

    def is_allowed(self, handle: CiphertextHandle, principal: str) -> bool:
        with self._lock:
            return (handle.value, principal.lower()) in self._entries

    def principals(self, handle: CiphertextHandle) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._by_handle.get(handle.value, ()))

    def bind(self, contract_address: str) -> "ContractACL":
        """View of this ACL acting on behalf of one contract."""
        return ContractACL(self, contract_address)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class ContractACL:
    """ACL operations issued by a specific contract (the engine)."""

    def __init__(self, acl: ACLManager, contract_address: str):
        self.acl = acl
        self.address = normalize_address(contract_address)

    def allow(self, handle: CiphertextHandle, principal: str) -> Permission:
        return self.acl.allow(handle, principal)

    def allow_this(self, handle: CiphertextHandle) -> Permission:
        """Grant the bound contract standing permission over `handle`."""
        return self.acl.allow(handle, self.address)
