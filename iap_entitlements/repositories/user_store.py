"""User store - entitlement fields of user records.

The full user record belongs to the account module; this store models
only what entitlement transitions read and write.
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

from iap_entitlements.exceptions import UserNotFoundError
from iap_entitlements.models.subscription import utc_now
from iap_entitlements.models.user import AccountTier, UpdateUserEntitlementData, User


class UserRepository(ABC):
    """Storage contract for user entitlement fields."""

    @abstractmethod
    def find_by_id(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    def create(self, user: User) -> User: ...

    @abstractmethod
    def update(self, user_id: str, data: UpdateUserEntitlementData) -> User:
        """Write the explicitly set entitlement fields.

        Raises:
            UserNotFoundError: If the user does not exist
        """


class InMemoryUserStore(UserRepository):
    """Thread-safe in-memory user repository."""

    def __init__(self):
        self._users: Dict[str, User] = {}
        self._lock = threading.RLock()

    def find_by_id(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy() if user else None

    def create(self, user: User) -> User:
        with self._lock:
            if user.id in self._users:
                raise ValueError(f"User with id '{user.id}' already exists")
            self._users[user.id] = user.model_copy()
            return user.model_copy()

    def get_or_create(self, user_id: str) -> User:
        """Return the user, creating a free-tier record on first sight."""
        with self._lock:
            existing = self._users.get(user_id)
            if existing is not None:
                return existing.model_copy()
            return self.create(User(id=user_id, account_tier=AccountTier.FREE))

    def update(self, user_id: str, data: UpdateUserEntitlementData) -> User:
        with self._lock:
            existing = self._users.get(user_id)
            if existing is None:
                raise UserNotFoundError(f"User not found: {user_id}")

            changes = {field: getattr(data, field) for field in data.model_fields_set}
            changes["updated_at"] = utc_now()
            updated = existing.model_copy(update=changes)
            self._users[user_id] = updated
            return updated.model_copy()

    def count(self) -> int:
        with self._lock:
            return len(self._users)

    def clear(self) -> None:
        with self._lock:
            self._users.clear()

    def __len__(self) -> int:
        return self.count()

    def __repr__(self) -> str:
        return f"InMemoryUserStore(users={self.count()})"


_store_instance: Optional[InMemoryUserStore] = None
_store_lock = threading.Lock()


def get_user_store() -> InMemoryUserStore:
    """Get global user store instance (singleton)."""
    global _store_instance
    if _store_instance is None:
        with _store_lock:
            if _store_instance is None:
                _store_instance = InMemoryUserStore()
    return _store_instance


def reset_user_store() -> None:
    """Reset global user store (clears all data)."""
    get_user_store().clear()
