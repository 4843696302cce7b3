"""Account lookup collaborator.

The hosting identity server owns user storage; the discovery cache only
needs to ask where a user's account lives. InMemoryAccountStore is the
bundled implementation used by the CLI, the backchannel server and tests.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from ..core.exceptions import ValidationException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Account:
    """A user account as seen by federation routing."""

    user_identifier: str
    home_provider_id: str
    email: str | None = None
    name: str | None = None
    attributes: dict[str, str] = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_identifier": self.user_identifier,
            "home_provider_id": self.home_provider_id,
            "email": self.email,
            "name": self.name,
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Account:
        try:
            return cls(
                user_identifier=data["user_identifier"],
                home_provider_id=data["home_provider_id"],
                email=data.get("email"),
                name=data.get("name"),
                attributes={k: str(v) for k, v in (data.get("attributes") or {}).items()},
            )
        except KeyError as e:
            raise ValidationException(f"Account is missing required field {e.args[0]!r}", field=e.args[0]) from e


@runtime_checkable
class AccountLookup(Protocol):
    """Where does this user's account live?"""

    def get_account(self, user_identifier: str) -> Account | None: ...

    def get_account_by_email(self, email: str) -> Account | None: ...


class InMemoryAccountStore:
    """Thread-safe in-memory AccountLookup.

    E-mail lookups are case-insensitive; user identifiers are matched
    exactly.
    """

    def __init__(self, accounts: list[Account] | None = None):
        self._by_id: dict[str, Account] = {}
        self._by_email: dict[str, Account] = {}
        self._lock = threading.Lock()
        for account in accounts or []:
            self.add(account)

    def add(self, account: Account) -> None:
        with self._lock:
            previous = self._by_id.get(account.user_identifier)
            if previous is not None and previous.email:
                self._by_email.pop(previous.email.lower(), None)
            self._by_id[account.user_identifier] = account
            if account.email:
                self._by_email[account.email.lower()] = account

    def remove(self, user_identifier: str) -> bool:
        with self._lock:
            account = self._by_id.pop(user_identifier, None)
            if account is None:
                return False
            if account.email:
                self._by_email.pop(account.email.lower(), None)
            return True

    def get_account(self, user_identifier: str) -> Account | None:
        return self._by_id.get(user_identifier)

    def get_account_by_email(self, email: str) -> Account | None:
        return self._by_email.get(email.lower())

    def __len__(self) -> int:
        return len(self._by_id)

    @classmethod
    def from_file(cls, path: str | Path) -> InMemoryAccountStore:
        """Load accounts from a JSON file holding a list of account objects."""
        path = Path(path)
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise ValidationException(f"{path} must contain a JSON array of accounts")
        store = cls([Account.from_dict(item) for item in data])
        logger.info(f"Loaded {len(store)} account(s) from {path}")
        return store
