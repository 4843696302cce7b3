"""Tests for the account lookup collaborator."""

from __future__ import annotations

import json

import pytest

from trustbridge.core.exceptions import ValidationException
from trustbridge.discovery.accounts import Account, AccountLookup, InMemoryAccountStore


class TestAccount:
    def test_round_trip(self):
        account = Account("alice", "A", email="alice@uni-a.example", name="Alice", attributes={"dept": "physics"})
        assert Account.from_dict(account.to_dict()) == account

    def test_missing_field(self):
        with pytest.raises(ValidationException) as exc_info:
            Account.from_dict({"user_identifier": "alice"})
        assert exc_info.value.field == "home_provider_id"


class TestInMemoryAccountStore:
    def test_is_account_lookup(self):
        assert isinstance(InMemoryAccountStore(), AccountLookup)

    def test_lookup_by_id_and_email(self):
        store = InMemoryAccountStore([Account("alice", "A", email="Alice@Uni-A.example")])

        assert store.get_account("alice").home_provider_id == "A"
        assert store.get_account("Alice") is None
        assert store.get_account_by_email("ALICE@uni-a.example").user_identifier == "alice"

    def test_replacing_account_updates_email_index(self):
        store = InMemoryAccountStore([Account("alice", "A", email="old@uni-a.example")])
        store.add(Account("alice", "B", email="new@uni-b.example"))

        assert store.get_account_by_email("old@uni-a.example") is None
        assert store.get_account_by_email("new@uni-b.example").home_provider_id == "B"
        assert len(store) == 1

    def test_remove(self):
        store = InMemoryAccountStore([Account("alice", "A", email="alice@uni-a.example")])

        assert store.remove("alice") is True
        assert store.remove("alice") is False
        assert store.get_account_by_email("alice@uni-a.example") is None

    def test_from_file(self, tmp_path):
        path = tmp_path / "accounts.json"
        path.write_text(
            json.dumps(
                [
                    {"user_identifier": "alice", "home_provider_id": "A", "email": "alice@uni-a.example"},
                    {"user_identifier": "bob", "home_provider_id": "B", "attributes": {"level": 2}},
                ]
            )
        )

        store = InMemoryAccountStore.from_file(path)

        assert len(store) == 2
        assert store.get_account("bob").attributes == {"level": "2"}

    def test_from_file_not_a_list(self, tmp_path):
        path = tmp_path / "accounts.json"
        path.write_text('{"alice": "A"}')

        with pytest.raises(ValidationException, match="JSON array"):
            InMemoryAccountStore.from_file(path)
