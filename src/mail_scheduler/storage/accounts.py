"""JSON-file backed mail account store."""

from __future__ import annotations

import logging
import secrets
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from ..core.config import SmtpSettings
from ..core.datetime_utils import utc_now
from ..core.interfaces import AccountNotFoundError, AccountProvider
from ..core.models import MailAccount
from .json_file import read_json, write_json
from .serialization import account_from_dict, account_to_dict

LOGGER = logging.getLogger(__name__)

LEGACY_ACCOUNT_ID = "legacy-smtp"

_UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "host",
        "port",
        "user",
        "password",
        "sender_name",
        "subject_prefix",
        "secure",
    }
)


@dataclass(slots=True)
class AccountParams:
    """Fields required to register a new account."""

    name: str
    host: str
    port: int
    user: str
    password: str
    sender_name: str = ""
    subject_prefix: str = ""
    secure: bool = True
    is_default: bool | None = None


class JsonAccountStore(AccountProvider):
    """Manage SMTP accounts and the default-account pointer.

    When the store is empty, settings from the ``smtp`` configuration section
    act as an implicit default account.
    """

    def __init__(
        self,
        path: Path | str,
        *,
        legacy: SmtpSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Bind the store to ``path`` with an optional legacy fallback."""
        self._path = Path(path)
        self._legacy = legacy
        self._clock = clock
        self._lock = threading.RLock()

    # Lookup -----------------------------------------------------------------
    def list_accounts(self) -> list[MailAccount]:
        """Return stored accounts in insertion order."""
        accounts, _ = self._load()
        return accounts

    def get_account(self, account_id: str) -> MailAccount | None:
        """Return the account with ``account_id``, including the legacy one."""
        accounts, _ = self._load()
        for account in accounts:
            if account.id == account_id:
                return account
        if account_id == LEGACY_ACCOUNT_ID:
            return self._legacy_account()
        return None

    def get_default_account(self) -> MailAccount | None:
        """Return the configured default, else the first account, else legacy."""
        accounts, default_id = self._load()
        if default_id:
            for account in accounts:
                if account.id == default_id:
                    return account
        if accounts:
            return accounts[0]
        return self._legacy_account()

    def resolve(self, account_id: str | None) -> MailAccount:
        """Return the named account or the default one.

        Raises:
            AccountNotFoundError: If nothing matches.
        """
        if account_id:
            account = self.get_account(account_id)
            if account is None:
                raise AccountNotFoundError(f"Mail account not found: {account_id}")
            return account
        account = self.get_default_account()
        if account is None:
            raise AccountNotFoundError("No mail account configured")
        return account

    # Mutation ---------------------------------------------------------------
    def create_account(self, params: AccountParams) -> MailAccount:
        """Register a new account; the first account becomes the default."""
        with self._lock:
            accounts, default_id = self._load()
            now = self._clock()
            is_default = params.is_default if params.is_default is not None else not accounts
            account = MailAccount(
                id=f"account_{secrets.token_hex(6)}",
                name=params.name,
                host=params.host,
                port=params.port,
                user=params.user,
                password=params.password,
                sender_name=params.sender_name,
                subject_prefix=params.subject_prefix,
                secure=params.secure,
                is_default=is_default,
                created_at=now,
                updated_at=now,
            )
            if is_default:
                for existing in accounts:
                    existing.is_default = False
                default_id = account.id
            accounts.append(account)
            self._save(accounts, default_id)
        LOGGER.info("Created mail account %s (%s)", account.name, account.id)
        return account

    def update_account(self, account_id: str, **changes: Any) -> MailAccount | None:
        """Apply the supplied field changes. Returns ``None`` if not found."""
        unknown = set(changes) - _UPDATABLE_FIELDS - {"is_default"}
        if unknown:
            raise ValueError(f"Unknown account field(s): {', '.join(sorted(unknown))}")
        with self._lock:
            accounts, default_id = self._load()
            account = next((a for a in accounts if a.id == account_id), None)
            if account is None:
                return None
            for name, value in changes.items():
                if name in _UPDATABLE_FIELDS and value is not None:
                    setattr(account, name, value)
            if changes.get("is_default"):
                for existing in accounts:
                    existing.is_default = existing.id == account_id
                default_id = account_id
            account.updated_at = self._clock()
            self._save(accounts, default_id)
        LOGGER.info("Updated mail account %s (%s)", account.name, account.id)
        return account

    def delete_account(self, account_id: str) -> bool:
        """Remove an account, re-electing a default when needed."""
        with self._lock:
            accounts, default_id = self._load()
            remaining = [a for a in accounts if a.id != account_id]
            if len(remaining) == len(accounts):
                return False
            if default_id == account_id or default_id is None:
                default_id = remaining[0].id if remaining else None
                for existing in remaining:
                    existing.is_default = existing.id == default_id
            self._save(remaining, default_id)
        LOGGER.info("Deleted mail account %s", account_id)
        return True

    def set_default_account(self, account_id: str) -> bool:
        """Mark ``account_id`` as the default account."""
        with self._lock:
            accounts, _ = self._load()
            if not any(a.id == account_id for a in accounts):
                return False
            for existing in accounts:
                existing.is_default = existing.id == account_id
            self._save(accounts, account_id)
        LOGGER.info("Default mail account set to %s", account_id)
        return True

    # Persistence ------------------------------------------------------------
    def _load(self) -> tuple[list[MailAccount], str | None]:
        with self._lock:
            raw = read_json(self._path, {})
        if not isinstance(raw, dict):
            LOGGER.warning("Account file %s is malformed; ignoring", self._path)
            return [], None
        accounts: list[MailAccount] = []
        for entry in raw.get("accounts") or ():
            try:
                accounts.append(account_from_dict(entry))
            except (KeyError, TypeError, ValueError) as exc:
                LOGGER.warning("Skipping unreadable account entry: %s", exc)
        default_id = raw.get("defaultAccountId")
        return accounts, default_id if isinstance(default_id, str) else None

    def _save(self, accounts: list[MailAccount], default_id: str | None) -> None:
        payload = {
            "accounts": [account_to_dict(account) for account in accounts],
            "defaultAccountId": default_id,
        }
        write_json(self._path, payload)

    def _legacy_account(self) -> MailAccount | None:
        legacy = self._legacy
        if legacy is None or not legacy.host or not legacy.username:
            return None
        return MailAccount(
            id=LEGACY_ACCOUNT_ID,
            name=legacy.sender_name or legacy.username,
            host=legacy.host,
            port=legacy.port,
            user=legacy.username,
            password=legacy.password or "",
            sender_name=legacy.sender_name,
            subject_prefix=legacy.subject_prefix,
            secure=legacy.use_ssl,
            is_default=True,
        )


__all__ = ["AccountParams", "JsonAccountStore", "LEGACY_ACCOUNT_ID"]
