from __future__ import annotations

import logging
import sqlite3
import time
from datetime import datetime, timezone

from domain.accounts import ACCOUNT_TYPES, Account, AccountType
from domain.categories import Category
from domain.errors import DomainError
from domain.users import PinCredentials, User
from domain.validation import ensure_hex_color, ensure_text
from storage.context import StorageContext
from storage.mutations import AppliedMutation, Delete, Insert, Mutation, Operation, Update
from storage.replication import ReplicatedWriter
from storage.sqlite_storage import SQLiteStore

logger = logging.getLogger(__name__)


def timestamp_ms() -> int:
    return int(time.time() * 1000)


def pick_fields(updates: dict, columns: dict[str, str]) -> dict[str, object]:
    """Map allowed keyword names to column names, dropping everything else."""
    return {columns[key]: value for key, value in updates.items() if key in columns}


class SQLiteRepository:
    """Reads from the primary store; every write is a replicated mutation."""

    def __init__(self, context: StorageContext, writer: ReplicatedWriter) -> None:
        self._context = context
        self._writer = writer

    @property
    def _store(self) -> SQLiteStore:
        return self._context.primary

    def _write(self, *operations: Operation, label: str = "") -> AppliedMutation:
        return self._writer.with_replicated_write(Mutation.of(*operations, label=label))


class CategoryRepository(SQLiteRepository):
    table = "categories"
    _columns = {"name": "name", "icon": "icon", "hex_color": "hexColor"}

    def list_all(self) -> list[Category]:
        rows = self._store.fetch_all(f"SELECT * FROM {self.table} ORDER BY name")
        return [Category.from_row(row) for row in rows]

    def get_by_id(self, category_id: int) -> Category | None:
        row = self._store.fetch_one(f"SELECT * FROM {self.table} WHERE id = ?", (category_id,))
        return Category.from_row(row) if row is not None else None

    def create(self, *, name: str, icon: str, hex_color: str) -> Category:
        values = {
            "name": ensure_text(name, "name"),
            "icon": icon,
            "hexColor": ensure_hex_color(hex_color),
        }
        applied = self._write(Insert(self.table, values), label=f"create {self.table}")
        logger.info("Category created table=%s name=%s", self.table, values["name"])
        return self.get_by_id(applied.last_row_id)

    def update(self, category_id: int, **fields) -> Category | None:
        values = pick_fields(fields, self._columns)
        if not values:
            return None
        if "hexColor" in values:
            values["hexColor"] = ensure_hex_color(values["hexColor"])
        if "name" in values:
            values["name"] = ensure_text(values["name"], "name")
        self._write(Update(self.table, values, {"id": category_id}), label=f"update {self.table}")
        return self.get_by_id(category_id)

    def delete(self, category_id: int) -> bool:
        applied = self._write(Delete(self.table, {"id": category_id}), label=f"delete {self.table}")
        return applied.rowcount > 0


class IncomeCategoryRepository(CategoryRepository):
    table = "income_categories"


class UserRepository(SQLiteRepository):
    def create(self, *, username: str, password_hash: str, salt: str) -> User:
        """Store a user whose password was hashed by the caller."""
        username = ensure_text(username, "username")
        created_at = datetime.now(timezone.utc).isoformat()
        values = {
            "username": username,
            "passwordHash": ensure_text(password_hash, "password_hash"),
            "salt": ensure_text(salt, "salt"),
            "createdAt": created_at,
        }
        try:
            applied = self._write(Insert("users", values), label="create user")
        except sqlite3.IntegrityError as exc:
            raise DomainError("Username already exists") from exc
        logger.info("User created id=%s username=%s", applied.last_row_id, username)
        return User(id=applied.last_row_id, username=username, created_at=created_at)

    def get_by_username(self, username: str) -> User | None:
        row = self._store.fetch_one(
            "SELECT id, username, passwordHash, salt, createdAt FROM users WHERE username = ?",
            (username,),
        )
        return User.from_row(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        row = self._store.fetch_one(
            "SELECT id, username, createdAt FROM users WHERE id = ?", (user_id,)
        )
        return User.from_row(row) if row is not None else None

    def set_pin(self, user_id: int, *, pin_hash: str, pin_salt: str) -> None:
        self._write(
            Update(
                "users",
                {"pinHash": ensure_text(pin_hash, "pin_hash"), "pinSalt": ensure_text(pin_salt, "pin_salt")},
                {"id": user_id},
                require_match=True,
            ),
            label="set user pin",
        )

    def has_pin(self, user_id: int) -> bool:
        return self._store.scalar("SELECT pinHash FROM users WHERE id = ?", (user_id,)) is not None

    def get_pin_credentials(self, user_id: int) -> PinCredentials | None:
        row = self._store.fetch_one("SELECT pinHash, pinSalt FROM users WHERE id = ?", (user_id,))
        if row is None or row["pinHash"] is None:
            return None
        return PinCredentials(pin_hash=row["pinHash"], pin_salt=row["pinSalt"])


class AccountRepository(SQLiteRepository):
    _columns = {
        "name": "name",
        "type": "type",
        "icon": "icon",
        "hex_color": "hexColor",
        "is_default": "isDefault",
    }

    def list(self, user_id: int) -> list[Account]:
        rows = self._store.fetch_all(
            "SELECT * FROM accounts WHERE userId = ? ORDER BY isDefault DESC, name ASC",
            (user_id,),
        )
        return [Account.from_row(row) for row in rows]

    def get_by_id(self, account_id: int, user_id: int) -> Account | None:
        row = self._store.fetch_one(
            "SELECT * FROM accounts WHERE id = ? AND userId = ?", (account_id, user_id)
        )
        return Account.from_row(row) if row is not None else None

    def get_default(self, user_id: int) -> Account:
        row = self._store.fetch_one(
            "SELECT * FROM accounts WHERE userId = ? AND isDefault = 1", (user_id,)
        )
        if row is None:
            row = self._store.fetch_one(
                "SELECT * FROM accounts WHERE userId = ? ORDER BY id ASC LIMIT 1", (user_id,)
            )
        if row is not None:
            return Account.from_row(row)
        return self.create(
            user_id, name="Cash", type="Cash", icon="💵", hex_color="#4CAF50", is_default=True
        )

    def create(
        self,
        user_id: int,
        *,
        name: str,
        type: str,
        icon: str,
        hex_color: str,
        is_default: bool = False,
    ) -> Account:
        operations: list[Operation] = []
        if is_default:
            operations.append(Update("accounts", {"isDefault": 0}, {"userId": user_id}))
        operations.append(
            Insert(
                "accounts",
                {
                    "name": ensure_text(name, "name"),
                    "type": ensure_text(type, "type"),
                    "userId": user_id,
                    "icon": icon,
                    "hexColor": ensure_hex_color(hex_color),
                    "isDefault": 1 if is_default else 0,
                },
            )
        )
        applied = self._write(*operations, label="create account")
        logger.info("Account created user_id=%s name=%s default=%s", user_id, name, is_default)
        return self.get_by_id(applied.last_row_id, user_id)

    def update(self, account_id: int, user_id: int, **fields) -> Account | None:
        values = pick_fields(fields, self._columns)
        if not values:
            return None
        if "hexColor" in values:
            values["hexColor"] = ensure_hex_color(values["hexColor"])
        operations: list[Operation] = []
        if "isDefault" in values:
            values["isDefault"] = 1 if values["isDefault"] else 0
            if values["isDefault"]:
                operations.append(Update("accounts", {"isDefault": 0}, {"userId": user_id}))
        operations.append(Update("accounts", values, {"id": account_id, "userId": user_id}))
        self._write(*operations, label="update account")
        return self.get_by_id(account_id, user_id)

    def delete(self, account_id: int, user_id: int) -> bool:
        count = int(self._store.scalar("SELECT COUNT(*) FROM accounts WHERE userId = ?", (user_id,)))
        if count <= 1:
            raise DomainError("Cannot delete the last account. At least one account is required.")
        applied = self._write(
            Delete("accounts", {"id": account_id, "userId": user_id}), label="delete account"
        )
        return applied.rowcount > 0

    @staticmethod
    def account_types() -> tuple[AccountType, ...]:
        return ACCOUNT_TYPES
