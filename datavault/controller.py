"""Account handling and entry operations of a data vault."""

from __future__ import annotations

import hmac
import os

from .cipher import (
    BLOCK_SIZE,
    DATA_IV_OFFSET,
    DATA_KEY_IV_OFFSET,
    KEK_SALT_OFFSET,
    KEY_LEN,
    RANDOM_LEN,
    USER_PWD_SALT_OFFSET,
    CtrCipher,
    ctr_transform,
    derive_kek,
    hash_password,
)
from .entries import DataFile
from .persistence import (
    DATA_FILE,
    DATA_TMP_FILE,
    DK_FILE,
    IV_FILE,
    PWD_FILE,
    VaultStorage,
)
from .state import (
    FileMissingError,
    InvalidInputError,
    LoggedOutError,
    VaultError,
    VaultState,
)

_MAX_CATEGORY_ID = 0xFF


def _as_bytes(value: bytes | str | None) -> bytes:
    if value is None:
        return b""
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


def _salt(random: bytes, offset: int) -> bytes:
    return bytes(random[offset : offset + BLOCK_SIZE])


class DataVault:
    """A user's encrypted vault: accounts, sessions and categorised entry data."""

    def __init__(self, home: str | os.PathLike[str] | None = None, debug: bool = False) -> None:
        self.storage = VaultStorage(home)
        self.state = VaultState()
        self.debug = debug
        self._cipher: CtrCipher | None = None

    def _trace(self, label: str, data: bytes) -> None:
        if self.debug:
            print(f"{label}: {bytes(data).hex()}")

    def _write(self, name: str, data: bytes) -> None:
        try:
            self.storage.path(name).write_bytes(data)
        except OSError as exc:
            raise FileMissingError(f"cannot write {self.storage.path(name)}") from exc

    def _read(self, name: str) -> bytes:
        try:
            return self.storage.path(name).read_bytes()
        except OSError as exc:
            raise FileMissingError(f"cannot read {self.storage.path(name)}") from exc

    def _kill(self) -> None:
        self.state.reset()
        self._cipher = None

    def _require_login(self) -> None:
        if not self.state.logged_in or self._cipher is None:
            raise LoggedOutError("no vault is logged in")

    def _data_file(self) -> DataFile:
        assert self._cipher is not None and self.state.random is not None
        return DataFile(
            self.storage.path(DATA_FILE),
            self.storage.path(DATA_TMP_FILE),
            self._cipher,
            _salt(self.state.random, DATA_IV_OFFSET),
        )

    def create_account(self, username: str, password: bytes | str) -> None:
        """Create the files of a new vault for ``username`` protected by ``password``."""
        self.storage.set_user_directory(username)
        secret = _as_bytes(password)
        if not secret:
            raise InvalidInputError("password is required")

        random = os.urandom(RANDOM_LEN)
        self.storage.init_files(random)

        user_salt = _salt(random, USER_PWD_SALT_OFFSET)
        digest = hash_password(secret, user_salt)
        self._write(PWD_FILE, digest)

        data_key = os.urandom(KEY_LEN)
        kek_salt = _salt(random, KEK_SALT_OFFSET)
        kek = derive_kek(secret, kek_salt)
        data_key_iv = _salt(random, DATA_KEY_IV_OFFSET)
        encrypted_key = ctr_transform(kek, data_key_iv, data_key)
        self._write(DK_FILE, encrypted_key)

        self._trace("userPwd", secret)
        self._trace("userPwdSalt", user_salt)
        self._trace("userPwdHash", digest)
        self._trace("dataKey", data_key)
        self._trace("kekSalt", kek_salt)
        self._trace("kek", kek)
        self._trace("dataKeyIV", data_key_iv)
        self._trace("encDataKey", encrypted_key)

    def login(self, username: str, password: bytes | str) -> None:
        """Open ``username``'s vault, checking ``password`` and loading its maps."""
        if self.debug:
            print(f"Logging in for {username}")
        self._kill()
        try:
            self._open(username, _as_bytes(password))
        except BaseException:
            self._kill()
            raise
        self.state.logged_in = True

    def _open(self, username: str, secret: bytes) -> None:
        self.storage.set_user_directory(username)
        random = self._read(IV_FILE)
        if len(random) < RANDOM_LEN:
            raise FileMissingError(f"{self.storage.path(IV_FILE)} is truncated")
        self.state.random = random

        user_salt = _salt(random, USER_PWD_SALT_OFFSET)
        digest = hash_password(secret, user_salt)
        expected = self._read(PWD_FILE)[: len(digest)]
        if not hmac.compare_digest(digest, expected):
            raise InvalidInputError("wrong password")

        kek_salt = _salt(random, KEK_SALT_OFFSET)
        kek = derive_kek(secret, kek_salt)
        encrypted_key = self._read(DK_FILE)[:KEY_LEN]
        if len(encrypted_key) != KEY_LEN:
            raise FileMissingError(f"{self.storage.path(DK_FILE)} is truncated")
        data_key_iv = _salt(random, DATA_KEY_IV_OFFSET)
        data_key = ctr_transform(kek, data_key_iv, encrypted_key)
        self.state.data_key = data_key
        self._cipher = CtrCipher(data_key)

        self.storage.load(self.state, self._cipher)

        self._trace("userPwd", secret)
        self._trace("userPwdSalt", user_salt)
        self._trace("userPwdHash", digest)
        self._trace("expectedHash", expected)
        self._trace("kekSalt", kek_salt)
        self._trace("kek", kek)
        self._trace("encDataKey", encrypted_key)
        self._trace("dataKeyIV", data_key_iv)
        self._trace("decDataKey", data_key)

    def logout(self) -> None:
        """Save the maps of the open vault and forget its keys."""
        if self.state.logged_in and self._cipher is not None:
            self.storage.save(self.state, self._cipher)
        self._kill()

    def create_entry(self, name: str) -> int:
        """Create an empty entry called ``name`` and return its id."""
        self._require_login()
        if name in self.state.name_ids:
            raise InvalidInputError(f"entry {name!r} already exists")

        index = self._data_file().append_empty_block()
        self.state.max_entry_id += 1
        entry_id = self.state.max_entry_id
        self.state.name_ids[name] = entry_id
        self.state.start_indices[entry_id] = index

        if self.debug:
            print(f"entryId: {entry_id}")
            print(f"blockIdx: {index}")
        return entry_id

    def _category_id(self, category: str) -> int:
        category_id = self.state.category_ids.get(category)
        if category_id:
            return category_id
        if self.state.max_category_id >= _MAX_CATEGORY_ID:
            raise InvalidInputError("no category ids left")
        self.state.max_category_id += 1
        self.state.category_ids[category] = self.state.max_category_id
        return self.state.max_category_id

    def create_entry_data(self, name: str, category: str, data: bytes | str) -> None:
        """Add ``data`` under ``category`` to entry ``name``, creating both if needed."""
        self._require_login()
        entry_id = self.state.name_ids.get(name) or self.create_entry(name)
        category_id = self._category_id(category)
        start = self.state.start_indices.get(entry_id, 0)

        if self.debug:
            print(f"Entry id for {name}: {entry_id}")
            print(f"Category id for {category}: {category_id}")
            self._trace("data", _as_bytes(data) + b"\0")

        self._data_file().write_entry_data(start, category_id, data)

    def _lookup(self, name: str, category: str) -> tuple[int, int]:
        entry_id = self.state.name_ids.get(name)
        if not entry_id:
            raise InvalidInputError(f"no entry {name!r}")
        category_id = self.state.category_ids.get(category)
        if not category_id:
            raise InvalidInputError(f"no category {category!r}")
        if self.debug:
            print(f"Entry id for {name}: {entry_id}")
            print(f"Category id for {category}: {category_id}")
        return entry_id, category_id

    def delete_entry_data(self, name: str, category: str) -> None:
        """Remove the ``category`` record of entry ``name``."""
        self._require_login()
        entry_id, category_id = self._lookup(name, category)
        start = self.state.start_indices.get(entry_id, 0)
        self.state.start_indices = self._data_file().delete_entry_data(
            start, category_id, self.state.start_indices
        )

    def set_entry_data(self, name: str, category: str, data: bytes | str) -> None:
        """Replace the ``category`` record of entry ``name`` with ``data``."""
        try:
            self.delete_entry_data(name, category)
        except VaultError:
            pass
        self.create_entry_data(name, category, data)

    def access_entry_data(self, name: str, category: str) -> str:
        """Return the ``category`` record of entry ``name``."""
        self._require_login()
        entry_id, category_id = self._lookup(name, category)
        start = self.state.start_indices.get(entry_id, 0)
        return self._data_file().read_entry_data(start, category_id).decode("utf-8")

    def print_data_file(self) -> str:
        """Print and return every data block in encrypted and decrypted form."""
        self._require_login()
        text = self._data_file().dump()
        print(text, end="")
        return text