"""On-disk layout of a vault: file names, map encodings and load/save."""

from __future__ import annotations

import os
import shutil
from pathlib import Path

from .cipher import (
    BLOCK_SIZE,
    CAT_ID_IV_OFFSET,
    ID_IDX_IV_OFFSET,
    NAME_ID_IV_OFFSET,
    RANDOM_LEN,
    CtrCipher,
)
from .state import FileMissingError, InvalidInputError, VaultState

IV_FILE = "iv.dv"
DATA_FILE = "data.dv"
NAME_ID_MAP_FILE = "nameIdMap.dv"
ID_IDX_MAP_FILE = "idIdxMap.dv"
CATEGORY_ID_MAP_FILE = "catIdMap.dv"
PWD_FILE = "pwd.dv"
DK_FILE = "dk.dv"
DATA_TMP_FILE = "data_tmp.dv"

# Files that make up a vault; the temporary data file is only ever deleted.
VAULT_FILES = (
    IV_FILE,
    DATA_FILE,
    NAME_ID_MAP_FILE,
    ID_IDX_MAP_FILE,
    CATEGORY_ID_MAP_FILE,
    PWD_FILE,
    DK_FILE,
)
ALL_FILES = VAULT_FILES + (DATA_TMP_FILE,)

ENTRY_ID_SIZE = 4
CATEGORY_ID_SIZE = 1
_INDEX_ID_SIZE = 4
_INDEX_IDX_SIZE = 2
_INDEX_RECORD = _INDEX_ID_SIZE + _INDEX_IDX_SIZE


def _low_bytes(value: int, size: int) -> bytes:
    return (value & ((1 << (8 * size)) - 1)).to_bytes(size, "little")


def encode_name_map(mapping: dict[str, int], id_size: int) -> bytes:
    """Serialise name -> id pairs as ``name NUL id`` with a little-endian id."""
    return b"".join(
        name.encode("utf-8") + b"\0" + _low_bytes(ident, id_size)
        for name, ident in sorted(mapping.items())
    )


def decode_name_map(data: bytes, id_size: int) -> dict[str, int]:
    """Parse the output of :func:`encode_name_map`."""
    result: dict[str, int] = {}
    start = 0
    while True:
        end = data.find(b"\0", start)
        if end < 0:
            break
        id_bytes = data[end + 1 : end + 1 + id_size]
        if len(id_bytes) != id_size:
            raise ValueError("truncated name map record")
        result[data[start:end].decode("utf-8")] = int.from_bytes(id_bytes, "little")
        start = end + 1 + id_size
    return result


def encode_index_map(mapping: dict[int, int]) -> bytes:
    """Serialise entry id -> start block as 4-byte id and 2-byte block, ordered by id."""
    return b"".join(
        _low_bytes(ident, _INDEX_ID_SIZE) + _low_bytes(idx, _INDEX_IDX_SIZE)
        for ident, idx in sorted(mapping.items())
    )


def decode_index_map(data: bytes) -> dict[int, int]:
    """Parse the output of :func:`encode_index_map`."""
    if len(data) % _INDEX_RECORD:
        raise ValueError("truncated index map record")
    result: dict[int, int] = {}
    for pos in range(0, len(data), _INDEX_RECORD):
        ident = int.from_bytes(data[pos : pos + _INDEX_ID_SIZE], "little")
        idx = int.from_bytes(data[pos + _INDEX_ID_SIZE : pos + _INDEX_RECORD], "little")
        result[ident] = idx
    return result


class VaultStorage:
    """Locates the files of one user's vault and reads and writes its maps."""

    def __init__(self, home: str | os.PathLike[str] | None = None) -> None:
        self.home = Path(home) if home is not None else Path(".")
        self.directory = self.home

    def path(self, name: str) -> Path:
        """Full path of a vault file in the current user directory."""
        return self.directory / name

    def set_user_directory(self, user: str) -> Path:
        """Select (creating if needed) the directory holding ``user``'s vault."""
        if not user:
            raise InvalidInputError("user name is required")
        directory = self.home / user
        if not directory.is_dir():
            print(f"Creating directory {directory}")
            directory.mkdir(parents=True, exist_ok=True)
        self.directory = directory
        return directory

    def init_files(self, random: bytes) -> None:
        """Create empty map files and write the salts/IVs and data header."""
        if len(random) < RANDOM_LEN:
            raise InvalidInputError(f"random material must be {RANDOM_LEN} bytes")
        try:
            for name in (NAME_ID_MAP_FILE, ID_IDX_MAP_FILE, CATEGORY_ID_MAP_FILE):
                self.path(name).write_bytes(b"")
            self.path(IV_FILE).write_bytes(bytes(random[:RANDOM_LEN]))
            self.path(DATA_FILE).write_bytes(bytes(random[:BLOCK_SIZE]))
        except OSError as exc:
            raise FileMissingError(str(exc)) from exc

    def _resolve(self, directory: str | os.PathLike[str] | None) -> Path:
        if directory is None or not str(directory):
            return self.directory
        return self.directory / directory

    def copy_files(
        self,
        dst_dir: str | os.PathLike[str] | None,
        src_dir: str | os.PathLike[str] | None,
    ) -> None:
        """Copy every vault file that exists from ``src_dir`` to ``dst_dir``."""
        src = self._resolve(src_dir)
        dst = self._resolve(dst_dir)
        dst.mkdir(parents=True, exist_ok=True)
        for name in VAULT_FILES:
            source = src / name
            if source.is_file():
                shutil.copyfile(source, dst / name)

    def delete_files(self) -> None:
        """Remove all vault files, ignoring those that are absent."""
        for name in ALL_FILES:
            try:
                self.path(name).unlink()
            except FileNotFoundError:
                pass

    @staticmethod
    def _iv(state: VaultState, offset: int) -> bytes:
        if state.random is None or len(state.random) < offset + BLOCK_SIZE:
            raise InvalidInputError("vault salts and IVs are not loaded")
        return bytes(state.random[offset : offset + BLOCK_SIZE])

    def _read(self, name: str, state: VaultState, cipher: CtrCipher, offset: int) -> bytes:
        try:
            encrypted = self.path(name).read_bytes()
        except OSError as exc:
            raise FileMissingError(f"cannot read {self.path(name)}") from exc
        if not encrypted:
            return b""
        return cipher.decrypt(encrypted, self._iv(state, offset))

    def _write(
        self, name: str, state: VaultState, cipher: CtrCipher, offset: int, plain: bytes
    ) -> None:
        encrypted = cipher.encrypt(plain, self._iv(state, offset))
        try:
            self.path(name).write_bytes(encrypted)
        except OSError as exc:
            raise FileMissingError(f"cannot write {self.path(name)}") from exc

    def load(self, state: VaultState, cipher: CtrCipher) -> None:
        """Decrypt the three map files into ``state``."""
        state.name_ids = {}
        state.start_indices = {}
        state.category_ids = {}

        plain = self._read(NAME_ID_MAP_FILE, state, cipher, NAME_ID_IV_OFFSET)
        state.name_ids = decode_name_map(plain, ENTRY_ID_SIZE)

        plain = self._read(ID_IDX_MAP_FILE, state, cipher, ID_IDX_IV_OFFSET)
        state.start_indices = decode_index_map(plain)
        state.max_entry_id = max([state.max_entry_id, *state.start_indices])

        plain = self._read(CATEGORY_ID_MAP_FILE, state, cipher, CAT_ID_IV_OFFSET)
        state.category_ids = decode_name_map(plain, CATEGORY_ID_SIZE)
        state.max_category_id = max([state.max_category_id, *state.category_ids.values()])

    def save(self, state: VaultState, cipher: CtrCipher) -> None:
        """Encrypt the three maps of ``state`` into their files."""
        self._write(
            NAME_ID_MAP_FILE, state, cipher, NAME_ID_IV_OFFSET,
            encode_name_map(state.name_ids, ENTRY_ID_SIZE),
        )
        self._write(
            ID_IDX_MAP_FILE, state, cipher, ID_IDX_IV_OFFSET,
            encode_index_map(state.start_indices),
        )
        self._write(
            CATEGORY_ID_MAP_FILE, state, cipher, CAT_ID_IV_OFFSET,
            encode_name_map(state.category_ids, CATEGORY_ID_SIZE),
        )