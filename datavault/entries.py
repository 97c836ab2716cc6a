"""Block-structured, encrypted data file holding the records of every entry.

The file starts with one plain header block.  Every following block is
encrypted with AES-256-CTR, block ``i`` using the data IV advanced by ``i``.
A decrypted block carries 14 payload bytes and a 2-byte little-endian link
to the block that continues it (0 when the chain ends there).

The payload of an entry's chain is a sequence of records, each one a
category id byte, the record's text and a NUL terminator.  Unused payload
bytes hold the filler byte 0x22.
"""

from __future__ import annotations

import os
import shutil
from bisect import bisect_left
from math import ceil
from pathlib import Path

from .cipher import BLOCK_SIZE, CtrCipher, increment_counter
from .state import FileMissingError, InvalidInputError, VaultError

PAYLOAD_SIZE = 14
FILLER = 0x22
_LINK_MASK = 0xFFFF


def _link(block: bytes | bytearray) -> int:
    return int.from_bytes(block[PAYLOAD_SIZE:BLOCK_SIZE], "little")


def _set_link(block: bytearray, value: int) -> None:
    block[PAYLOAD_SIZE:BLOCK_SIZE] = (value & _LINK_MASK).to_bytes(
        BLOCK_SIZE - PAYLOAD_SIZE, "little"
    )


def _empty_block() -> bytearray:
    return bytearray([FILLER] * PAYLOAD_SIZE) + bytearray(BLOCK_SIZE - PAYLOAD_SIZE)


def _content_end(block: bytes | bytearray, following: int) -> int:
    """End of the meaningful payload: the last block drops trailing filler."""
    end = PAYLOAD_SIZE
    if not following:
        while end > 0 and block[end - 1]:
            end -= 1
    return end


def _encode(data: bytes | str) -> bytes:
    payload = data.encode("utf-8") if isinstance(data, str) else bytes(data)
    if b"\0" in payload:
        raise InvalidInputError("record data must not contain NUL bytes")
    return payload


def _check_target(start_block: int, category_id: int) -> None:
    if start_block < 1:
        raise InvalidInputError("entry start block must follow the header block")
    if not 1 <= category_id <= 0xFF:
        raise InvalidInputError("category id must be between 1 and 255")


def advance_start_indices(start_indices: dict[int, int], skip_block: int) -> dict[int, int]:
    """Return the map with every start block after ``skip_block`` moved back by one."""
    return {
        entry_id: index - 1 if index > skip_block else index
        for entry_id, index in start_indices.items()
    }


class DataFile:
    """Reads and rewrites the encrypted block chains of the vault's data file."""

    def __init__(
        self,
        path: str | os.PathLike[str],
        tmp_path: str | os.PathLike[str],
        cipher: CtrCipher,
        data_iv: bytes,
    ) -> None:
        data_iv = bytes(data_iv)
        if len(data_iv) != BLOCK_SIZE:
            raise ValueError(f"data IV must be {BLOCK_SIZE} bytes")
        self.path = Path(path)
        self.tmp_path = Path(tmp_path)
        self.cipher = cipher
        self.data_iv = data_iv

    def _iv(self, index: int) -> bytes:
        return increment_counter(self.data_iv, index)

    def _raw(self) -> bytes:
        try:
            return self.path.read_bytes()
        except OSError as exc:
            raise FileMissingError(f"cannot read {self.path}") from exc

    def _load(self) -> list[bytearray]:
        raw = self._raw()
        count = len(raw) // BLOCK_SIZE
        if count == 0:
            raise FileMissingError(f"{self.path} has no header block")
        blocks = [bytearray(raw[:BLOCK_SIZE])]
        if count > 1:
            body = self.cipher.decrypt(raw[BLOCK_SIZE : count * BLOCK_SIZE], self._iv(1))
            blocks.extend(
                bytearray(body[pos : pos + BLOCK_SIZE])
                for pos in range(0, len(body), BLOCK_SIZE)
            )
        return blocks

    def _store(self, blocks: list[bytearray]) -> None:
        body = b"".join(bytes(block) for block in blocks[1:])
        encrypted = self.cipher.encrypt(body, self._iv(1)) if body else b""
        try:
            self.tmp_path.write_bytes(bytes(blocks[0]) + encrypted)
            shutil.copyfile(self.tmp_path, self.path)
        except OSError as exc:
            raise FileMissingError(f"cannot write {self.path}") from exc

    @staticmethod
    def _visit(seen: set[int], index: int) -> None:
        if index in seen:
            raise VaultError(f"block chain loops back to block {index}")
        seen.add(index)

    def block_count(self) -> int:
        """Number of whole blocks in the file, the header included."""
        return len(self._raw()) // BLOCK_SIZE

    def append_empty_block(self) -> int:
        """Append a fresh, empty block and return its index."""
        if not self.path.is_file():
            raise FileMissingError(f"{self.path} does not exist")
        index = self.block_count()
        encrypted = self.cipher.encrypt(bytes(_empty_block()), self._iv(index))
        try:
            with self.path.open("ab") as handle:
                handle.write(encrypted)
        except OSError as exc:
            raise FileMissingError(f"cannot write {self.path}") from exc
        return index

    def write_entry_data(self, start_block: int, category_id: int, data: bytes | str) -> None:
        """Append a record to the chain starting at ``start_block``."""
        _check_target(start_block, category_id)
        payload = _encode(data) + b"\0"
        blocks = self._load()

        total = len(payload)
        cursor = -1
        current = start_block
        seen: set[int] = set()
        while cursor < total:
            if current < len(blocks):
                self._visit(seen, current)
                block = blocks[current]
                following = _link(block)
                if following:
                    current = following
                    continue
                start = block.rfind(0, 0, PAYLOAD_SIZE) + 1
                following = len(blocks)
            else:
                current = len(blocks)
                block = _empty_block()
                blocks.append(block)
                start = 0
                following = current + 1

            if cursor < 0 and start < PAYLOAD_SIZE:
                block[start] = category_id
                start += 1
                cursor = 0

            if start < PAYLOAD_SIZE:
                count = min(PAYLOAD_SIZE - start, total - cursor)
                block[start : start + count] = payload[cursor : cursor + count]
                cursor += count

            if cursor < total:
                _set_link(block, following)
            current = following

        self._store(blocks)

    def read_entry_data(self, start_block: int, category_id: int) -> bytes:
        """Return the text of the record with ``category_id`` in the chain."""
        _check_target(start_block, category_id)
        blocks = self._load()

        found = bytearray()
        on_target = scanning = completed = False
        start = 0
        current = start_block
        seen: set[int] = set()
        while current < len(blocks):
            self._visit(seen, current)
            block = blocks[current]
            if on_target:
                start = 0

            end = PAYLOAD_SIZE
            for position, byte in enumerate(block[:PAYLOAD_SIZE]):
                if not scanning:
                    scanning = True
                    if byte == category_id:
                        on_target = True
                        start = position + 1
                if byte == 0:
                    scanning = False
                    if on_target:
                        completed = True
                        end = position
                        break

            if on_target:
                found += block[start:end]

            following = _link(block)
            if completed or not following:
                break
            current = following

        if not completed:
            raise InvalidInputError(f"no record with category id {category_id}")
        return bytes(found)

    def delete_entry_data(
        self, start_block: int, category_id: int, start_indices: dict[int, int]
    ) -> dict[int, int]:
        """Remove a record, compact the file and return the updated start-block map."""
        _check_target(start_block, category_id)
        blocks = self._load()

        remaining = bytearray()
        chain: list[int] = []
        on_target = scanning = complete = False
        current = start_block
        seen: set[int] = set()
        while current < len(blocks):
            self._visit(seen, current)
            chain.append(current)
            block = blocks[current]
            following = _link(block)

            if complete:
                remaining += block[: _content_end(block, following)]
            else:
                start = 0
                for position, byte in enumerate(block[:PAYLOAD_SIZE]):
                    if not scanning:
                        scanning = True
                        if byte == category_id:
                            on_target = True
                            start = BLOCK_SIZE
                            remaining += block[:position]
                    if byte == 0:
                        scanning = False
                        if on_target:
                            start = position + 1
                            on_target = False
                            complete = True
                            break

                if not on_target and start < PAYLOAD_SIZE:
                    end = _content_end(block, following)
                    if end > start:
                        remaining += block[start:end]

            if not following:
                break
            current = following

        if not complete:
            raise InvalidInputError(f"no record with category id {category_id}")
        if not remaining:
            remaining.append(FILLER)

        occupied = sorted(chain)
        needed = ceil(len(remaining) / PAYLOAD_SIZE)
        used = occupied[:needed]
        dropped = occupied[needed:]
        dropped_set = set(dropped)
        used_positions = {index: order for order, index in enumerate(used)}

        def shifted(index: int) -> int:
            return index - bisect_left(dropped, index)

        rewritten = [blocks[0]]
        for index, block in enumerate(blocks[1:], start=1):
            if index in dropped_set:
                continue
            if index in used_positions:
                order = used_positions[index]
                chunk = remaining[order * PAYLOAD_SIZE : (order + 1) * PAYLOAD_SIZE]
                block = (
                    bytearray(chunk)
                    + bytearray([FILLER] * (PAYLOAD_SIZE - len(chunk)))
                    + bytearray(BLOCK_SIZE - PAYLOAD_SIZE)
                )
                if order + 1 < len(used):
                    _set_link(block, shifted(used[order + 1]))
            else:
                following = _link(block)
                if following:
                    block = bytearray(block)
                    _set_link(block, shifted(following))
            rewritten.append(block)

        self._store(rewritten)

        indices = dict(start_indices)
        for skip in reversed(dropped):
            indices = advance_start_indices(indices, skip)
        return indices

    def dump(self) -> str:
        """Describe every data block as its encrypted and decrypted hex."""
        raw = self._raw()
        count = len(raw) // BLOCK_SIZE
        lines = [f"Opened {self.path}, {count} blocks to read"]
        for index in range(1, count):
            encrypted = raw[index * BLOCK_SIZE : (index + 1) * BLOCK_SIZE]
            decrypted = self.cipher.decrypt(encrypted, self._iv(index))
            lines.append(f"{encrypted.hex()}: {decrypted.hex()}")
        return "\n".join(lines) + "\n"