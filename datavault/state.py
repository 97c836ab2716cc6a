"""In-memory state of a vault session and the errors vault operations raise."""

from __future__ import annotations

from dataclasses import dataclass, field

KEY_LEN = 32


class VaultError(Exception):
    """Base class for all vault failures."""


class InvalidInputError(VaultError):
    """Raised when an argument is missing, wrong or refers to nothing."""


class FileMissingError(VaultError):
    """Raised when a vault file cannot be opened, read or written."""


class LoggedOutError(VaultError):
    """Raised when an operation needs a logged-in session."""


@dataclass
class VaultState:
    """Keys, salts and lookup maps of the currently open vault."""

    logged_in: bool = False
    data_key: bytes = bytes(KEY_LEN)
    random: bytes | None = None
    name_ids: dict[str, int] = field(default_factory=dict)
    start_indices: dict[int, int] = field(default_factory=dict)
    category_ids: dict[str, int] = field(default_factory=dict)
    max_entry_id: int = 0
    max_category_id: int = 0

    def reset(self) -> None:
        """Forget keys, salts and maps and mark the session logged out."""
        self.logged_in = False
        self.data_key = bytes(KEY_LEN)
        self.random = None
        self.name_ids = {}
        self.start_indices = {}
        self.category_ids = {}
        self.max_entry_id = 0
        self.max_category_id = 0

    def format_log(self) -> str:
        """Describe the session and, when logged in, its entries and categories."""
        lines = [f"Logged in: {'true' if self.logged_in else 'false'}"]
        if self.logged_in:
            lines.append("Entries==============")
            lines.append("Name --> id --> startIdx")
            for name in sorted(self.name_ids):
                entry_id = self.name_ids[name]
                start = self.start_indices.get(entry_id, 0)
                lines.append(f"{name} --> {entry_id} --> {start}")
            lines.append("Categories===========")
            lines.append("Name --> id")
            for name in sorted(self.category_ids):
                lines.append(f"{name} --> {self.category_ids[name]}")
        return "\n".join(lines) + "\n"

    def log(self) -> None:
        """Print the session description to standard output."""
        print(self.format_log(), end="")