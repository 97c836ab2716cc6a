# datavault

`datavault` keeps named entries, each holding several categorised pieces of
text, in an encrypted store that belongs to one user and is guarded by that
user's password.

## How it works

Each user has a directory of their own under a home directory (the current
directory when no home is given); it is created, with a
`Creating directory ...` message, the first time it is needed. When an
account is created, the following files are written there:

| File            | Holds                                                  |
|-----------------|--------------------------------------------------------|
| `iv.dv`         | the random salts and initialisation vectors            |
| `pwd.dv`        | a salted SHA3-512 hash of the password                 |
| `dk.dv`         | the data key, encrypted with a key derived from the password by PBKDF2-HMAC-SHA512 |
| `data.dv`       | the entry data, as a chain of 16-byte AES-256-CTR blocks |
| `nameIdMap.dv`  | entry names and their ids, encrypted                   |
| `idIdxMap.dv`   | entry ids and the block each entry starts at, encrypted |
| `catIdMap.dv`   | category names and their ids, encrypted                |

Changes to entry data are written to `data.dv` at once (through a temporary
`data_tmp.dv`). Logging in checks the password against the stored hash,
recovers the data key and loads the three maps; the maps are written back
only by `logout()`, so a session that is not logged out loses new entry and
category names.

## Using it

```python
from datavault.controller import DataVault
from datavault.state import InvalidInputError

vault = DataVault("/path/to/vault-home", False)

password = "password"
vault.create_account("alice", password)
vault.login("alice", password)

vault.create_entry_data("mail", "user", "alice@example.com")
vault.create_entry_data("mail", "note", "work account")

print(vault.access_entry_data("mail", "user"))   # alice@example.com

vault.set_entry_data("mail", "note", "personal account")
vault.delete_entry_data("mail", "user")

try:
    vault.access_entry_data("mail", "user")
except InvalidInputError:
    print("no such data")

vault.logout()
```

`create_entry_data` creates the entry and the category when they do not
exist yet; `create_entry(name)` creates an empty entry and returns its id.
`set_entry_data` removes the existing record of that category, if any, and
adds the new one.

The second argument to `DataVault` turns on debug output, which prints the
intermediate keys, hashes and ids as hex strings. `print_data_file()` prints
and returns every block of the data file as its encrypted and decrypted hex.
`vault.state.log()` prints the entries, their ids and start blocks, and the
categories of the logged-in vault; `format_log()` returns the same text.

## Errors

Every failure raises a subclass of `datavault.state.VaultError`:

- `InvalidInputError`: a wrong or empty password, an empty user name, an
  entry that already exists, a name or category that is not in the vault,
  record text containing a NUL byte, or no category ids left (at most 255);
- `FileMissingError`: one of the vault's files could not be read or written;
- `LoggedOutError`: an entry operation was attempted without logging in.

A damaged data file whose block chain loops raises `VaultError` itself.

## Lower-level pieces

- `datavault.cipher` has `CtrCipher`, `increment_counter`, `ctr_transform`,
  `hash_password` and `derive_kek`.
- `datavault.persistence` has `VaultStorage` (user directories, creating,
  copying and deleting vault files, loading and saving the maps) and the map
  encoders `encode_name_map`, `decode_name_map`, `encode_index_map` and
  `decode_index_map`.
- `datavault.entries` has `DataFile`, which reads and rewrites the block
  chains of `data.dv`, and `advance_start_indices`.
- `datavault.state` has `VaultState` and the error classes.

## What it does not do

There is no command-line program or interactive prompt: the vault is used
from Python through `DataVault`. Nothing is copied to the clipboard, and
there is no call that lists an entry's categories other than the
`format_log()` listing of names and ids.