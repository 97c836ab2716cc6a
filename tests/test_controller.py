import pytest

from datavault.cipher import ctr_transform, derive_kek
from datavault.controller import DataVault
from datavault.state import FileMissingError, InvalidInputError, LoggedOutError

USER = "alice"


@pytest.fixture
def vault(tmp_path):
    password = "password"
    dv = DataVault(home=tmp_path)
    dv.create_account(USER, password)
    dv.login(USER, password)
    return dv


def test_account_files_have_fixed_sizes(tmp_path):
    password = "password"
    dv = DataVault(home=tmp_path)
    dv.create_account(USER, password)
    directory = tmp_path / USER
    assert len((directory / "iv.dv").read_bytes()) == 0x70
    assert len((directory / "pwd.dv").read_bytes()) == 64
    assert len((directory / "dk.dv").read_bytes()) == 32
    assert (directory / "data.dv").read_bytes() == (directory / "iv.dv").read_bytes()[:16]


def test_login_sets_logged_in_and_decrypts_data_key(tmp_path):
    password = "password"
    dv = DataVault(home=tmp_path)
    dv.create_account(USER, password)
    dv.login(USER, password)
    assert dv.state.logged_in is True
    random = (tmp_path / USER / "iv.dv").read_bytes()
    kek = derive_kek(password, random[0x10:0x20])
    encrypted = (tmp_path / USER / "dk.dv").read_bytes()
    assert ctr_transform(kek, random[0x20:0x30], encrypted) == dv.state.data_key


def test_wrong_password_rejected(tmp_path):
    password = "password"
    other_password = "secret"
    dv = DataVault(home=tmp_path)
    dv.create_account(USER, password)
    with pytest.raises(InvalidInputError):
        dv.login(USER, other_password)
    assert dv.state.logged_in is False
    assert dv.state.random is None


def test_login_unknown_user_reports_missing_files(tmp_path):
    password = "password"
    dv = DataVault(home=tmp_path)
    with pytest.raises(FileMissingError):
        dv.login("nobody", password)
    assert dv.state.logged_in is False


def test_create_account_requires_password(tmp_path):
    dv = DataVault(home=tmp_path)
    with pytest.raises(InvalidInputError):
        dv.create_account(USER, "")


def test_operations_need_login(tmp_path):
    dv = DataVault(home=tmp_path)
    with pytest.raises(LoggedOutError):
        dv.create_entry("mail")
    with pytest.raises(LoggedOutError):
        dv.create_entry_data("mail", "user", "bob")
    with pytest.raises(LoggedOutError):
        dv.access_entry_data("mail", "user")
    with pytest.raises(LoggedOutError):
        dv.delete_entry_data("mail", "user")
    with pytest.raises(LoggedOutError):
        dv.print_data_file()


def test_create_entry_assigns_ids_and_blocks(vault):
    first = vault.create_entry("mail")
    second = vault.create_entry("bank")
    assert (first, second) == (1, 2)
    assert vault.state.start_indices == {1: 1, 2: 2}
    assert vault.state.name_ids == {"mail": 1, "bank": 2}


def test_duplicate_entry_rejected(vault):
    vault.create_entry("mail")
    with pytest.raises(InvalidInputError):
        vault.create_entry("mail")


def test_data_round_trip(vault):
    vault.create_entry_data("mail", "user", "bob@example.com")
    vault.create_entry_data("mail", "note", "x" * 40)
    assert vault.access_entry_data("mail", "user") == "bob@example.com"
    assert vault.access_entry_data("mail", "note") == "x" * 40
    assert vault.state.category_ids == {"user": 1, "note": 2}


def test_data_persists_across_sessions(tmp_path):
    password = "password"
    dv = DataVault(home=tmp_path)
    dv.create_account(USER, password)
    dv.login(USER, password)
    dv.create_entry_data("mail", "user", "bob")
    dv.create_entry_data("bank", "user", "carol")
    dv.logout()
    assert dv.state.logged_in is False

    again = DataVault(home=tmp_path)
    again.login(USER, password)
    assert again.access_entry_data("mail", "user") == "bob"
    assert again.access_entry_data("bank", "user") == "carol"
    assert again.state.max_entry_id == 2
    assert again.state.max_category_id == 1


def test_access_missing_raises(vault):
    vault.create_entry_data("mail", "user", "bob")
    with pytest.raises(InvalidInputError):
        vault.access_entry_data("other", "user")
    with pytest.raises(InvalidInputError):
        vault.access_entry_data("mail", "unknown")
    vault.create_entry_data("bank", "note", "n")
    with pytest.raises(InvalidInputError):
        vault.access_entry_data("mail", "note")


def test_delete_entry_data(vault):
    vault.create_entry_data("mail", "user", "bob")
    vault.create_entry_data("mail", "note", "hello")
    vault.delete_entry_data("mail", "user")
    with pytest.raises(InvalidInputError):
        vault.access_entry_data("mail", "user")
    assert vault.access_entry_data("mail", "note") == "hello"


def test_delete_keeps_other_entries(vault):
    vault.create_entry_data("mail", "user", "m" * 30)
    vault.create_entry_data("bank", "user", "carol")
    vault.delete_entry_data("mail", "user")
    assert vault.access_entry_data("bank", "user") == "carol"


def test_delete_unknown_raises(vault):
    vault.create_entry("mail")
    with pytest.raises(InvalidInputError):
        vault.delete_entry_data("mail", "user")
    with pytest.raises(InvalidInputError):
        vault.delete_entry_data("nothing", "user")


def test_set_entry_data_replaces(vault):
    vault.set_entry_data("mail", "user", "bob")
    assert vault.access_entry_data("mail", "user") == "bob"
    vault.set_entry_data("mail", "user", "dave")
    assert vault.access_entry_data("mail", "user") == "dave"


def test_print_data_file(vault, capsys):
    vault.create_entry("mail")
    text = vault.print_data_file()
    assert text.startswith("Opened ")
    assert "2 blocks to read" in text
    assert capsys.readouterr().out == text


def test_debug_traces_keys(tmp_path, capsys):
    password = "password"
    dv = DataVault(home=tmp_path, debug=True)
    dv.create_account(USER, password)
    out = capsys.readouterr().out
    assert "dataKey: " in out
    assert "encDataKey: " in out


def test_logout_forgets_keys(vault):
    vault.create_entry("mail")
    vault.logout()
    assert vault.state.name_ids == {}
    with pytest.raises(LoggedOutError):
        vault.access_entry_data("mail", "user")