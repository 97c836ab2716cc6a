import pytest

from datavault.state import (
    KEY_LEN,
    FileMissingError,
    InvalidInputError,
    LoggedOutError,
    VaultError,
    VaultState,
)


def _populated() -> VaultState:
    state = VaultState(
        logged_in=True,
        data_key=b"\x01" * KEY_LEN,
        random=b"\x02" * 0x70,
        name_ids={"mail": 2, "bank": 1},
        start_indices={1: 1, 2: 3},
        category_ids={"user": 2, "note": 1},
        max_entry_id=2,
        max_category_id=2,
    )
    return state


def test_reset_clears_everything():
    state = _populated()
    state.reset()
    assert state == VaultState()
    assert state.data_key == bytes(KEY_LEN)


def test_reset_does_not_share_maps_between_instances():
    state = VaultState()
    state.reset()
    state.name_ids["x"] = 1
    assert VaultState().name_ids == {}


def test_format_log_logged_out():
    assert _populated().format_log().startswith("Logged in: true")
    state = VaultState()
    assert state.format_log() == "Logged in: false\n"


def test_format_log_sorted_entries_and_categories():
    lines = _populated().format_log().splitlines()
    assert lines == [
        "Logged in: true",
        "Entries==============",
        "Name --> id --> startIdx",
        "bank --> 1 --> 1",
        "mail --> 2 --> 3",
        "Categories===========",
        "Name --> id",
        "note --> 1",
        "user --> 2",
    ]


def test_format_log_missing_start_index_is_zero():
    state = VaultState(logged_in=True, name_ids={"orphan": 7})
    assert "orphan --> 7 --> 0" in state.format_log().splitlines()


def test_log_prints_format(capsys):
    state = _populated()
    state.log()
    assert capsys.readouterr().out == state.format_log()


@pytest.mark.parametrize("error", [InvalidInputError, FileMissingError, LoggedOutError])
def test_errors_share_base(error):
    with pytest.raises(VaultError) as excinfo:
        raise error("failure")
    assert excinfo.type is error
    assert str(excinfo.value) == "failure"