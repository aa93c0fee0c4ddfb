import pytest

from meshnet.errors import (
    CheckError,
    InternalError,
    NetError,
    assert_that,
    check,
    error,
    fopen_check,
)


def test_check_raises_with_formatted_message():
    with pytest.raises(CheckError, match="bad value 3 for x"):
        check(False, "bad value %d for %s", 3, "x")


def test_check_depends_on_condition_only():
    assert check(1 == 1, "never %d", 5) is None
    with pytest.raises(CheckError) as info:
        check(1 == 2, "never %d", 5)
    assert str(info.value) == "never 5"


def test_check_error_is_net_error():
    with pytest.raises(NetError):
        check(0, "zero")


def test_assert_that_raises_internal_error():
    with pytest.raises(InternalError, match="index 7"):
        assert_that(False, "index %d", 7)


def test_internal_error_is_not_check_error():
    with pytest.raises(InternalError) as info:
        assert_that([], "empty")
    assert not isinstance(info.value, CheckError)


def test_error_always_raises():
    with pytest.raises(CheckError, match="unknown iterator type foo"):
        error("unknown iterator type %s", "foo")


def test_message_without_args_keeps_percent():
    with pytest.raises(CheckError) as info:
        error("100% sure")
    assert str(info.value) == "100% sure"


def test_message_is_truncated_to_buffer():
    with pytest.raises(CheckError) as info:
        error("%s", "a" * 10000)
    assert len(str(info.value)) == (1 << 12) - 1


def test_fopen_check_opens_existing_file(tmp_path):
    path = tmp_path / "data.txt"
    path.write_text("hello")
    with fopen_check(str(path), "r") as fp:
        assert fp.read() == "hello"


def test_fopen_check_missing_file(tmp_path):
    missing = str(tmp_path / "missing.bin")
    with pytest.raises(CheckError) as info:
        fopen_check(missing, "rb")
    assert missing in str(info.value)