import pytest

from intermediator.common.phone import MIN_MATCH_DIGITS, normalize_phone


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("(11) 98888-7777", "11988887777"),
        ("+55 27 99999-8888", "5527999998888"),
        ("27 3333.4444", "2733334444"),
        ("sem telefone", ""),
        ("", ""),
        (None, ""),
    ],
)
def test_normalize_phone_keeps_only_digits(raw, expected) -> None:
    assert normalize_phone(raw) == expected


@pytest.mark.parametrize("raw", ["(11) 98888-7777", " 27-9 9999 8888 ", "abc", "٣٤٥ 123", ""])
def test_normalize_phone_is_idempotent(raw) -> None:
    once = normalize_phone(raw)
    assert normalize_phone(once) == once
    assert all(ch in "0123456789" for ch in once)


def test_non_ascii_digits_are_dropped() -> None:
    assert normalize_phone("٣٤٥ 123") == "123"


def test_min_match_digits_is_eight() -> None:
    assert MIN_MATCH_DIGITS == 8
