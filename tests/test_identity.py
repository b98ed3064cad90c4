import itertools

import pytest

from fleet_telemetry.identity import canonicalize, find_match, match


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("UP16KT1737", "UP16KT1737"),
        ("up-16 kt 1737", "UP16KT1737"),
        ("Truck UP16KT1737 (old)", "UP16KT1737"),
        ("DL 1C AA 1111", "DL1CAA1111"),
        ("WB-07", "WB07"),
        ("", ""),
        (None, ""),
        (1234, "1234"),
    ],
)
def test_canonicalize(raw, expected):
    assert canonicalize(raw) == expected


def test_match_examples():
    assert match("UP16KT1737", "UP16KT1737X")
    assert not match("AB", "ABCDEFG")


def test_match_exact_after_canonicalization():
    assert match("up 16 kt 1737", "UP-16-KT-1737")
    assert match("AB", "ab")


def test_match_partial_bounds():
    assert match("TRUCK12", "TRUCK1")  # prefix
    assert match("XTRUCK1", "TRUCK1")  # suffix
    assert not match("TRUK1", "TRUCK1")  # neither prefix nor suffix
    assert not match("ABCD", "ABCDE")  # shorter below five characters
    assert not match("ABCDE", "ABCDEFGHI")  # length difference of four
    assert match("ABCDE", "ABCDEFGH")  # length difference of three


def test_empty_ids_never_match():
    assert not match("", "")
    assert not match(None, "UP16KT1737")
    assert not match("---", "...")


def test_match_is_symmetric():
    ids = [
        "UP16KT1737",
        "UP16KT1737X",
        "16KT1737",
        "TRUCK1",
        "TRUCK12",
        "XTRUCK1",
        "AB",
        "ABCDEFG",
        "ABCDE",
        "",
        "WB-07-A-9",
    ]
    for a, b in itertools.product(ids, repeat=2):
        assert match(a, b) == match(b, a), (a, b)


def test_match_is_not_transitive():
    assert match("ABCDE", "ABCDEFG")
    assert match("ABCDEFG", "CDEFG")
    assert not match("ABCDE", "CDEFG")


def test_find_match_prefers_exact():
    candidates = ["TRUCK12", "truck-1", "TRUCK1X"]
    assert find_match("TRUCK1", candidates) == "truck-1"


def test_find_match_first_partial():
    assert find_match("TRUCK1", ["ZZZ", "TRUCK12", "TRUCK1X"]) == "TRUCK12"
    assert find_match("TRUCK1", ["ZZZ"]) is None
    assert find_match("", ["TRUCK1"]) is None
