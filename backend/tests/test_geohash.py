from __future__ import annotations

import pytest

from geotrack.utils.geohash import ancestors, encode


def test_encode_known_cells() -> None:
    assert encode(57.64911, 10.40744, precision=11) == "u4pruydqqvj"
    assert encode(42.6, -5.6, precision=5) == "ezs42"


def test_encode_defaults_to_nine_chars() -> None:
    gh = encode(45.815, 15.9819)
    assert len(gh) == 9
    assert gh.startswith("u2")


def test_encode_is_prefix_stable_across_precisions() -> None:
    full = encode(31.2304, 121.4737, precision=9)
    for n in range(1, 9):
        assert encode(31.2304, 121.4737, precision=n) == full[:n]


def test_nearby_points_share_coarse_prefix() -> None:
    # ~10m apart: same 6-char cell (~1.2km).
    a = encode(45.81500, 15.98190)
    b = encode(45.81509, 15.98190)
    assert a[:6] == b[:6]


def test_encode_rejects_non_positive_precision() -> None:
    with pytest.raises(ValueError):
        encode(0.0, 0.0, precision=0)


def test_ancestors_follow_requested_order_and_skip_too_long() -> None:
    assert ancestors("u33dbfk1", (8, 7, 6, 5, 4, 3, 2)) == [
        "u33dbfk1",
        "u33dbfk",
        "u33dbf",
        "u33db",
        "u33d",
        "u33",
        "u3",
    ]
    assert ancestors("u33", (8, 3, 2)) == ["u33", "u3"]
