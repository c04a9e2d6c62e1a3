"""Tests for RouteMatcher."""

import pytest

from busmap.core.route_matcher import RouteMatcher

# Rectangle loop in Nuuk: A -> B -> C -> D -> A
A = [64.170, -51.740]
B = [64.170, -51.730]
C = [64.175, -51.730]
D = [64.175, -51.740]


def make_matcher(closed: bool = True) -> RouteMatcher:
    matcher = RouteMatcher()
    matcher.load_route("1", [A, B, C, D, A] if closed else [A, B, C])
    return matcher


def assert_path(actual, expected):
    assert len(actual) == len(expected)
    for got, want in zip(actual, expected):
        assert got == pytest.approx(want, abs=1e-9)


def test_basic_matching():
    """A point on the route returns valid progress."""
    matcher = make_matcher()

    # Middle of A -> B, one sixth of the loop in degree length
    result = matcher.match("1", 64.170, -51.735)
    assert result is not None
    assert result.progress == pytest.approx(1 / 6)
    assert result.distance_m < 1


def test_distance_in_meters():
    matcher = make_matcher()
    # 0.001 degrees of latitude north of A -> B is about 111 m
    result = matcher.match("1", 64.169, -51.735)
    assert 100 < result.distance_m < 120


def test_no_match_far_from_route():
    matcher = make_matcher()
    assert matcher.match("1", 64.20, -51.70) is None


def test_unknown_route():
    matcher = RouteMatcher()
    assert matcher.match("9", 64.17, -51.73) is None
    assert matcher.path_between("9", (64.17, -51.73), (64.18, -51.73)) is None


def test_degenerate_geometry_is_not_loaded():
    matcher = RouteMatcher()
    matcher.load_route("1", [A])
    matcher.load_route("2", [A, A])
    assert "1" not in matcher
    assert "2" not in matcher


def test_path_forward_to_next_stop():
    matcher = make_matcher()
    path = matcher.path_between("1", (64.170, -51.735), tuple(C))
    assert_path(path, [[64.170, -51.735], B, C])


def test_path_wraps_around_closed_loop():
    matcher = make_matcher()
    # Bus on C -> D, next stop is B: forward past the loop start
    path = matcher.path_between("1", (64.175, -51.735), tuple(B))
    assert_path(path, [[64.175, -51.735], D, A, B])


def test_open_line_path_is_reversed_instead_of_wrapped():
    matcher = make_matcher(closed=False)
    path = matcher.path_between("1", tuple(C), (64.170, -51.735))
    assert_path(path, [C, B, [64.170, -51.735]])


def test_path_from_point_off_route():
    matcher = make_matcher()
    assert matcher.path_between("1", (64.20, -51.70), tuple(B)) is None


def test_path_between_same_point_is_straight_segment():
    matcher = make_matcher()
    path = matcher.path_between("1", tuple(B), tuple(B))
    assert path == [B, B]


def test_reloading_with_empty_geometry_forgets_route():
    matcher = make_matcher()
    matcher.load_route("1", [])
    assert "1" not in matcher
