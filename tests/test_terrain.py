import math

import numpy as np
import pytest

from locomotion.settings import GROUND_TAG, UNTRAVERSABLE_TAG
from locomotion.terrain import AnalyticTerrain, Box, Plane, flat_ground, slope


def test_flat_ground_raycast_down():
    t = flat_ground(0.25)
    hit = t.raycast([1.0, 2.0, 5.0], [0.0, 0.0, -1.0])
    assert hit is not None
    assert np.allclose(hit.point, [1.0, 2.0, 0.25])
    assert np.allclose(hit.normal, [0.0, 0.0, 1.0])
    assert hit.distance == pytest.approx(4.75)
    assert hit.tag == GROUND_TAG


def test_raycast_respects_max_distance_and_direction():
    t = flat_ground()
    assert t.raycast([0, 0, 5], [0, 0, -1], max_distance=4.0) is None
    assert t.raycast([0, 0, 5], [0, 0, 1]) is None
    assert t.raycast([0, 0, 5], [0, 0, 0]) is None


def test_bounded_plane_misses_outside_its_extent():
    t = AnalyticTerrain().add_plane([0, 0, 0], [0, 0, 1], bounds=(-1.0, 1.0, -1.0, 1.0))
    assert t.raycast([0.5, 0.5, 2], [0, 0, -1]) is not None
    assert t.raycast([1.5, 0.0, 2], [0, 0, -1]) is None


def test_slope_height():
    t = slope(45.0)
    hit = t.raycast([1.0, 0.0, 5.0], [0, 0, -1])
    assert hit.point[2] == pytest.approx(1.0)
    assert np.allclose(hit.normal, [-math.sqrt(0.5), 0.0, math.sqrt(0.5)])


def test_box_top_face_and_inside_start():
    b = Box([0, 0, 0], [1, 1, 1])
    t, n = b.intersect(np.array([0.5, 0.5, 3.0]), np.array([0.0, 0.0, -1.0]))
    assert t == pytest.approx(2.0)
    assert np.allclose(n, [0.0, 0.0, 1.0])
    # from inside, the ray reports the face it leaves through
    t, n = b.intersect(np.array([0.5, 0.5, 0.5]), np.array([0.0, 0.0, -1.0]))
    assert t == pytest.approx(0.5)
    assert np.allclose(n, [0.0, 0.0, 1.0])
    assert b.intersect(np.array([5.0, 0.5, 3.0]), np.array([0.0, 0.0, -1.0])) is None
    # box entirely behind the origin
    assert b.intersect(np.array([0.5, 0.5, 3.0]), np.array([0.0, 0.0, 1.0])) is None


def test_segment_starting_inside_a_wall_sees_its_far_face():
    t = flat_ground().add_box([3.0, -5.0, 0.0], [3.3, 5.0, 3.0], tag=UNTRAVERSABLE_TAG)
    hits = t.linecast_all([3.1, 0.0, 0.9], [4.6, 0.0, 0.0])
    assert hits[0].tag == UNTRAVERSABLE_TAG
    assert hits[0].point[0] == pytest.approx(3.3)
    assert np.allclose(hits[0].normal, [-1.0, 0.0, 0.0])


def test_linecast_all_sorted_and_tagged():
    t = flat_ground().add_box([1, -1, 0], [1.2, 1, 2], tag=UNTRAVERSABLE_TAG)
    t.add_box([2, -1, 0], [2.2, 1, 2])
    hits = t.linecast_all([0, 0, 1], [3, 0, 1])
    assert [h.tag for h in hits] == [UNTRAVERSABLE_TAG, GROUND_TAG]
    assert hits[0].distance < hits[1].distance
    assert np.allclose(hits[0].normal, [-1.0, 0.0, 0.0])
    assert t.linecast([0, 0, 1], [3, 0, 1]).tag == UNTRAVERSABLE_TAG
    # segment stops short of the first box
    assert t.linecast([0, 0, 1], [0.9, 0, 1]) is None


def test_invalid_shapes():
    with pytest.raises(ValueError):
        Plane([0, 0, 0], [0, 0, 0])
    with pytest.raises(ValueError):
        Box([1, 0, 0], [0, 1, 1])
