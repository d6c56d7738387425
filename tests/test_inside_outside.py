"""
Tests for inside/outside classification of grid cells.
"""

import logging
import os
import sys
import numpy as np
import pytest
import trimesh

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from classification import floodfill, get_cells_inside_mesh, is_cell_inside_mesh
from data_types import ClassificationIndeterminate, TriangleMesh
from spatial import TriangleGrid


def make_cube(lo, hi, inverted=False):
    box = trimesh.creation.box(bounds=[[lo] * 3, [hi] * 3])
    faces = box.faces[:, ::-1] if inverted else box.faces
    return TriangleMesh(box.vertices, faces)


def cell_set(cells):
    return {tuple(c) for c in np.asarray(cells).tolist()}


def test_cube_interior_cells():
    mesh = make_cube(0.5, 4.5)
    cells = get_cells_inside_mesh(mesh, (5, 5, 5), 1.0, rng=0)

    expected = {(i, j, k) for i in range(1, 4) for j in range(1, 4) for k in range(1, 4)}
    assert cells.shape == (27, 3)
    assert cell_set(cells) == expected


def test_cube_interior_cells_with_surface():
    mesh = make_cube(0.5, 4.5)
    cells = get_cells_inside_mesh(mesh, (5, 5, 5), 1.0, rng=0, include_surface=True)
    assert len(cells) == 125


def test_cells_are_sorted():
    mesh = make_cube(0.5, 4.5)
    cells = get_cells_inside_mesh(mesh, (6, 6, 6), 1.0, rng=1)
    assert cells.tolist() == sorted(cells.tolist())


def test_cube_in_larger_grid():
    mesh = make_cube(0.5, 4.5)
    cells = get_cells_inside_mesh(mesh, (8, 7, 6), 1.0, rng=2)
    assert len(cells) == 27
    assert cell_set(cells) == {(i, j, k) for i in range(1, 4) for j in range(1, 4) for k in range(1, 4)}


def test_cube_covering_one_cell_has_no_interior():
    mesh = make_cube(0.0, 1.0)
    cells = get_cells_inside_mesh(mesh, (1, 1, 1), 1.0, rng=0)
    assert cells.shape == (0, 3)


def test_empty_grid():
    mesh = make_cube(0.5, 4.5)
    cells = get_cells_inside_mesh(mesh, (0, 5, 5), 1.0)
    assert cells.shape == (0, 3)


def test_cavity_is_outside():
    mesh = make_cube(0.5, 6.5)
    mesh.append(make_cube(2.5, 4.5, inverted=True))
    cells = get_cells_inside_mesh(mesh, (7, 7, 7), 1.0, rng=0)

    expected = {(i, j, k) for i in range(1, 6) for j in range(1, 6) for k in range(1, 6)}
    expected -= {(i, j, k) for i in range(2, 5) for j in range(2, 5) for k in range(2, 5)}
    assert len(cells) == 98
    assert cell_set(cells) == expected


def test_two_disjoint_cubes():
    mesh = make_cube(0.5, 3.5)
    other = make_cube(0.5, 3.5)
    other.translate([5.0, 0.0, 0.0])
    mesh.append(other)

    cells = get_cells_inside_mesh(mesh, (9, 4, 4), 1.0, rng=0)
    expected = {(i, j, k) for i in (1, 2, 6, 7) for j in range(1, 3) for k in range(1, 3)}
    assert cell_set(cells) == expected


def test_is_cell_inside_mesh():
    mesh = make_cube(0.5, 4.5)
    with TriangleGrid.build(mesh, (7, 7, 7), 1.0) as grid:
        assert is_cell_inside_mesh(mesh, grid, (2, 2, 2), rng=0)
        assert is_cell_inside_mesh(mesh, grid, (1, 3, 2), rng=0)
        assert not is_cell_inside_mesh(mesh, grid, (6, 6, 6), rng=0)
        assert not is_cell_inside_mesh(mesh, grid, (5, 2, 2), rng=0)


def test_open_surface_is_indeterminate():
    # A single face of the cube: one crossing on the left, none on the right
    mesh = make_cube(0.5, 4.5)
    face = np.nonzero(np.all(np.isclose(mesh.vertices[mesh.triangles][:, :, 0], 0.5), axis=1))[0]
    mesh.triangles = mesh.triangles[face]
    mesh.remove_extraneous_vertices()

    with TriangleGrid.build(mesh, (5, 5, 5), 1.0) as grid:
        with pytest.raises(ClassificationIndeterminate):
            is_cell_inside_mesh(mesh, grid, (2, 2, 2), rng=0)


def test_indeterminate_cells_are_treated_as_outside(caplog):
    mesh = make_cube(0.5, 4.5)
    face = np.nonzero(np.all(np.isclose(mesh.vertices[mesh.triangles][:, :, 0], 0.5), axis=1))[0]
    mesh.triangles = mesh.triangles[face]
    mesh.remove_extraneous_vertices()

    with caplog.at_level(logging.WARNING):
        cells = get_cells_inside_mesh(mesh, (5, 5, 5), 1.0, rng=0)

    assert cells.shape == (0, 3)
    assert "could not be classified" in caplog.text


def test_duplicate_geometry_counted_once():
    mesh = make_cube(0.5, 4.5)
    # Same index triples again: each crossing must only count once
    mesh.triangles = np.vstack([mesh.triangles, mesh.triangles])
    cells = get_cells_inside_mesh(mesh, (5, 5, 5), 1.0, rng=0)
    assert len(cells) == 27


def test_floodfill_stops_at_marked_cells():
    cells = np.zeros((5, 5, 5), dtype=bool)
    cells[2, :, :] = True

    floodfill((0, 0, 0), cells)

    assert cells[:2].all()
    assert not cells[3:].any()


def test_floodfill_on_marked_cell_is_noop():
    cells = np.zeros((3, 3, 3), dtype=bool)
    cells[1, 1, 1] = True
    floodfill((1, 1, 1), cells)
    assert cells.sum() == 1


def test_seeded_runs_are_reproducible():
    mesh = make_cube(0.5, 4.5)
    a = get_cells_inside_mesh(mesh, (5, 5, 5), 1.0, rng=np.random.default_rng(42))
    b = get_cells_inside_mesh(mesh, (5, 5, 5), 1.0, rng=np.random.default_rng(42))
    assert np.array_equal(a, b)


if __name__ == "__main__":
    pytest.main([__file__])
