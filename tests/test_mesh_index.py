"""
End-to-end tests for the mesh_index command line.
"""

import os
import sys
import numpy as np
import pytest
import trimesh

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from data_types import TriangleMesh
from mesh_index import get_grid_shape, main
from mesh_io import load_ply, save_ply


def make_cube(lo, hi):
    box = trimesh.creation.box(bounds=[[lo] * 3, [hi] * 3])
    return TriangleMesh(box.vertices, box.faces)


def test_get_grid_shape():
    assert get_grid_shape(make_cube(0.5, 4.5), 1.0) == (5, 5, 5)
    assert get_grid_shape(make_cube(0.5, 4.5), 2.0) == (3, 3, 3)
    assert get_grid_shape(TriangleMesh(), 1.0) == (0, 0, 0)


def test_classify_and_save(tmp_path):
    load_path = tmp_path / "cube.ply"
    save_path = tmp_path / "out.obj"
    cells_path = tmp_path / "cells.npy"
    save_ply(make_cube(0.5, 4.5), load_path)

    main([str(load_path), str(save_path), "--dx", "1", "--grid", "5", "5", "5",
          "--cells-out", str(cells_path), "--seed", "0"])

    cells = np.load(cells_path)
    assert cells.shape == (27, 3)
    assert cells.min() == 1 and cells.max() == 3
    assert save_path.exists()


def test_small_polyhedra_are_removed(tmp_path):
    mesh = make_cube(0.5, 4.5)
    mesh.append(make_cube(6.0, 6.5))
    load_path = tmp_path / "two.ply"
    save_path = tmp_path / "out.ply"
    save_ply(mesh, load_path)

    main([str(load_path), str(save_path), "--min-volume", "1.0", "--seed", "0"])

    cleaned = load_ply(save_path)
    assert cleaned.num_faces == 12
    assert cleaned.num_vertices == 8


def test_missing_input_file(tmp_path):
    with pytest.raises(SystemExit):
        main([str(tmp_path / "missing.ply"), str(tmp_path / "out.ply")])


def test_unsupported_input_format(tmp_path):
    load_path = tmp_path / "cube.stl"
    load_path.write_bytes(b"")
    with pytest.raises(SystemExit):
        main([str(load_path), str(tmp_path / "out.ply")])


if __name__ == "__main__":
    pytest.main([__file__])
