"""
Tests for the TriangleMesh container: structural edits, adjacency, normals
and per-triangle geometry.
"""

import os
import sys
import numpy as np
import pytest
import trimesh

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from data_types import TriangleMesh


def make_cube(lo=0.0, hi=1.0):
    box = trimesh.creation.box(bounds=[[lo] * 3, [hi] * 3])
    return TriangleMesh(box.vertices, box.faces)


def make_right_triangle():
    return TriangleMesh([[0, 0, 0], [1, 0, 0], [0, 1, 0]], [[0, 1, 2]])


def test_empty_mesh():
    mesh = TriangleMesh()
    assert mesh.num_vertices == 0
    assert mesh.num_faces == 0
    assert not mesh.has_normals
    assert not mesh.has_colors
    mesh.validate()


def test_validate_rejects_out_of_range_index():
    mesh = TriangleMesh([[0, 0, 0], [1, 0, 0], [0, 1, 0]], [[0, 1, 3]])
    with pytest.raises(AssertionError):
        mesh.validate()


def test_append_offsets_triangle_indices():
    mesh = make_right_triangle()
    other = make_right_triangle()
    other.translate([0, 0, 1])

    mesh.append(other)

    assert mesh.num_vertices == 6
    assert np.array_equal(mesh.triangles, [[0, 1, 2], [3, 4, 5]])
    assert np.allclose(mesh.vertices[3], [0, 0, 1])


def test_append_drops_attributes_missing_on_one_side():
    mesh = make_right_triangle()
    mesh.update_vertex_normals()
    mesh.append(make_right_triangle())
    assert not mesh.has_normals


def test_remove_extraneous_vertices():
    mesh = TriangleMesh([[9, 9, 9], [0, 0, 0], [1, 0, 0], [5, 5, 5], [0, 1, 0]], [[1, 2, 4]])
    mesh.colors = np.linspace(0, 1, 15).reshape(5, 3)
    expected_colors = mesh.colors[[1, 2, 4]]

    mesh.remove_extraneous_vertices()

    assert mesh.num_vertices == 3
    assert np.array_equal(mesh.triangles, [[0, 1, 2]])
    assert np.allclose(mesh.vertices, [[0, 0, 0], [1, 0, 0], [0, 1, 0]])
    assert np.allclose(mesh.colors, expected_colors)
    assert mesh.has_normals

    vertices = mesh.vertices.copy()
    mesh.remove_extraneous_vertices()
    assert np.array_equal(mesh.vertices, vertices)


def test_remove_duplicate_triangles():
    mesh = make_cube()
    mesh.triangles = np.vstack([mesh.triangles, mesh.triangles[:3]])
    assert mesh.num_faces == 15

    mesh.remove_duplicate_triangles()
    assert mesh.num_faces == 12
    triangles = mesh.triangles.copy()

    mesh.remove_duplicate_triangles()
    assert np.array_equal(mesh.triangles, triangles)


def test_rotated_index_triple_is_not_a_duplicate():
    mesh = TriangleMesh([[0, 0, 0], [1, 0, 0], [0, 1, 0]], [[0, 1, 2], [1, 2, 0]])
    mesh.remove_duplicate_triangles()
    assert mesh.num_faces == 2


def test_remove_triangles_keeps_order():
    mesh = make_cube()
    expected = mesh.triangles[[0, 2, 3, 4, 5, 6, 7, 8, 9, 10]]
    mesh.remove_triangles([1, 11])
    assert np.array_equal(mesh.triangles, expected)


def test_edge_triangles_closed_cube():
    mesh = make_cube()
    edges = mesh.edge_triangles
    assert len(edges) == 18
    assert all(len(faces) == 2 for faces in edges.values())
    assert all(v1 < v2 for v1, v2 in edges)


def test_face_neighbours():
    mesh = make_cube()
    for tidx in range(mesh.num_faces):
        neighbours = mesh.get_face_neighbours(tidx)
        assert len(neighbours) == 3
        assert tidx not in neighbours
        for n in neighbours:
            assert mesh.is_neighbours(tidx, n)
            assert tidx in mesh.get_face_neighbours(n)


def test_triangle_is_its_own_neighbour():
    mesh = make_cube()
    for tidx in range(mesh.num_faces):
        assert mesh.is_neighbours(tidx, tidx)
    others = [n for n in range(mesh.num_faces) if n != 0 and n not in mesh.get_face_neighbours(0)]
    assert not any(mesh.is_neighbours(0, n) for n in others)


def test_vertex_neighbours():
    mesh = make_cube()
    for vidx in range(mesh.num_vertices):
        triangles = mesh.get_vertex_neighbours(vidx)
        assert len(triangles) > 0
        assert all(vidx in mesh.triangles[t] for t in triangles)
    assert sum(len(mesh.get_vertex_neighbours(v)) for v in range(mesh.num_vertices)) == 36


def test_caches_invalidated_on_edit():
    mesh = make_cube()
    assert len(mesh.edge_triangles) == 18
    mesh.remove_triangles([0])
    assert sum(len(faces) for faces in mesh.edge_triangles.values()) == 33


def test_vertex_normals_are_unit_length():
    mesh = make_cube()
    mesh.update_vertex_normals()
    assert mesh.has_normals
    assert np.allclose(np.linalg.norm(mesh.normals, axis=1), 1.0)

    # Corner normals of a cube point away from its center
    directions = mesh.vertices - 0.5
    assert np.all(np.einsum("ij,ij->i", mesh.normals, directions) > 0)


def test_triangle_normal_follows_winding():
    mesh = make_right_triangle()
    mesh.update_vertex_normals()
    assert np.allclose(mesh.get_triangle_normal(0), [0, 0, 1])
    assert np.allclose(mesh.face_normals, [[0, 0, 1]])


def test_triangle_normal_requires_vertex_normals():
    mesh = make_right_triangle()
    with pytest.raises(AssertionError):
        mesh.get_triangle_normal(0)


def test_cube_triangle_normals_face_outward():
    mesh = make_cube()
    mesh.update_vertex_normals()
    for tidx in range(mesh.num_faces):
        assert np.dot(mesh.get_triangle_normal(tidx), mesh.face_normals[tidx]) > 0


def test_triangle_area_and_center():
    mesh = make_right_triangle()
    assert np.isclose(mesh.get_triangle_area(0), 0.5)
    mesh.update_triangle_areas()
    assert np.isclose(mesh.get_triangle_area(0), 0.5)
    assert np.allclose(mesh.get_triangle_center(0), [1 / 3, 1 / 3, 0])
    assert np.allclose(mesh.triangle_centers, [[1 / 3, 1 / 3, 0]])


def test_clear_vertex_triangles_after_in_place_edit():
    mesh = TriangleMesh([[0, 0, 0], [1, 0, 0], [0, 1, 0], [0, 0, 1]], [[0, 1, 2]])
    assert mesh.get_vertex_neighbours(3) == []

    mesh.triangles[0] = [0, 1, 3]
    mesh.clear_vertex_triangles()
    assert mesh.get_vertex_neighbours(3) == [0]
    assert mesh.get_vertex_neighbours(2) == []


def test_smooth_triangle_normal_interpolates_vertex_normals():
    mesh = make_right_triangle()
    mesh.normals = np.eye(3)
    assert np.allclose(mesh.get_triangle_normal_smooth(0, [0, 0, 0]), [1, 0, 0])
    assert np.allclose(mesh.get_triangle_normal_smooth(0, [0, 1, 0]), [0, 0, 1])
    assert np.allclose(mesh.get_triangle_normal_smooth(0, [0.5, 0, 0]), [0.5, 0.5, 0])
    assert np.allclose(mesh.get_triangle_normal_smooth(0, [1 / 3, 1 / 3, 0]), [1 / 3, 1 / 3, 1 / 3])


def test_barycentric_coordinates():
    mesh = make_right_triangle()
    assert np.allclose(mesh.get_barycentric_coordinates(0, [0, 0, 0]), [1, 0, 0])
    assert np.allclose(mesh.get_barycentric_coordinates(0, [1, 0, 0]), [0, 1, 0])
    assert np.allclose(mesh.get_barycentric_coordinates(0, [1 / 3, 1 / 3, 0]), [1 / 3, 1 / 3, 1 / 3])


def test_smooth_only_moves_selected_vertices():
    mesh = make_cube()
    original = mesh.vertices.copy()
    mesh.smooth(0.5, 2, vertex_indices=[0])

    assert not np.allclose(mesh.vertices[0], original[0])
    assert np.allclose(mesh.vertices[1:], original[1:])


def test_smooth_zero_value_is_identity():
    mesh = make_cube()
    original = mesh.vertices.copy()
    mesh.smooth(0.0, 5)
    assert np.allclose(mesh.vertices, original)


def test_copy_is_independent():
    mesh = make_cube()
    clone = mesh.copy()
    clone.translate([1, 0, 0])
    assert not np.allclose(mesh.vertices, clone.vertices)


def test_trimesh_round_trip():
    mesh = make_cube(0.0, 2.0)
    tm = mesh.to_trimesh()
    assert np.isclose(tm.volume, 8.0)

    back = TriangleMesh.from_trimesh(tm)
    assert np.allclose(back.vertices, mesh.vertices)
    assert np.array_equal(back.triangles, mesh.triangles)


if __name__ == "__main__":
    pytest.main([__file__])
