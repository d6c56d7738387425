"""
Indexed triangle mesh with optional per-vertex colors and normals.

Vertex positions, colors and normals are parallel (V, 3) arrays; triangles are
an (F, 3) array of vertex indices in winding order. Adjacency and area caches
are derived from those arrays and are dropped whenever the mesh is changed
through its methods. Code that edits the arrays in place must call
``invalidate_caches()`` itself.
"""

import logging

import numpy as np
from numpy.typing import NDArray
import trimesh

logger = logging.getLogger(__name__)


def _as_points(values) -> NDArray[np.float64]:
    if values is None:
        return np.zeros((0, 3), dtype=np.float64)
    return np.asarray(values, dtype=np.float64).reshape(-1, 3)


def _as_triangles(values) -> NDArray[np.int64]:
    if values is None:
        return np.zeros((0, 3), dtype=np.int64)
    return np.asarray(values, dtype=np.int64).reshape(-1, 3)


class TriangleMesh:
    def __init__(self, vertices=None, triangles=None, colors=None, normals=None):
        self._vertices = _as_points(vertices)
        self._triangles = _as_triangles(triangles)
        self.colors = _as_points(colors)
        self.normals = _as_points(normals)

        self._vertex_triangles = None
        self._edge_triangles = None
        self._triangle_areas = None

    def __repr__(self):
        return f"TriangleMesh(vertices={self.num_vertices}, triangles={self.num_faces})"

    @property
    def vertices(self) -> NDArray[np.float64]:
        return self._vertices

    @vertices.setter
    def vertices(self, values):
        self._vertices = _as_points(values)
        self.invalidate_caches()

    @property
    def triangles(self) -> NDArray[np.int64]:
        return self._triangles

    @triangles.setter
    def triangles(self, values):
        self._triangles = _as_triangles(values)
        self.invalidate_caches()

    @property
    def num_vertices(self) -> int:
        return len(self._vertices)

    @property
    def num_faces(self) -> int:
        return len(self._triangles)

    @property
    def has_colors(self) -> bool:
        return len(self.colors) > 0 and len(self.colors) == len(self._vertices)

    @property
    def has_normals(self) -> bool:
        return len(self.normals) > 0 and len(self.normals) == len(self._vertices)

    def copy(self) -> "TriangleMesh":
        return TriangleMesh(self._vertices.copy(), self._triangles.copy(),
                            self.colors.copy(), self.normals.copy())

    def clear(self):
        self._vertices = _as_points(None)
        self._triangles = _as_triangles(None)
        self.colors = _as_points(None)
        self.normals = _as_points(None)
        self.invalidate_caches()

    def invalidate_caches(self):
        self._vertex_triangles = None
        self._edge_triangles = None
        self._triangle_areas = None

    def validate(self):
        """Assert the index and parallel-array invariants."""
        assert self._vertices.ndim == 2 and self._vertices.shape[1] == 3
        assert self._triangles.ndim == 2 and self._triangles.shape[1] == 3
        assert len(self.colors) in (0, len(self._vertices)), "colors must be empty or one per vertex"
        assert len(self.normals) in (0, len(self._vertices)), "normals must be empty or one per vertex"
        if self.num_faces == 0:
            return
        assert self._triangles.min() >= 0 and self._triangles.max() < self.num_vertices, \
            "triangle references a vertex out of range"
        t = self._triangles
        assert not np.any((t[:, 0] == t[:, 1]) | (t[:, 1] == t[:, 2]) | (t[:, 2] == t[:, 0])), \
            "triangle with repeated vertex index"

    # ------------------------------------------------------------------
    # Structural edits
    # ------------------------------------------------------------------

    def append(self, mesh: "TriangleMesh"):
        """Append another mesh, offsetting its triangle indices by our vertex count."""
        index_offset = self.num_vertices

        colors_compatible = (self.has_colors or self.num_vertices == 0) and \
                            (mesh.has_colors or mesh.num_vertices == 0)
        normals_compatible = (self.has_normals or self.num_vertices == 0) and \
                             (mesh.has_normals or mesh.num_vertices == 0)

        self.colors = np.vstack([self.colors, mesh.colors]) if colors_compatible else _as_points(None)
        self.normals = np.vstack([self.normals, mesh.normals]) if normals_compatible else _as_points(None)
        self._vertices = np.vstack([self._vertices, mesh.vertices])
        self._triangles = np.vstack([self._triangles, mesh.triangles + index_offset])
        self.invalidate_caches()

    def translate(self, translation):
        self._vertices = self._vertices + np.asarray(translation, dtype=np.float64)

    def remove_triangles(self, removal_triangles):
        """Remove the given triangle indices, preserving the order of the rest."""
        removal_triangles = np.asarray(removal_triangles, dtype=np.int64).ravel()
        if len(removal_triangles) == 0:
            return
        keep = np.ones(self.num_faces, dtype=bool)
        keep[removal_triangles] = False
        self._triangles = self._triangles[keep]
        self.invalidate_caches()

    def remove_extraneous_vertices(self):
        """Drop vertices not referenced by any triangle and reindex the triangles."""
        used = np.zeros(self.num_vertices, dtype=bool)
        used[self._triangles.ravel()] = True
        unused_count = int(np.count_nonzero(~used))
        if unused_count == 0:
            return

        index_translation_table = np.full(self.num_vertices, -1, dtype=np.int64)
        index_translation_table[used] = np.arange(self.num_vertices - unused_count)

        if self.has_colors:
            self.colors = self.colors[used]
        self._vertices = self._vertices[used]
        self._triangles = index_translation_table[self._triangles]
        assert np.all(self._triangles != -1), "triangle references a removed vertex"

        logger.debug("Removed %d extraneous vertices", unused_count)
        self.invalidate_caches()
        self.update_vertex_normals()

    def remove_duplicate_triangles(self):
        """Remove triangles whose ordered index triple repeats an earlier one.

        Survivors come back sorted lexicographically by index triple.
        """
        if self.num_faces == 0:
            return
        unique = np.unique(self._triangles, axis=0)
        if len(unique) != self.num_faces:
            logger.debug("Removed %d duplicate triangles", self.num_faces - len(unique))
        self._triangles = unique
        self.invalidate_caches()

    # ------------------------------------------------------------------
    # Adjacency
    # ------------------------------------------------------------------

    @property
    def vertex_triangles(self) -> list:
        """For each vertex, the indices of the triangles that use it."""
        if self._vertex_triangles is None:
            self.update_vertex_triangles()
        return self._vertex_triangles

    def update_vertex_triangles(self):
        if self.num_vertices == 0:
            self._vertex_triangles = []
            return
        corners = self._triangles.ravel()
        order = np.argsort(corners, kind="stable")
        counts = np.bincount(corners, minlength=self.num_vertices)
        self._vertex_triangles = np.split(order // 3, np.cumsum(counts)[:-1])

    def clear_vertex_triangles(self):
        self._vertex_triangles = None

    @property
    def edge_triangles(self) -> dict:
        """Map from sorted vertex pair to the triangles sharing that edge."""
        if self._edge_triangles is None:
            edge_to_face = {}
            for face_idx, face in enumerate(self._triangles.tolist()):
                for i in range(3):
                    v1, v2 = face[i], face[(i + 1) % 3]
                    edge = (v1, v2) if v1 < v2 else (v2, v1)
                    edge_to_face.setdefault(edge, []).append(face_idx)
            self._edge_triangles = edge_to_face
        return self._edge_triangles

    def get_face_neighbours(self, tidx: int) -> list[int]:
        """Triangles that share an edge with triangle ``tidx`` (excluding itself)."""
        assert 0 <= tidx < self.num_faces
        face = self._triangles[tidx].tolist()
        neighbours = set()
        for i in range(3):
            v1, v2 = face[i], face[(i + 1) % 3]
            edge = (v1, v2) if v1 < v2 else (v2, v1)
            neighbours.update(self.edge_triangles[edge])
        neighbours.discard(tidx)
        return sorted(neighbours)

    def get_vertex_neighbours(self, vidx: int) -> list[int]:
        assert 0 <= vidx < self.num_vertices
        return self.vertex_triangles[vidx].tolist()

    def is_neighbours(self, t1: int, t2: int) -> bool:
        """True if ``t2`` has the same index triple as ``t1`` or as one of its edge neighbours."""
        target = self._triangles[t2]
        if np.array_equal(self._triangles[t1], target):
            return True
        return any(np.array_equal(self._triangles[n], target) for n in self.get_face_neighbours(t1))

    # ------------------------------------------------------------------
    # Normals
    # ------------------------------------------------------------------

    @property
    def face_normals(self) -> NDArray[np.float64]:
        """Geometric unit normals from the triangle winding."""
        tris = self._vertices[self._triangles]
        return trimesh.util.unitize(np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0]))

    def compute_vertex_normals(self) -> NDArray[np.float64]:
        """Renormalized mean of the unit normals of each vertex's triangles."""
        sums = np.zeros_like(self._vertices)
        if self.num_faces > 0:
            face_normals = self.face_normals
            for corner in range(3):
                np.add.at(sums, self._triangles[:, corner], face_normals)
        return trimesh.util.unitize(sums)

    def update_vertex_normals(self):
        self.normals = self.compute_vertex_normals()

    def get_triangle_normal(self, tidx: int) -> NDArray[np.float64]:
        """Renormalized sum of the triangle's stored vertex normals."""
        return trimesh.util.unitize(self.get_triangle_face_direction(tidx))

    def get_triangle_face_direction(self, tidx: int) -> NDArray[np.float64]:
        assert self.has_normals, "vertex normals have not been computed"
        return self.normals[self._triangles[tidx]].sum(axis=0)

    def get_triangle_normal_smooth(self, tidx: int, p) -> NDArray[np.float64]:
        assert self.has_normals, "vertex normals have not been computed"
        bary = self.get_barycentric_coordinates(tidx, p)
        return bary @ self.normals[self._triangles[tidx]]

    # ------------------------------------------------------------------
    # Per-triangle geometry
    # ------------------------------------------------------------------

    def get_triangle_position(self, tidx: int) -> NDArray[np.float64]:
        assert 0 <= tidx < self.num_faces
        return self._vertices[self._triangles[tidx]]

    def get_triangle_center(self, tidx: int) -> NDArray[np.float64]:
        return self.get_triangle_position(tidx).mean(axis=0)

    @property
    def triangle_centers(self) -> NDArray[np.float64]:
        return self._vertices[self._triangles].mean(axis=1)

    def get_barycentric_coordinates(self, tidx: int, p) -> NDArray[np.float64]:
        a, b, c = self.get_triangle_position(tidx)
        p = np.asarray(p, dtype=np.float64)
        normal = np.cross(b - a, c - a)

        area_abc = np.dot(normal, normal)
        area_pbc = np.dot(normal, np.cross(b - p, c - p))
        area_pca = np.dot(normal, np.cross(c - p, a - p))

        bx = area_pbc / area_abc
        by = area_pca / area_abc
        return np.array([bx, by, 1.0 - bx - by])

    def get_triangle_area(self, tidx: int) -> float:
        assert 0 <= tidx < self.num_faces
        if self._triangle_areas is not None:
            return float(self._triangle_areas[tidx])
        return float(trimesh.triangles.area(self.get_triangle_position(tidx)[np.newaxis])[0])

    def update_triangle_areas(self):
        self._triangle_areas = trimesh.triangles.area(self._vertices[self._triangles])

    def clear_triangle_areas(self):
        self._triangle_areas = None

    # ------------------------------------------------------------------
    # Smoothing
    # ------------------------------------------------------------------

    def smooth(self, value: float, iterations: int, vertex_indices=None):
        """
        Laplacian smoothing: move each selected vertex a fraction ``value`` of the
        way toward the mean of the other corners of its triangles.
        """
        value = min(max(value, 0.0), 1.0)
        selected = np.zeros(self.num_vertices, dtype=bool)
        if vertex_indices is None:
            selected[:] = True
        else:
            vertex_indices = np.asarray(vertex_indices, dtype=np.int64)
            assert np.all((vertex_indices >= 0) & (vertex_indices < self.num_vertices))
            selected[vertex_indices] = True

        counts = np.zeros(self.num_vertices)
        for corner in range(3):
            np.add.at(counts, self._triangles[:, corner], 2)
        movable = selected & (counts > 0)

        for _ in range(iterations):
            sums = np.zeros_like(self._vertices)
            for corner in range(3):
                others = self._vertices[self._triangles[:, (corner + 1) % 3]] + \
                         self._vertices[self._triangles[:, (corner + 2) % 3]]
                np.add.at(sums, self._triangles[:, corner], others)
            avg = sums[movable] / counts[movable, np.newaxis]
            new_vertices = self._vertices.copy()
            new_vertices[movable] += value * (avg - self._vertices[movable])
            self._vertices = new_vertices

        self.clear_triangle_areas()
        self.update_vertex_normals()

    # ------------------------------------------------------------------
    # trimesh interop
    # ------------------------------------------------------------------

    def to_trimesh(self) -> trimesh.Trimesh:
        kwargs = {}
        if self.has_normals:
            kwargs["vertex_normals"] = self.normals
        if self.has_colors:
            kwargs["vertex_colors"] = (np.clip(self.colors, 0.0, 1.0) * 255).astype(np.uint8)
        return trimesh.Trimesh(vertices=self._vertices.copy(), faces=self._triangles.copy(),
                               process=False, **kwargs)

    @classmethod
    def from_trimesh(cls, mesh: trimesh.Trimesh) -> "TriangleMesh":
        colors = None
        if getattr(mesh.visual, "kind", None) == "vertex":
            colors = np.asarray(mesh.visual.vertex_colors)[:, :3] / 255.0
        return cls(np.asarray(mesh.vertices), np.asarray(mesh.faces), colors=colors)
