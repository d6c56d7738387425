"""
Wavefront OBJ reader and writer (positions, normals and triangular faces).
"""

import logging
import re
from pathlib import Path
from typing import Union

import numpy as np

from data_types import MeshFormatError, MeshIndexError, MeshIOError, TriangleMesh

logger = logging.getLogger(__name__)

# Face grammars, tried in order: "f 1 2 3", "f 1//1 2//2 3//3", "f 1/1/1 2/2/2 3/3/3"
_FACE_GRAMMARS = (
    re.compile(r"^f\s+(\d+)\s+(\d+)\s+(\d+)$"),
    re.compile(r"^f\s+(\d+)//\d+\s+(\d+)//\d+\s+(\d+)//\d+$"),
    re.compile(r"^f\s+(\d+)/\d+/\d+\s+(\d+)/\d+/\d+\s+(\d+)/\d+/\d+$"),
)


def _parse_face(line: str) -> tuple[int, int, int]:
    for grammar in _FACE_GRAMMARS:
        match = grammar.match(line)
        if match:
            return tuple(int(n) for n in match.groups())
    raise MeshFormatError(f"Unsupported face record: {line!r}")


def _parse_vector(parts: list[str], line: str) -> list[float]:
    if len(parts) < 4:
        raise MeshFormatError(f"Expected three coordinates: {line!r}")
    try:
        return [float(parts[1]), float(parts[2]), float(parts[3])]
    except ValueError as e:
        raise MeshFormatError(f"Invalid coordinate in {line!r}") from e


def load_obj(path: Union[str, Path], offset=(0.0, 0.0, 0.0), scale: float = 1.0) -> TriangleMesh:
    """
    Load a triangulated OBJ file.

    Vertex positions are transformed to ``scale * v + offset``. Exact duplicate
    triangles are dropped. Normals are kept when the file has one per vertex;
    otherwise they are computed from the geometry.

    Raises:
        MeshIOError: if the file cannot be read
        MeshFormatError: if a record does not match a supported grammar
        MeshIndexError: if a face references a missing vertex
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise MeshFormatError(f"OBJ file {path} is not valid text") from e
    except OSError as e:
        raise MeshIOError(f"Unable to open the OBJ file {path}") from e

    vertices = []
    normals = []
    triangles = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        parts = line.split()
        if parts[0] == "v":
            vertices.append(_parse_vector(parts, line))
        elif parts[0] == "vn":
            normals.append(_parse_vector(parts, line))
        elif parts[0] == "f":
            triangles.append(_parse_face(" ".join(parts)))

    vertices = np.array(vertices, dtype=np.float64).reshape(-1, 3) * scale + np.asarray(offset, dtype=np.float64)
    triangles = np.array(triangles, dtype=np.int64).reshape(-1, 3) - 1
    if len(triangles) and (triangles.min() < 0 or triangles.max() >= len(vertices)):
        raise MeshIndexError(f"Face references a vertex outside 1..{len(vertices)} in {path}")

    mesh = TriangleMesh(vertices, triangles)
    mesh.remove_duplicate_triangles()
    if len(normals) > 0 and len(normals) == len(vertices):
        mesh.normals = np.array(normals, dtype=np.float64)
    else:
        mesh.update_vertex_normals()

    logger.info("Loaded %s: %d vertices, %d triangles", path, mesh.num_vertices, mesh.num_faces)
    return mesh


def save_obj(mesh: TriangleMesh, path: Union[str, Path]):
    """Write positions, one normal per vertex and ``f v//v`` faces."""
    if len(mesh.normals) != mesh.num_vertices:
        raise ValueError("Saving OBJ requires one normal per vertex; call update_vertex_normals() first")

    lines = [
        "# OBJ file format with ext .obj",
        f"# vertex count = {mesh.num_vertices}",
        f"# face count = {mesh.num_faces}",
    ]
    lines.extend(f"v {x:.9g} {y:.9g} {z:.9g}" for x, y, z in mesh.vertices.tolist())
    lines.extend(f"vn {x:.9g} {y:.9g} {z:.9g}" for x, y, z in mesh.normals.tolist())
    for v1, v2, v3 in (mesh.triangles + 1).tolist():
        lines.append(f"f {v1}//{v1} {v2}//{v2} {v3}//{v3}")

    path = Path(path)
    try:
        path.write_text("\n".join(lines) + "\n")
    except OSError as e:
        raise MeshIOError(f"Unable to write the OBJ file {path}") from e
    logger.info("Saved %s", path)
