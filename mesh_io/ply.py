"""
Binary little-endian PLY reader and writer.

Layout handled::

    ply
    format binary_little_endian 1.0
    element vertex N
    property float x
    property float y
    property float z
    [property uchar red
     property uchar green
     property uchar blue]
    element face M
    property list uchar int vertex_index
    end_header

Vertex records are 12 bytes (xyz float32) or 15 bytes with colors; face
records are one uchar count (always 3) followed by three int32 indices.
"""

import logging
from pathlib import Path
from typing import Union

import numpy as np

from data_types import MeshFormatError, MeshIndexError, MeshIOError, TriangleMesh

logger = logging.getLogger(__name__)

MAX_PLY_HEADER_SIZE = 2048
END_HEADER = "end_header\n"
COLOR_PROPERTIES = "property uchar red\nproperty uchar green\nproperty uchar blue\n"

VERTEX_DTYPE = np.dtype([("position", "<f4", (3,))])
COLOR_VERTEX_DTYPE = np.dtype([("position", "<f4", (3,)), ("color", "u1", (3,))])
FACE_DTYPE = np.dtype([("count", "u1"), ("indices", "<i4", (3,))])


def _get_ply_header(data: bytes) -> str:
    head = data[:MAX_PLY_HEADER_SIZE]
    match = head.find(END_HEADER.encode("ascii"))
    if match == -1:
        raise MeshFormatError(f"No '{END_HEADER.strip()}' within the first {MAX_PLY_HEADER_SIZE} bytes")
    try:
        return head[:match + len(END_HEADER)].decode("ascii")
    except UnicodeDecodeError as e:
        raise MeshFormatError("PLY header is not ASCII") from e


def _get_element_count(header: str, element: str) -> int:
    key = f"element {element} "
    match = header.find(key)
    if match == -1:
        raise MeshFormatError(f"PLY header has no '{key.strip()}' line")

    start = match + len(key)
    end = header.find("\n", start)
    try:
        count = int(header[start:end])
    except ValueError as e:
        raise MeshFormatError(f"Invalid {element} count in PLY header") from e
    if count < 0:
        raise MeshFormatError(f"Negative {element} count in PLY header")
    return count


def _read_records(data: bytes, dtype: np.dtype, count: int, offset: int, what: str) -> np.ndarray:
    if count == 0:
        return np.zeros(0, dtype=dtype)
    if len(data) < offset + count * dtype.itemsize:
        raise MeshFormatError(f"PLY data ends before the {count} {what} records")
    return np.frombuffer(data, dtype=dtype, count=count, offset=offset)


def decode_ply(data: bytes) -> TriangleMesh:
    """
    Build a mesh from the bytes of a binary PLY file.

    Raises:
        MeshFormatError: on a missing or malformed header, truncated data or
            a face that is not a triangle
        MeshIndexError: if a face references a vertex out of range
    """
    header = _get_ply_header(data)
    num_vertices = _get_element_count(header, "vertex")
    num_faces = _get_element_count(header, "face")
    is_color_enabled = COLOR_PROPERTIES in header

    vertex_dtype = COLOR_VERTEX_DTYPE if is_color_enabled else VERTEX_DTYPE
    vertex_offset = len(header)
    vertex_records = _read_records(data, vertex_dtype, num_vertices, vertex_offset, "vertex")

    face_offset = vertex_offset + num_vertices * vertex_dtype.itemsize
    face_records = _read_records(data, FACE_DTYPE, num_faces, face_offset, "face")

    if np.any(face_records["count"] != 3):
        raise MeshFormatError("PLY face with a vertex count other than 3")
    triangles = face_records["indices"].astype(np.int64)
    if len(triangles) and (triangles.min() < 0 or triangles.max() >= num_vertices):
        raise MeshIndexError(f"PLY face references a vertex outside 0..{num_vertices - 1}")

    colors = None
    if is_color_enabled and num_vertices > 0:
        colors = vertex_records["color"].astype(np.float64) / 255.0
    return TriangleMesh(vertex_records["position"].astype(np.float64), triangles, colors=colors)


def encode_ply(mesh: TriangleMesh) -> bytes:
    """Serialize the mesh as binary PLY, with colors when every vertex has one."""
    is_color_enabled = mesh.has_colors

    header = (
        "ply\n"
        "format binary_little_endian 1.0\n"
        f"element vertex {mesh.num_vertices}\n"
        "property float x\n"
        "property float y\n"
        "property float z\n"
    )
    if is_color_enabled:
        header += COLOR_PROPERTIES
    header += (
        f"element face {mesh.num_faces}\n"
        "property list uchar int vertex_index\n"
        + END_HEADER
    )

    vertex_records = np.zeros(mesh.num_vertices, dtype=COLOR_VERTEX_DTYPE if is_color_enabled else VERTEX_DTYPE)
    vertex_records["position"] = mesh.vertices
    if is_color_enabled:
        vertex_records["color"] = (np.clip(mesh.colors, 0.0, 1.0) * 255.0).astype(np.uint8)

    face_records = np.zeros(mesh.num_faces, dtype=FACE_DTYPE)
    face_records["count"] = 3
    face_records["indices"] = mesh.triangles

    return header.encode("ascii") + vertex_records.tobytes() + face_records.tobytes()


def load_ply(path: Union[str, Path]) -> TriangleMesh:
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise MeshIOError(f"Unable to open the PLY file {path}") from e

    mesh = decode_ply(data)
    logger.info("Loaded %s: %d vertices, %d triangles", path, mesh.num_vertices, mesh.num_faces)
    return mesh


def save_ply(mesh: TriangleMesh, path: Union[str, Path]):
    path = Path(path)
    data = encode_ply(mesh)
    try:
        path.write_bytes(data)
    except OSError as e:
        raise MeshIOError(f"Unable to write the PLY file {path}") from e
    logger.info("Saved %s (%d bytes)", path, len(data))
