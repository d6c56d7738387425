import numpy as np
from numpy.typing import NDArray
import matplotlib.pyplot as plt
from matplotlib.colors import to_rgba
from matplotlib.patches import Patch
from mpl_toolkits.mplot3d.art3d import Poly3DCollection

from data_types import TriangleMesh


def _set_axes_limits(ax, points):
    mins = points.min(axis=0)
    maxs = points.max(axis=0)
    # Small buffer around the data
    buffer = max(float(np.max(maxs - mins)), 1e-9) * 0.05
    ax.set_xlim(mins[0] - buffer, maxs[0] + buffer)
    ax.set_ylim(mins[1] - buffer, maxs[1] + buffer)
    ax.set_zlim(mins[2] - buffer, maxs[2] + buffer)
    ax.set_box_aspect([1, 1, 1])


def _get_axes(ax, figsize):
    if ax is None:
        fig = plt.figure(figsize=figsize)
        ax = fig.add_subplot(111, projection='3d')
    else:
        fig = ax.figure
    return fig, ax


def plot_mesh(mesh: TriangleMesh, title="3D Mesh", figsize=(12, 10), ax=None, alpha=0.7):
    fig, ax = _get_axes(ax, figsize)

    if mesh.num_faces > 0:
        ax.plot_trisurf(mesh.vertices[:, 0], mesh.vertices[:, 1], mesh.vertices[:, 2],
                        triangles=mesh.triangles, cmap='viridis', edgecolor='black', alpha=alpha)
        _set_axes_limits(ax, mesh.vertices)
    ax.set_title(title)
    ax.set_xlabel("X")
    ax.set_ylabel("Y")
    ax.set_zlabel("Z")
    return fig, ax


def plot_polyhedra(mesh: TriangleMesh, polyhedra: list[NDArray[np.int64]], title="Mesh Polyhedra", figsize=(12, 10),
                   polyhedron_colors=None, edge_color='black', edge_width=0.3, alpha=0.7, ax=None,
                   polyhedron_labels=None):
    """
    Plots a mesh with each polyhedron (connected component) colored distinctly.

    Parameters
    ----------
    mesh : TriangleMesh
        The mesh the polyhedra were computed from.

    polyhedra : list of NDArray[np.int64]
        Triangle indices of each polyhedron, as returned by ``get_polyhedra``.

    polyhedron_colors : list of colors, optional
        One color per polyhedron. Generated from the tab20 colormap if None.

    polyhedron_labels : list of str, optional
        Legend label per polyhedron. "Polyhedron {i}" is used if None.

    ax : matplotlib.axes.Axes, optional
        Existing 3D axes to plot on. If None, a new figure and axes are created.

    Returns
    -------
    fig : matplotlib.figure.Figure
    ax : matplotlib.axes.Axes
    """
    fig, ax = _get_axes(ax, figsize)

    # Generate colors if not provided
    if polyhedron_colors is None:
        cmap = plt.get_cmap('tab20')
        polyhedron_colors = [cmap(i % 20) for i in range(len(polyhedra))]
    if len(polyhedron_colors) < len(polyhedra):
        raise ValueError(f"Not enough colors provided. Need at least {len(polyhedra)} colors.")

    if polyhedron_labels is None:
        polyhedron_labels = [f"Polyhedron {i}" for i in range(len(polyhedra))]

    # Light gray for triangles not in any polyhedron
    face_colors = np.full((mesh.num_faces, 4), (0.9, 0.9, 0.9, alpha))
    for i, polyhedron in enumerate(polyhedra):
        face_colors[polyhedron] = to_rgba(polyhedron_colors[i], alpha)

    # Create a 3D polygon collection from the triangles
    poly3d = Poly3DCollection(mesh.vertices[mesh.triangles], linewidths=edge_width, edgecolors=edge_color)
    poly3d.set_facecolor(face_colors)
    ax.add_collection3d(poly3d)

    # Add a legend
    legend_elements = [Patch(facecolor=color, edgecolor=edge_color, label=label)
                       for color, label in zip(polyhedron_colors[:len(polyhedra)], polyhedron_labels)]
    if legend_elements:
        ax.legend(handles=legend_elements, loc='upper right', frameon=True, fancybox=True, framealpha=0.7)

    # Set axis labels and title
    ax.set_title(title)
    ax.set_xlabel("X")
    ax.set_ylabel("Y")
    ax.set_zlabel("Z")
    if mesh.num_vertices > 0:
        _set_axes_limits(ax, mesh.vertices)

    plt.tight_layout()
    return fig, ax


def plot_cells(cells: NDArray[np.int64], dx: float, mesh: TriangleMesh = None, title="Cells Inside Mesh",
               figsize=(12, 10), color='tab:blue', mesh_alpha=0.2, ax=None):
    """Scatter the centers of grid cells, optionally over a translucent mesh."""
    fig, ax = _get_axes(ax, figsize)

    # Cell centers in world space
    centers = (np.asarray(cells, dtype=np.float64).reshape(-1, 3) + 0.5) * dx
    if len(centers) > 0:
        ax.scatter(centers[:, 0], centers[:, 1], centers[:, 2], c=color, s=8, depthshade=True)

    # Translucent mesh behind the cells
    points = [centers]
    if mesh is not None and mesh.num_faces > 0:
        poly3d = Poly3DCollection(mesh.vertices[mesh.triangles], linewidths=0.2, edgecolors='gray')
        poly3d.set_facecolor((0.8, 0.8, 0.8, mesh_alpha))
        ax.add_collection3d(poly3d)
        points.append(mesh.vertices)

    points = np.concatenate(points)
    if len(points) > 0:
        _set_axes_limits(ax, points)

    ax.set_title(f"{title} ({len(centers)} cells)")
    ax.set_xlabel("X")
    ax.set_ylabel("Y")
    ax.set_zlabel("Z")
    return fig, ax
