from .mesh_plotting import plot_cells, plot_mesh, plot_polyhedra
