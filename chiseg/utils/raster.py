from typing import Callable, Mapping, Tuple, Union

import numpy as np
import rioxarray  # noqa: F401
import xarray as xr
from shapely.geometry import Point


def pixel_to_point(raster: xr.DataArray, row: int, col: int) -> Point:
    """
    Converts the row and column of a raster array to a Point at the cell
    center.

    Parameters
    ----------
    raster : xr.DataArray
        The rioxarray raster from which the coordinate is derived.
    row : int
        The row index (y-coordinate) in the raster array.
    col : int
        The column index (x-coordinate) in the raster array.

    Returns
    -------
    Point
        A Shapely Point in the coordinate system of the raster.
    """
    x, y = pixels_to_xy(raster, row, col)
    return Point(float(x), float(y))


def pixels_to_xy(raster: xr.DataArray, rows, cols) -> Tuple[np.ndarray, np.ndarray]:
    """Cell center coordinates of arrays of rows and columns"""
    transform = raster.rio.transform()
    cols = np.asarray(cols, dtype=float) + 0.5
    rows = np.asarray(rows, dtype=float) + 0.5
    x = transform.c + cols * transform.a + rows * transform.b
    y = transform.f + cols * transform.d + rows * transform.e
    return x, y


def grid_locator(
    raster: xr.DataArray,
    node_rowcol: Union[Mapping[int, Tuple[int, int]], Callable[[int], Tuple[int, int]]],
) -> Callable[[int], Tuple[float, float]]:
    """
    Returns node -> (x, y) for nodes of a flow network laid on raster.

    Parameters
    ----------
    raster : xr.DataArray
        Raster the flow network was built on
    node_rowcol : mapping or callable
        node -> (row, col), e.g. a dict or the flow network lookup
    """
    lookup = node_rowcol.__getitem__ if isinstance(node_rowcol, Mapping) else node_rowcol

    def node_to_xy(node):
        row, col = lookup(node)
        x, y = pixels_to_xy(raster, row, col)
        return float(x), float(y)

    return node_to_xy
