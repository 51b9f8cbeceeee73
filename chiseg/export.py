"""
Export of merged chi statistics.

The node table is joined with coordinates supplied by the caller, either
geographic (node_to_geo) or projected (node_to_xy with a crs, reprojected to
EPSG:4326 here), and written as comma separated text.
"""
from typing import Callable, Optional

import geopandas as gpd
import numpy as np
import pandas as pd
import rioxarray  # noqa: F401
import xarray as xr
from loguru import logger

from chiseg.config import ChiConfig
from chiseg.utils.raster import pixels_to_xy

logger.bind(module="export")

CHI_DATA_COLUMNS = ["latitude", "longitude", "chi", "elevation", "m_chi", "b_chi"]
CHI_MAP_COLUMNS = ["latitude", "longitude", "chi"]
FLOAT_FORMAT = "%.9g"


def node_table_to_geodataframe(
    table, node_to_xy: Callable[[int], tuple], crs
) -> gpd.GeoDataFrame:
    """
    Point per node of a GlobalNodeTable.

    Parameters
    ----------
    table : GlobalNodeTable
        Merged node statistics
    node_to_xy : callable
        node -> (x, y) in crs
    crs : pyproj.CRS or str
        Coordinate system of node_to_xy

    Returns
    -------
    gpd.GeoDataFrame
        The columns of table.to_dataframe() with point geometries
    """
    df = table.to_dataframe()
    xy = np.array([node_to_xy(node) for node in df["node"]], dtype=float).reshape(-1, 2)
    return gpd.GeoDataFrame(
        df, geometry=gpd.points_from_xy(xy[:, 0], xy[:, 1]), crs=crs
    )


def _geographic(x, y, crs):
    points = gpd.GeoSeries(gpd.points_from_xy(x, y), crs=crs).to_crs("EPSG:4326")
    return points.y.to_numpy(), points.x.to_numpy()


def write_chi_data_csv(
    table,
    path,
    node_to_geo: Optional[Callable[[int], tuple]] = None,
    node_to_xy: Optional[Callable[[int], tuple]] = None,
    crs=None,
) -> pd.DataFrame:
    """
    Write the chi segmentation results with the header
    latitude,longitude,chi,elevation,m_chi,b_chi

    Parameters
    ----------
    table : GlobalNodeTable
        Merged node statistics
    path : str or Path
        Output file
    node_to_geo : callable, optional
        node -> (latitude, longitude)
    node_to_xy : callable, optional
        node -> (x, y) in crs, used when node_to_geo is not given
    crs : pyproj.CRS or str, optional
        Coordinate system of node_to_xy

    Returns
    -------
    pd.DataFrame
        The rows written
    """
    df = table.to_dataframe()
    if node_to_geo is not None:
        coords = np.array([node_to_geo(node) for node in df["node"]], dtype=float)
        coords = coords.reshape(-1, 2)
        lat, lon = coords[:, 0], coords[:, 1]
    elif node_to_xy is not None:
        if crs is None:
            raise ValueError("crs is required with node_to_xy")
        xy = np.array([node_to_xy(node) for node in df["node"]], dtype=float)
        xy = xy.reshape(-1, 2)
        lat, lon = _geographic(xy[:, 0], xy[:, 1], crs)
    else:
        raise ValueError("Either node_to_geo or node_to_xy must be provided")

    out = pd.DataFrame(
        {
            "latitude": lat,
            "longitude": lon,
            "chi": df["chi"].to_numpy(),
            "elevation": df["elevation"].to_numpy(),
            "m_chi": df["m_chi"].to_numpy(),
            "b_chi": df["b_chi"].to_numpy(),
        },
        columns=CHI_DATA_COLUMNS,
    )
    out.to_csv(path, index=False, float_format=FLOAT_FORMAT)
    logger.debug(f"Wrote {len(out)} nodes to {path}")
    return out


def chi_map_to_csv(
    chi: xr.DataArray,
    path,
    area: Optional[xr.DataArray] = None,
    area_threshold: Optional[float] = None,
    config: Optional[ChiConfig] = None,
) -> pd.DataFrame:
    """
    Write every finite cell of a chi raster as latitude,longitude,chi

    Parameters
    ----------
    chi : xr.DataArray
        Chi coordinate raster with rioxarray georeferencing
    path : str or Path
        Output file
    area : xr.DataArray, optional
        Drainage area raster aligned with chi
    area_threshold : float, optional
        Cells draining less than this area are left out. Defaults to
        config.threshold_area_for_chi
    config : ChiConfig, optional
        Chi parameters, see help(ChiConfig)

    Returns
    -------
    pd.DataFrame
        The rows written
    """
    crs = chi.rio.crs
    if crs is None:
        raise ValueError("chi raster has no coordinate reference system")

    if area_threshold is None and config is not None:
        area_threshold = config.threshold_area_for_chi

    mask = np.isfinite(chi.values)
    if area is not None and area_threshold:
        if area.shape != chi.shape:
            raise ValueError("area raster must match the shape of the chi raster")
        mask &= area.values >= area_threshold

    rows, cols = np.nonzero(mask)
    x, y = pixels_to_xy(chi, rows, cols)
    lat, lon = _geographic(x, y, crs)

    out = pd.DataFrame(
        {"latitude": lat, "longitude": lon, "chi": chi.values[rows, cols]},
        columns=CHI_MAP_COLUMNS,
    )
    out.to_csv(path, index=False, float_format=FLOAT_FORMAT)
    logger.debug(f"Wrote {len(out)} chi cells to {path}")
    return out
