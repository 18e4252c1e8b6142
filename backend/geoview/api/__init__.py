"""API router subpackage for the overlay viewer backend.

Submodules:
    - maps: Upload a raster to a map surface, read back or clear its
      overlay and viewport, tear the surface down.
    - exports: Download the attached raster as MBTiles, a tile directory
      zip, or WMTS / WMS capabilities.
    - tiles: Serve the attached overlay as XYZ PNG tiles.

Routers are grouped by feature and composed in geoview.main.
"""
