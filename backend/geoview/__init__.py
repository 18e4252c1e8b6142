"""Backend for previewing and exporting a single georeferenced raster.

A user uploads one GeoTIFF; the service checks that it carries enough
spatial referencing to be placed on a map, attaches it as the overlay of
a map surface (replacing any previous overlay) and serves it as XYZ tiles
over an interactive base map. The same raster can then be exported as
MBTiles, a zipped tile directory, or WMTS / WMS capability documents.

- Header-only GeoTIFF parsing with tifffile
- Georeferencing validation accepting GeoKey directories and the older
  tie-point / pixel-scale convention
- Process-wide, self-repairing pyproj CRS registry
- One overlay per map surface, newest upload wins
- On-demand PNG tiles via rio-tiler; tile pyramids via gdal2tiles

See module sub-docstrings for details on architecture and usage.
"""
