"""WMTS and WMS capabilities documents for an exported overlay.

Builds the XML a tile or map server would publish for the exported layer.
The layer title and identifier (name for WMS) are the export name and the
scale range is derived from the requested zoom levels using the Web
Mercator 256 pixel scale set, where zoom 0 is 1:559082264.03.

Uses only xml.etree.ElementTree. Elements are written with literal
prefixes and the namespaces declared on the root element.

Example:
    >>> xml = wmts_capabilities("dem", min_zoom=10, max_zoom=16)
    >>> xml.startswith(b"<?xml")
    True
"""

from __future__ import annotations

import xml.etree.ElementTree as ET

WMTS_NS = "http://www.opengis.net/wmts/1.0"
WMS_NS = "http://www.opengis.net/wms"
OWS_NS = "http://www.opengis.net/ows/1.1"
XLINK_NS = "http://www.w3.org/1999/xlink"

TILE_MATRIX_SET = "GoogleMapsCompatible"
ZOOM_0_SCALE_DENOMINATOR = 559082264.0287178
WEB_MERCATOR_ORIGIN = "-20037508.3427892 20037508.3427892"
TILE_SIZE = 256

BBox = tuple[float, float, float, float]


def scale_denominator(zoom: int) -> float:
    """Scale denominator of a 256px Web Mercator tile at ``zoom``."""
    return ZOOM_0_SCALE_DENOMINATOR / (2**zoom)


def _text(parent: ET.Element, tag: str, text: str) -> ET.Element:
    elem = ET.SubElement(parent, tag)
    elem.text = text
    return elem


def wmts_capabilities(
    layer_name: str,
    min_zoom: int,
    max_zoom: int,
    bounds: BBox | None = None,
) -> bytes:
    """Build a WMTS 1.0.0 capabilities document.

    Args:
        layer_name: Title and identifier of the single layer.
        min_zoom: First TileMatrix of the GoogleMapsCompatible set.
        max_zoom: Last TileMatrix of the set.
        bounds: Optional WGS84 (west, south, east, north) layer extent.

    Returns:
        UTF-8 encoded XML.
    """
    root = ET.Element("Capabilities")
    root.set("xmlns", WMTS_NS)
    root.set("xmlns:ows", OWS_NS)
    root.set("xmlns:xlink", XLINK_NS)
    root.set("version", "1.0.0")

    service = ET.SubElement(root, "ows:ServiceIdentification")
    _text(service, "ows:Title", "GeoTIFF Visualizer WMTS")
    _text(service, "ows:ServiceType", "OGC WMTS")
    _text(service, "ows:ServiceTypeVersion", "1.0.0")

    contents = ET.SubElement(root, "Contents")
    layer = ET.SubElement(contents, "Layer")
    _text(layer, "ows:Title", layer_name)
    if bounds is not None:
        bbox = ET.SubElement(layer, "ows:WGS84BoundingBox")
        _text(bbox, "ows:LowerCorner", f"{bounds[0]} {bounds[1]}")
        _text(bbox, "ows:UpperCorner", f"{bounds[2]} {bounds[3]}")
    _text(layer, "ows:Identifier", layer_name)
    style = ET.SubElement(layer, "Style", {"isDefault": "true"})
    _text(style, "ows:Identifier", "default")
    _text(layer, "Format", "image/png")
    link = ET.SubElement(layer, "TileMatrixSetLink")
    _text(link, "TileMatrixSet", TILE_MATRIX_SET)

    matrix_set = ET.SubElement(contents, "TileMatrixSet")
    _text(matrix_set, "ows:Identifier", TILE_MATRIX_SET)
    _text(matrix_set, "ows:SupportedCRS", "urn:ogc:def:crs:EPSG::3857")
    for zoom in range(min_zoom, max_zoom + 1):
        matrix = ET.SubElement(matrix_set, "TileMatrix")
        _text(matrix, "ows:Identifier", str(zoom))
        _text(matrix, "ScaleDenominator", repr(scale_denominator(zoom)))
        _text(matrix, "TopLeftCorner", WEB_MERCATOR_ORIGIN)
        _text(matrix, "TileWidth", str(TILE_SIZE))
        _text(matrix, "TileHeight", str(TILE_SIZE))
        _text(matrix, "MatrixWidth", str(2**zoom))
        _text(matrix, "MatrixHeight", str(2**zoom))

    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def wms_capabilities(
    layer_name: str,
    min_zoom: int,
    max_zoom: int,
    bounds: BBox | None = None,
    service_url: str = "http://localhost/wms",
) -> bytes:
    """Build a WMS 1.3.0 capabilities document.

    The layer is visible between the scale of ``max_zoom``
    (MinScaleDenominator) and the scale of ``min_zoom``
    (MaxScaleDenominator).

    Args:
        layer_name: Title and name of the single layer.
        min_zoom: Coarsest zoom level the layer is shown at.
        max_zoom: Finest zoom level the layer is shown at.
        bounds: Optional WGS84 (west, south, east, north) layer extent.
        service_url: Online resource advertised for requests.

    Returns:
        UTF-8 encoded XML.
    """
    root = ET.Element("WMS_Capabilities")
    root.set("xmlns", WMS_NS)
    root.set("xmlns:xlink", XLINK_NS)
    root.set("version", "1.3.0")

    service = ET.SubElement(root, "Service")
    _text(service, "Name", "WMS")
    _text(service, "Title", "GeoTIFF Visualizer WMS")
    ET.SubElement(service, "OnlineResource", {"xlink:href": service_url})

    capability = ET.SubElement(root, "Capability")
    request = ET.SubElement(capability, "Request")
    for operation, fmt in (
        ("GetCapabilities", "text/xml"),
        ("GetMap", "image/png"),
    ):
        op = ET.SubElement(request, operation)
        _text(op, "Format", fmt)
        http = ET.SubElement(ET.SubElement(op, "DCPType"), "HTTP")
        ET.SubElement(
            ET.SubElement(http, "Get"),
            "OnlineResource",
            {"xlink:href": service_url},
        )
    exception = ET.SubElement(capability, "Exception")
    _text(exception, "Format", "XML")

    layer = ET.SubElement(capability, "Layer", {"queryable": "0"})
    _text(layer, "Name", layer_name)
    _text(layer, "Title", layer_name)
    _text(layer, "CRS", "EPSG:3857")
    _text(layer, "CRS", "EPSG:4326")
    if bounds is not None:
        geo_bbox = ET.SubElement(layer, "EX_GeographicBoundingBox")
        _text(geo_bbox, "westBoundLongitude", str(bounds[0]))
        _text(geo_bbox, "eastBoundLongitude", str(bounds[2]))
        _text(geo_bbox, "southBoundLatitude", str(bounds[1]))
        _text(geo_bbox, "northBoundLatitude", str(bounds[3]))
    _text(layer, "MinScaleDenominator", repr(scale_denominator(max_zoom)))
    _text(layer, "MaxScaleDenominator", repr(scale_denominator(min_zoom)))

    return ET.tostring(root, encoding="utf-8", xml_declaration=True)
