"""Tests for WMTS / WMS capabilities generation.

Documents are parsed back with ElementTree and checked for the layer
name, the optional bounding box and the zoom derived scale range.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET

import pytest

from geoview.services import capabilities

NS = {
    "wmts": capabilities.WMTS_NS,
    "wms": capabilities.WMS_NS,
    "ows": capabilities.OWS_NS,
    "xlink": capabilities.XLINK_NS,
}


def test_scale_denominator_halves_per_zoom() -> None:
    assert capabilities.scale_denominator(0) == pytest.approx(559082264.03)
    assert capabilities.scale_denominator(10) == pytest.approx(
        capabilities.scale_denominator(9) / 2
    )


def test_wmts_document() -> None:
    xml = capabilities.wmts_capabilities(
        "dem", 8, 10, bounds=(15.0, 45.5, 15.5, 46.0)
    )
    assert xml.startswith(b"<?xml")
    root = ET.fromstring(xml)
    assert root.tag == f"{{{capabilities.WMTS_NS}}}Capabilities"
    assert root.get("version") == "1.0.0"

    layer = root.find("wmts:Contents/wmts:Layer", NS)
    assert layer is not None
    assert layer.findtext("ows:Title", namespaces=NS) == "dem"
    assert layer.findtext("ows:Identifier", namespaces=NS) == "dem"
    assert layer.findtext("wmts:Format", namespaces=NS) == "image/png"
    assert (
        layer.findtext("ows:WGS84BoundingBox/ows:LowerCorner", namespaces=NS)
        == "15.0 45.5"
    )

    matrices = root.findall(
        "wmts:Contents/wmts:TileMatrixSet/wmts:TileMatrix", NS
    )
    assert [m.findtext("ows:Identifier", namespaces=NS) for m in matrices] == [
        "8",
        "9",
        "10",
    ]
    scale = float(matrices[0].findtext("wmts:ScaleDenominator", namespaces=NS))
    assert scale == pytest.approx(capabilities.scale_denominator(8))
    assert matrices[2].findtext("wmts:MatrixWidth", namespaces=NS) == "1024"


def test_wmts_without_bounds() -> None:
    root = ET.fromstring(capabilities.wmts_capabilities("dem", 3, 3))
    assert root.find(".//ows:WGS84BoundingBox", NS) is None
    assert len(root.findall(".//wmts:TileMatrix", NS)) == 1


def test_wms_document() -> None:
    xml = capabilities.wms_capabilities(
        "ortho & dem", 10, 16, bounds=(1.0, 2.0, 3.0, 4.0)
    )
    root = ET.fromstring(xml)
    assert root.tag == f"{{{capabilities.WMS_NS}}}WMS_Capabilities"
    assert root.get("version") == "1.3.0"

    layer = root.find("wms:Capability/wms:Layer", NS)
    assert layer is not None
    assert layer.findtext("wms:Name", namespaces=NS) == "ortho & dem"
    assert layer.findtext("wms:Title", namespaces=NS) == "ortho & dem"
    assert [c.text for c in layer.findall("wms:CRS", NS)] == [
        "EPSG:3857",
        "EPSG:4326",
    ]
    bbox = layer.find("wms:EX_GeographicBoundingBox", NS)
    assert bbox is not None
    assert bbox.findtext("wms:eastBoundLongitude", namespaces=NS) == "3.0"

    min_scale = float(layer.findtext("wms:MinScaleDenominator", namespaces=NS))
    max_scale = float(layer.findtext("wms:MaxScaleDenominator", namespaces=NS))
    assert min_scale == pytest.approx(capabilities.scale_denominator(16))
    assert max_scale == pytest.approx(capabilities.scale_denominator(10))
    assert min_scale < max_scale


def test_wms_online_resource() -> None:
    root = ET.fromstring(
        capabilities.wms_capabilities(
            "dem", 1, 2, service_url="https://maps.example/wms"
        )
    )
    resource = root.find("wms:Service/wms:OnlineResource", NS)
    assert resource is not None
    assert resource.get(f"{{{capabilities.XLINK_NS}}}href") == (
        "https://maps.example/wms"
    )
    get_map = root.find("wms:Capability/wms:Request/wms:GetMap", NS)
    assert get_map is not None
    assert get_map.findtext("wms:Format", namespaces=NS) == "image/png"
