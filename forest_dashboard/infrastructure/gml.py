"""
Decoding of map server feature payloads.

GeoServer answers WFS requests with GeoJSON or GML depending on the
request and its own configuration, and does not always label the
response correctly. Both encodings are decoded into the same normalized
feature shape: {"type": "Feature", "id", "properties", "geometry"}.
"""
from typing import Any, Optional
import json
import logging
import re
import xml.etree.ElementTree as ET

from forest_dashboard.infrastructure.errors import FeatureParseError

logger = logging.getLogger(__name__)

GEOMETRY_TAGS = {"the_geom", "geom", "geometry", "shape"}


def strip_ns(tag: str) -> str:
    return tag.split("}", 1)[-1] if "}" in tag else tag


def _numbers(text: Optional[str]) -> list[float]:
    try:
        return [float(n) for n in re.split(r"[\s,]+", (text or "").strip()) if n]
    except ValueError as e:
        raise FeatureParseError(f"Invalid coordinate text: {text!r}") from e


def _pairs(text: Optional[str], dimension: int = 2) -> list[list[float]]:
    values = _numbers(text)
    return [values[i:i + 2] for i in range(0, len(values) - dimension + 1, dimension)]


def _find(element: ET.Element, name: str) -> Optional[ET.Element]:
    for child in element.iter():
        if strip_ns(child.tag) == name:
            return child
    return None


def _ring_coordinates(ring: ET.Element) -> list[list[float]]:
    pos_list = _find(ring, "posList")
    if pos_list is not None:
        raw_dimension = pos_list.get("srsDimension") or pos_list.get("dimension") or 2
        try:
            dimension = int(raw_dimension)
        except ValueError as e:
            raise FeatureParseError(f"Invalid srsDimension: {raw_dimension!r}") from e
        if dimension < 2:
            raise FeatureParseError(f"Invalid srsDimension: {raw_dimension!r}")
        return _pairs(pos_list.text, dimension)
    coordinates = _find(ring, "coordinates")
    if coordinates is not None:
        return _pairs(coordinates.text)
    return [_numbers(pos.text)[:2] for pos in ring.iter() if strip_ns(pos.tag) == "pos"]


def extract_geometry(node: ET.Element) -> Optional[dict[str, Any]]:
    """
    Convert a GML geometry property into a GeoJSON geometry.

    Supports Point and Polygon (exterior ring, plus interior rings).
    The first polygon of a MultiPolygon / MultiSurface is used.
    """
    point = _find(node, "Point")
    if point is not None:
        pos = _find(point, "pos")
        if pos is None:
            pos = _find(point, "coordinates")
        if pos is not None:
            coords = _numbers(pos.text)
            if len(coords) >= 2:
                return {"type": "Point", "coordinates": coords[:2]}
        return None

    polygon = _find(node, "Polygon")
    if polygon is not None:
        rings = []
        for child in polygon:
            if strip_ns(child.tag) in ("exterior", "outerBoundaryIs", "interior", "innerBoundaryIs"):
                ring = _ring_coordinates(child)
                if len(ring) >= 3:
                    rings.append(ring)
        if rings:
            return {"type": "Polygon", "coordinates": rings}
    return None


def parse_gml_features(xml_text: str) -> list[dict[str, Any]]:
    """
    Parse a GML feature collection.

    Args:
        xml_text: GML / WFS XML response body

    Returns:
        List of normalized features; empty for service exceptions

    Raises:
        FeatureParseError: If the payload is not well-formed XML or has
            unreadable coordinates
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise FeatureParseError(f"Malformed XML payload: {e}") from e

    for element in root.iter():
        if strip_ns(element.tag) in ("ServiceException", "ExceptionText"):
            logger.error(f"Map server error: {(element.text or '').strip()}")
            return []

    features = []
    for member in root.iter():
        if strip_ns(member.tag) not in ("featureMember", "member", "featureMembers"):
            continue
        for node in member:
            properties: dict[str, Any] = {}
            geometry = None
            for child in node:
                name = strip_ns(child.tag)
                if name in GEOMETRY_TAGS or "geom" in name.lower():
                    geometry = extract_geometry(child)
                    continue
                if len(child) == 0:
                    properties[name] = child.text
            fid = None
            for key, value in node.attrib.items():
                if strip_ns(key) in ("fid", "id"):
                    fid = value
            features.append({
                "type": "Feature",
                "id": fid,
                "properties": properties,
                "geometry": geometry,
            })
    return features


def parse_json_features(text: str) -> list[dict[str, Any]]:
    """
    Parse a GeoJSON FeatureCollection body.

    Raises:
        FeatureParseError: If the payload is not JSON
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise FeatureParseError(f"Malformed JSON payload: {e}") from e
    if not isinstance(data, dict):
        return []
    features = data.get("features") or []
    if not isinstance(features, list):
        return []
    return [f for f in features if isinstance(f, dict)]


def parse_feature_payload(text: str, content_type: str = "") -> list[dict[str, Any]]:
    """
    Decode a feature payload using its content type as a hint.

    Unknown content types are tried as JSON first and then as GML.

    Raises:
        FeatureParseError: If the payload cannot be decoded at all
    """
    content_type = (content_type or "").lower()
    if "json" in content_type:
        return parse_json_features(text)
    if "xml" in content_type or "gml" in content_type:
        return parse_gml_features(text)
    try:
        return parse_json_features(text)
    except FeatureParseError:
        return parse_gml_features(text)
