"""Target shapes for slide content, derived from layout JSON schemas.

A layout's JSON schema is converted once into a ``TargetShape`` tree. Image
and icon slots are tagged ``MEDIA`` at conversion time, so placeholder and
fallback synthesis branch on the kind rather than sniffing dict keys.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


TRANSPARENT_IMAGE_DATA_URL = (
    "data:image/gif;base64,R0lGODlhAQABAIAAAAAAAP///ywAAAAAAQABAAACAUwAOw=="
)
PLACEHOLDER_TEXT = " "
DEFAULT_ARRAY_ITEMS = 3
MAX_PLACEHOLDER_ITEMS = 6

# (url key, prompt key) pairs that mark a media slot
MEDIA_KEY_PAIRS: tuple[tuple[str, str], ...] = (
    ("__image_url__", "__image_prompt__"),
    ("__icon_url__", "__icon_query__"),
)


class ShapeKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ENUM = "enum"
    ARRAY = "array"
    OBJECT = "object"
    MEDIA = "media"


@dataclass(frozen=True, slots=True)
class TargetShape:
    """Recursive description of the value a slide field must hold."""

    kind: ShapeKind
    properties: dict[str, TargetShape] = field(default_factory=dict)
    items: TargetShape | None = None
    enum_values: tuple[Any, ...] = ()
    min_items: int = 0
    max_items: int = 0
    media_keys: tuple[str, str] | None = None

    @property
    def preferred_item_count(self) -> int:
        """Placeholder length for arrays: minItems, else maxItems, else 3; 1..6."""
        if self.min_items > 0:
            preferred = self.min_items
        elif self.max_items > 0:
            preferred = self.max_items
        else:
            preferred = DEFAULT_ARRAY_ITEMS
        return max(1, min(preferred, MAX_PLACEHOLDER_ITEMS))

    @classmethod
    def from_json_schema(cls, schema: Mapping[str, Any] | None) -> TargetShape:
        schema = schema or {}
        enum_values = schema.get("enum")
        if isinstance(enum_values, list) and enum_values:
            return cls(ShapeKind.ENUM, enum_values=tuple(enum_values))

        schema_type = _primary_type(schema.get("type"))
        if schema_type == "string":
            return cls(ShapeKind.STRING)
        if schema_type in {"number", "integer"}:
            return cls(ShapeKind.NUMBER)
        if schema_type == "boolean":
            return cls(ShapeKind.BOOLEAN)
        if schema_type == "array" or (schema_type is None and "items" in schema):
            items = schema.get("items")
            return cls(
                ShapeKind.ARRAY,
                items=cls.from_json_schema(items) if isinstance(items, Mapping) else None,
                min_items=_as_count(schema.get("minItems")),
                max_items=_as_count(schema.get("maxItems")),
            )

        properties = schema.get("properties")
        if not isinstance(properties, Mapping):
            properties = {}
        for url_key, prompt_key in MEDIA_KEY_PAIRS:
            if url_key in properties and prompt_key in properties:
                return cls(ShapeKind.MEDIA, media_keys=(url_key, prompt_key))
        return cls(
            ShapeKind.OBJECT,
            properties={
                str(name): cls.from_json_schema(sub)
                for name, sub in properties.items()
                if isinstance(sub, Mapping)
            },
        )


def _primary_type(value: Any) -> str | None:
    if isinstance(value, list):
        non_null = [t for t in value if t != "null"]
        return non_null[0] if non_null else None
    return value if isinstance(value, str) else None


def _as_count(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return max(value, 0)


def build_placeholder(shape: TargetShape) -> Any:
    """Structure-only content shown before any text has been generated."""
    if shape.kind is ShapeKind.ENUM:
        return shape.enum_values[0]
    if shape.kind is ShapeKind.STRING:
        return PLACEHOLDER_TEXT
    if shape.kind is ShapeKind.NUMBER:
        return 0
    if shape.kind is ShapeKind.BOOLEAN:
        return False
    if shape.kind is ShapeKind.ARRAY:
        item = shape.items or TargetShape(ShapeKind.OBJECT)
        return [build_placeholder(item) for _ in range(shape.preferred_item_count)]
    if shape.kind is ShapeKind.MEDIA:
        url_key, prompt_key = shape.media_keys or MEDIA_KEY_PAIRS[0]
        return {url_key: TRANSPARENT_IMAGE_DATA_URL, prompt_key: PLACEHOLDER_TEXT}
    return {name: build_placeholder(sub) for name, sub in shape.properties.items()}


def build_fallback(shape: TargetShape, seed: str) -> dict[str, Any]:
    """Minimal structurally valid content for a slide whose generation failed.

    The first string field reached depth-first receives ``seed`` (the slide's
    outline text); every other field gets an empty default. Arrays hold one
    item. A non-object shape is wrapped as ``{"content": value}``.
    """
    seed_used = False

    def infer(node: TargetShape) -> Any:
        nonlocal seed_used
        if node.kind is ShapeKind.ENUM:
            return node.enum_values[0]
        if node.kind is ShapeKind.STRING:
            if seed_used:
                return ""
            seed_used = True
            return seed
        if node.kind is ShapeKind.NUMBER:
            return 0
        if node.kind is ShapeKind.BOOLEAN:
            return False
        if node.kind is ShapeKind.ARRAY:
            return [infer(node.items)] if node.items is not None else []
        if node.kind is ShapeKind.MEDIA:
            url_key, prompt_key = node.media_keys or MEDIA_KEY_PAIRS[0]
            return {url_key: "", prompt_key: ""}
        return {name: infer(sub) for name, sub in node.properties.items()}

    value = infer(shape)
    if isinstance(value, dict):
        return value
    return {"content": value}
