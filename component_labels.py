"""Human-readable labels and icon names for components in the layers panel."""

from __future__ import annotations

import logging
import re
from typing import Any


logger = logging.getLogger("studio.layers")

LABEL_PROP_KEYS = ("title", "text", "label", "heading", "name", "alt", "content", "placeholder")
MAX_LABEL_LENGTH = 30
DEFAULT_ICON = "Box"

_TAG_RE = re.compile(r"<[^>]*>")
_INTERIOR_CAPITAL_RE = re.compile(r"(?<=.)([A-Z])")

COMPONENT_ICONS = {
    # layout
    "Section": "Square",
    "Container": "Box",
    "Columns": "Columns",
    "Column": "RectangleVertical",
    "Card": "CreditCard",
    "Spacer": "ArrowUpDown",
    "Divider": "Minus",
    # typography
    "Heading": "Heading",
    "Text": "AlignLeft",
    "RichText": "FileText",
    "Quote": "Quote",
    "CodeBlock": "Code",
    # buttons and media
    "Button": "MousePointer",
    "Image": "Image",
    "Video": "Video",
    "Map": "MapPin",
    "Gallery": "Images",
    # sections
    "Hero": "Star",
    "Features": "Grid3X3",
    "CTA": "Megaphone",
    "Testimonials": "Quote",
    "FAQ": "HelpCircle",
    "Stats": "BarChart3",
    "Team": "Users",
    "Pricing": "DollarSign",
    # navigation
    "Navbar": "Menu",
    "Footer": "Footprints",
    "SocialLinks": "Share2",
    # forms
    "Form": "ClipboardList",
    "FormField": "FormInput",
    "ContactForm": "Mail",
    "Newsletter": "Newspaper",
}


def _clean_text(value: Any) -> str | None:
    if isinstance(value, dict) and "mobile" in value:
        value = value.get("mobile")
    if not isinstance(value, str):
        return None
    text = _TAG_RE.sub("", value).strip()
    return text or None


def humanize_type(component_type: str) -> str:
    return _INTERIOR_CAPITAL_RE.sub(r" \1", component_type or "").strip()


def get_component_label(component: dict) -> str:
    props = component.get("props") if isinstance(component, dict) else None
    if isinstance(props, dict):
        for key in LABEL_PROP_KEYS:
            text = _clean_text(props.get(key))
            if text is None:
                continue
            if len(text) > MAX_LABEL_LENGTH:
                return text[:MAX_LABEL_LENGTH] + "..."
            return text
    component_type = component.get("type") if isinstance(component, dict) else None
    return humanize_type(component_type if isinstance(component_type, str) else "")


def get_component_icon(component_type: str, registry: Any = None) -> str:
    if registry is not None:
        try:
            definition = registry.get(component_type)
        except Exception as exc:
            logger.warning("component_registry_lookup_failed type=%s error=%s", component_type, exc)
            definition = None
        if isinstance(definition, dict):
            icon = definition.get("icon")
            if isinstance(icon, str) and icon:
                return icon
    return COMPONENT_ICONS.get(component_type, DEFAULT_ICON)
