from .api import ApiSurface, build_base_api
from .extensions import CustomFunction, ExtensionError, merge_extensions
from .renderer import render_document, render_preview_page, render_segment

__all__ = [
    "ApiSurface",
    "CustomFunction",
    "ExtensionError",
    "build_base_api",
    "merge_extensions",
    "render_document",
    "render_preview_page",
    "render_segment",
]
