"""Localized message templates."""

from .engine import RenderedTemplate, TemplateEngine, TemplateValidation, render_string, strip_html

__all__ = [
    "RenderedTemplate",
    "TemplateEngine",
    "TemplateValidation",
    "render_string",
    "strip_html",
]
