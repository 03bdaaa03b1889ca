"""
Source generation for plugforge.

This module turns an agent configuration into a buildable source tree:
- Placeholder and conditional substitution over templates
- Translation of tool implementations into Go and Python
- Writing main.go, go.mod, per-tool sources and the Python service
"""

from .expressions import (
    GoTranslator,
    PythonTranslator,
    UnsupportedExpressionError,
    parse_implementation,
    translate_implementation,
)
from .source_generator import SourceGenerator
from .template_engine import TemplateEngine, TemplateRenderError, build_placeholders

__all__ = [
    "GoTranslator",
    "PythonTranslator",
    "UnsupportedExpressionError",
    "parse_implementation",
    "translate_implementation",
    "SourceGenerator",
    "TemplateEngine",
    "TemplateRenderError",
    "build_placeholders",
]
