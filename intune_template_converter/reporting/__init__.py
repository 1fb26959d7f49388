"""Reporting package — conversion result output."""

from .json_export import export_json
from .markdown_report import export_markdown

__all__ = [
    "export_json",
    "export_markdown",
]
