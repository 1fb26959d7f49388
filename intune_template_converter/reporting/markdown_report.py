"""
Markdown conversion report — per-setting mapping table rendered via Jinja2.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..conversion.models import ConversionResult

TEMPLATE_DIR = Path(__file__).parent / "templates"
TEMPLATE_NAME = "conversion_report.md.j2"

_STATUS_ICONS = {
    "converted": "✅",
    "not_found": "❔",
    "error":     "❌",
}

_CONFIDENCE_NOTES = {
    "high": "exact display-name match",
    "medium": "name correlated with candidate, review recommended",
    "low": "best guess, verify before assigning",
}


def _md_cell(value) -> str:
    """Escape pipes so values never break the table layout."""
    return str(value if value is not None else "").replace("|", "\\|").replace("\n", " ")


def render_markdown(
    result: ConversionResult,
    run_id: str,
    tenant_name: str = "Unknown Tenant",
    source_policy_id: str = "",
) -> str:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape([]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["cell"] = _md_cell
    template = env.get_template(TEMPLATE_NAME)
    return template.render(
        run_id=run_id,
        tenant_name=tenant_name,
        source_policy_id=source_policy_id,
        generated_utc=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
        result=result,
        status_icons=_STATUS_ICONS,
        confidence_notes=_CONFIDENCE_NOTES,
        breakdown=result.confidence_breakdown,
    )


def export_markdown(
    result: ConversionResult,
    output_dir: Path,
    run_id: str,
    tenant_name: str = "Unknown Tenant",
    source_policy_id: str = "",
) -> Path:
    """Write the Markdown conversion report and return its path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    filepath = output_dir / f"conversion_report_{run_id}.md"

    content = render_markdown(result, run_id, tenant_name, source_policy_id)
    with open(filepath, "w", encoding="utf-8") as fh:
        fh.write(content)

    return filepath
