"""
JSON exporter — Writes the full conversion result, including every
per-setting outcome, to a JSON file.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .. import __version__
from ..conversion.models import ConversionResult


def export_json(
    result: ConversionResult,
    output_dir: Path,
    run_id: str,
    source_policy_id: str = "",
    audit: Optional[dict] = None,
) -> Path:
    """
    Write a conversion result to a JSON file.

    Returns:
        Path to the created JSON file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    payload = {
        "metadata": {
            "tool": "Intune Administrative Template Converter",
            "version": __version__,
            "run_id": run_id,
            "source_policy_id": source_policy_id,
            "generated_utc": datetime.now(timezone.utc).isoformat(),
            "mode": "DRY-RUN" if result.dry_run else "CONVERT",
        },
        "result": result.to_dict(),
    }
    if audit:
        payload["audit"] = audit

    filepath = output_dir / f"conversion_{run_id}.json"
    with open(filepath, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, default=str, ensure_ascii=False)

    return filepath
