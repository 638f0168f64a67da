"""JSON report output."""

from __future__ import annotations

import json
from pathlib import Path

from storysnap.models.result import Report


def generate_json_report(report: Report, output_path: Path) -> Path:
    """Write the machine-readable run report."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(report.to_report_dict(), f, indent=2)
    return output_path
