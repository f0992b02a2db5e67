"""Diff Reporter - body diffs for humans plus JSON/Markdown run artifacts."""

from __future__ import annotations

import difflib
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Tuple

if TYPE_CHECKING:
    from proxydiff.scenarios.runner import RunReport

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT = 3
# Bodies are whole HTML pages; cap the diff so a failure message stays readable
MAX_DIFF_LINES = 400


def unified_body_diff(
    old_body: str,
    new_body: str,
    context_lines: int = DEFAULT_CONTEXT,
    max_lines: int = MAX_DIFF_LINES,
) -> str:
    """Unified diff of two response bodies, old on the left."""
    diff_lines = list(
        difflib.unified_diff(
            old_body.splitlines(),
            new_body.splitlines(),
            fromfile="old",
            tofile="new",
            n=context_lines,
            lineterm="",
        )
    )
    if len(diff_lines) > max_lines:
        omitted = len(diff_lines) - max_lines
        diff_lines = diff_lines[:max_lines] + [f"... ({omitted} more diff lines omitted)"]
    return "\n".join(diff_lines)


class DiffReporter:
    """Generate structured run artifacts (JSON + Markdown)."""

    def __init__(self, output_dir: Path | str) -> None:
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def generate_json_report(self, report: RunReport) -> str:
        data = {
            "metadata": {
                "generated_at": datetime.now().isoformat(),
            },
            **report.to_dict(),
        }
        return json.dumps(data, indent=2, default=str)

    def generate_markdown_summary(self, report: RunReport) -> str:
        stats = report.statistics()
        md_lines = [
            "# Differential Run Summary",
            f"**Generated:** {datetime.now().isoformat()}",
            f"**Old backend:** {report.old_backend}",
            f"**New backend:** {report.new_backend}",
            "",
            "## Overall Results",
            f"- **Scenarios:** {stats['total']}",
            f"- **Passed:** {stats['passed']}",
            f"- **Failed:** {stats['failed']}",
            f"- **Errors:** {stats['errors']}",
            f"- **Pending:** {stats['pending']}",
            "",
            "## Detailed Results",
            "",
        ]

        for result in report.results:
            md_lines.append(f"- **{result.status.value.upper()}** {result.name}")
            if result.message:
                first_line = result.message.splitlines()[0]
                md_lines.append(f"  - {first_line}")

        diffs = [r for r in report.results if r.details.get("diff")]
        if diffs:
            md_lines.extend(["", "## Body Diffs", ""])
            for result in diffs:
                md_lines.extend(
                    [
                        f"### {result.name} ({result.details.get('path')})",
                        "",
                        "```diff",
                        result.details["diff"],
                        "```",
                        "",
                    ]
                )

        return "\n".join(md_lines)

    def write_reports(self, report: RunReport) -> Tuple[Path, Path]:
        stamp = datetime.now().strftime("%Y%m%dT%H%M%S")
        json_path = self.output_dir / f"run-{stamp}.json"
        md_path = self.output_dir / f"run-{stamp}.md"

        json_path.write_text(self.generate_json_report(report), encoding="utf-8")
        md_path.write_text(self.generate_markdown_summary(report), encoding="utf-8")

        logger.info("Wrote run reports")
        logger.info("  JSON: %s", json_path)
        logger.info("  Markdown: %s", md_path)

        return json_path, md_path


def summarize_failures(results: List[Any]) -> List[Dict[str, Any]]:
    """Compact view of non-passing results for console output."""
    return [
        {"name": r.name, "status": r.status.value, "message": r.message.splitlines()[0] if r.message else ""}
        for r in results
        if r.status.value in ("fail", "error")
    ]
