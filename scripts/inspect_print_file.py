#!/usr/bin/env python3
"""
Inspection Script: run the extraction engine on a local .3mf or .gcode file.

Prints the canonical record and the archive entries that were inspected.
No server is required.

Usage:
    python scripts/inspect_print_file.py path/to/benchy.3mf
    python scripts/inspect_print_file.py path/to/benchy.gcode
"""

import os
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Add project root to sys.path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from printmeta.core.config import settings
from printmeta.core.exceptions import PrintMetaException
from printmeta.schemas.extraction import PartialExtractionFailure
from printmeta.services.extraction_service import ExtractionService

console = Console()


def show_record(record) -> None:
    summary = Table(title=f"📦 {record.project_name}", show_header=False)
    summary.add_column("Field", style="cyan")
    summary.add_column("Value")
    summary.add_row("Duration (min)", str(record.estimated_duration_minutes))
    summary.add_row("Weight (g)", str(record.total_material_weight_grams))
    summary.add_row("Slicer", f"{record.slicer_name or '-'} {record.slicer_version or ''}")
    preview = record.preview_image
    summary.add_row("Preview", (preview.entry_name or preview.mime_type) if preview else "-")
    console.print(summary)

    if record.materials:
        materials = Table(title="Materials")
        for column in ("Slot", "Type", "Color", "Hex", "Grams"):
            materials.add_column(column)
        for m in record.materials:
            materials.add_row(
                str(m.slot_index), m.material_kind, m.color_label,
                f"[{m.color_hex}]■[/] {m.color_hex}", f"{m.weight_grams:.2f}",
            )
        console.print(materials)

    if record.print_settings:
        console.print(Panel("\n".join(f"{k} = {v}" for k, v in record.print_settings.items()), title="Print Settings"))

    if record.source_trace:
        console.print(Panel("\n".join(record.source_trace), title="Inspected Entries"))


def main() -> int:
    if len(sys.argv) != 2:
        console.print("[red]Usage: python scripts/inspect_print_file.py <file.3mf|file.gcode>[/red]")
        return 2

    path = Path(sys.argv[1])
    if not path.exists():
        console.print(f"[red]❌ File not found: {path}[/red]")
        return 1

    service = ExtractionService()
    data = path.read_bytes()

    try:
        if path.suffix.lower() == settings.TOOLPATH_EXTENSION:
            result = service.extract_toolpath(data, path.name)
        else:
            result = service.extract_container(data, path.name)
    except PrintMetaException as e:
        console.print(f"[red]❌ Rejected ({e.status_code}): {e.detail}[/red]")
        return 1

    if isinstance(result, PartialExtractionFailure):
        console.print(Panel("\n".join(result.errors), title="⚠️ Nothing extracted", style="yellow"))
        return 1

    show_record(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
