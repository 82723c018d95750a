import io
import json
import zipfile
from typing import Dict, Union

import pytest

PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR fake image payload"

PRUSA_GCODE = """; generated by PrusaSlicer 2.7.1+win64 on 2024-01-05 at 10:00:00 UTC
G28
G1 X10 Y10 F3000
G1 X20 Y20 E1.5
; filament used [mm] = 4210.33, 1180.20
; filament used [cm3] = 10.13, 2.84
; filament used [g] = 12.5, 3.5
; total filament used [g] = 16.0
; estimated printing time (normal mode) = 2h 45m
; filament_type = PLA;PETG
; filament_colour = #FF0000;00ff00
; layer_height = 0.2
; nozzle_diameter = 0.4,0.4
; fill_density = 15%
"""


def build_3mf(entries: Dict[str, Union[str, bytes]]) -> bytes:
    """In-memory zip; str payloads are UTF-8 encoded, names ending in '/' become directory entries."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, payload in entries.items():
            if name.endswith("/"):
                archive.writestr(zipfile.ZipInfo(name), b"")
            elif isinstance(payload, str):
                archive.writestr(name, payload.encode("utf-8"))
            else:
                archive.writestr(name, payload)
    return buffer.getvalue()


@pytest.fixture
def make_3mf():
    return build_3mf


@pytest.fixture
def benchy_3mf() -> bytes:
    """A small Bambu-style project: descriptor, slice report, model and thumbnail."""
    return build_3mf({
        "[Content_Types].xml": "<Types/>",
        "Metadata/": b"",
        "Metadata/project.json": json.dumps({
            "name": "3DBenchy",
            "print_time": 5400,
            "filament_used_g": 15.2,
            "filaments": [
                {"id": 0, "type": "PLA", "color": "Bambu Green", "color_hex": "00AE42", "used_g": 15.2},
            ],
        }),
        "Metadata/thumbnail.png": PNG_BYTES,
        "3D/3dmodel.model": "<model unit=\"millimeter\"><resources/></model>",
    })


@pytest.fixture
def prusa_gcode() -> str:
    return PRUSA_GCODE
