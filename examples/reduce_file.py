"""Reduce a VRM file and write the result next to it.

Usage:
    python examples/reduce_file.py avatar.vrm [mesh_target_ratio]
"""

import logging
import sys
from pathlib import Path

import vrmreduce

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

source = Path(sys.argv[1])
ratio = float(sys.argv[2]) if len(sys.argv) > 2 else 0.6

doc = vrmreduce.load(source.read_bytes())
vrmreduce.reduce(doc, vrmreduce.ReduceOptions(mesh_target_ratio=ratio))

output = source.with_name(f"{source.stem}-reduced{source.suffix}")
output.write_bytes(doc.serialize())

report = doc.last_report
print(f"\n✓ {report.tris_before} -> {report.tris_after} tris, {report.bytes_before} -> {report.bytes_after} bytes")
print(f"  Written to {output}")
