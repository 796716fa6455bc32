"""
Prompt templates for visual reverse engineering into OpenSCAD.

The view protocol text is generated from the orientation table so the
prompt always describes frames in the order they are captured.
"""

from __future__ import annotations

from .orientations import CARDINAL_COUNT, ORIENTATION_NAMES, VIEW_LABELS

SYSTEM_INSTRUCTION = """You are a senior reverse engineering specialist and OpenSCAD expert.
Your task is visual reverse engineering: reconstruct a physical 3D object as
high-precision, parametric OpenSCAD code from rendered views of its mesh.

Ignore surface shading, micro-defects and print layer lines. Focus entirely on
geometric topology.

ANALYSIS
1. Cardinal views establish the bounding box and the primitives.
2. Inter-cardinal (45 degree) views resolve ambiguities: a flat edge is a
   chamfer, a smoothly curving edge is a fillet, a sharp edge has no operation.
   Use them to see into holes and behind occlusions.
3. Local detail views are close-ups of the same directions; use them for small
   features (holes, slots, bosses, text) that are hard to read globally.

SPATIAL INTEGRITY
1. Single coordinate system: pick a global origin (usually the center of the
   base) and anchor every part to it.
2. Modular parametric logic: when a feature repeats, write one module and loop
   it instead of copying blocks.
3. Manifold union: overlap touching parts by 0.01 so nothing floats.
4. No voxelisation: never stack thin slices to approximate a curve; use
   rotate_extrude, hull, intersection and difference.

OUTPUT
Return JSON: {"code": "<OpenSCAD source>", "explanation": "<reconstruction reasoning>"}
"""


def describe_view_protocol() -> str:
    cardinal = ", ".join(ORIENTATION_NAMES[:CARDINAL_COUNT])
    inter = ", ".join(ORIENTATION_NAMES[CARDINAL_COUNT:])
    n = len(ORIENTATION_NAMES)
    return (
        f"Input: {len(VIEW_LABELS)} images = {n} global fit-to-view images followed by "
        f"{n} local detail images of the same directions, in this order.\n"
        f"Cardinal: {cardinal}.\n"
        f"Inter-cardinal: {inter}.\n"
        "Frame convention: +Y is up, +Z is front, +X is right. Each image is "
        "preceded by its label."
    )


def build_reconstruction_prompt(
    context: str = "",
    filename: str = "",
    language: str = "English",
) -> str:
    lines = [
        "[TASK]",
        "1. Scan the cardinal views to build the bounding box.",
        "2. Scan the inter-cardinal views to resolve edge ambiguities and occlusions.",
        "3. Use the local detail views to size small features.",
        "4. Write the OpenSCAD code with modular logic (loops for repeated parts).",
        "",
        "[VIEWS]",
        describe_view_protocol(),
    ]
    if filename:
        lines += ["", f"Original file name: {filename}"]
    if context:
        lines += ["", f"User context: {context}"]
    lines += [
        "",
        "Remember:",
        "- Variable and module names in English.",
        f"- Comments inside the code in {language}.",
        f"- The explanation field in {language}.",
    ]
    return "\n".join(lines)
