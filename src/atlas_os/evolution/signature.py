# src/atlas_os/evolution/signature.py

from __future__ import annotations

"""
Sonic signatures: a small structural fingerprint of a code entity.

Only regex counts over the source text are used; nothing is parsed or run.
"""

import base64
import re
from dataclasses import asdict, dataclass, field
from typing import Any

FUNCTION_RE = re.compile(r"function\s+\w+|const\s+\w+\s*=\s*(?:async\s*)?\(")
CONDITIONAL_RE = re.compile(r"if\s*\(|switch\s*\(|for\s*\(|while\s*\(")
IMPORT_RE = re.compile(r"import\s+.*from|require\s*\(")

WAVEFORMS = ("sine", "square", "sawtooth", "triangle")
BASE_FREQUENCY = 220.0


@dataclass(slots=True)
class SonicSignature:
    complexity_score: float
    dependency_depth: int
    evolution_generation: int
    semantic_hash: str
    capability_vector: list[float] = field(default_factory=list)
    waveform_encoding: str = "sine"
    frequency_fingerprint: float = BASE_FREQUENCY

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def generate_sonic_signature(code: str, entity_name: str, entity_type: str) -> SonicSignature:
    lines = len(code.split("\n"))
    functions = len(FUNCTION_RE.findall(code))
    conditionals = len(CONDITIONAL_RE.findall(code))
    imports = len(IMPORT_RE.findall(code))

    complexity = min(1.0, lines * 0.01 + functions * 0.1 + conditionals * 0.15)
    depth = min(10, imports)

    structure = ":".join(str(p) for p in (entity_name, entity_type, functions, conditionals, imports))
    semantic_hash = base64.b64encode(structure.encode("utf-8")).decode("ascii")[:16]

    vector = [
        complexity,
        depth / 10,
        functions / 20,
        conditionals / 10,
        1.0 if "async" in code else 0.0,
        1.0 if "try" in code else 0.0,
        1.0 if "Promise" in code else 0.0,
        1.0 if "class" in code else 0.0,
    ]

    return SonicSignature(
        complexity_score=complexity,
        dependency_depth=depth,
        evolution_generation=0,
        semantic_hash=semantic_hash,
        capability_vector=vector,
        waveform_encoding=WAVEFORMS[(functions + conditionals) % len(WAVEFORMS)],
        frequency_fingerprint=BASE_FREQUENCY + complexity * 440 + depth * 55,
    )
