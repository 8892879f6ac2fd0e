"""
Data models for pre-structured topology imports.
"""
from typing import List, Dict, Any
from dataclasses import dataclass, field
from enum import Enum


class ImportFormat(Enum):
    """Recognised pre-structured JSON dialects."""
    NATIVE_EXPORT = "native-export"
    MULTI_PROJECT_EXPORT = "multi-project-export"
    MINIMAL_PAIR = "minimal-pair"
    UNRECOGNIZED = "unrecognized"


FORMAT_DESCRIPTIONS = {
    ImportFormat.NATIVE_EXPORT: 'Diagram application v2 export (summary + detail.diagrams)',
    ImportFormat.MULTI_PROJECT_EXPORT: 'Multi-project export (projects[].nodes / connections)',
    ImportFormat.MINIMAL_PAIR: 'Minimal nodes/connections JSON',
    ImportFormat.UNRECOGNIZED: 'Unrecognized JSON document',
}


class ImportFormatError(ValueError):
    """Raised for malformed or unrecognized pre-structured input."""


@dataclass
class DetectedFormat:
    """Result of dialect detection, decided before any field access."""
    format: ImportFormat
    description: str = ''

    def __post_init__(self):
        if not self.description:
            self.description = FORMAT_DESCRIPTIONS[self.format]

    @property
    def recognized(self) -> bool:
        return self.format is not ImportFormat.UNRECOGNIZED


@dataclass
class ExtractedTopology:
    """Plain node and connection records, as produced by extraction or import."""
    nodes: List[Dict[str, Any]] = field(default_factory=list)
    connections: List[Dict[str, Any]] = field(default_factory=list)
