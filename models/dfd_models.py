"""
Data models for the diagram intermediate representation (DFDIR).

The DFDIR is a format-agnostic graph of elements (nodes) and flows (edges)
built from extracted topology data before it is converted to the diagram
application's JSON schema.
"""
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime

ELEMENT_TYPES = ('actor', 'process', 'store')
SOURCES = ('text', 'vision', 'manual')
LOW_CONFIDENCE_THRESHOLD = 70


class DFDIRError(ValueError):
    """Raised when the DFDIR is modified in a way that breaks its identity rules."""


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _first(data: Dict[str, Any], *keys, default=None):
    """Return the first key present in data, accepting camelCase and snake_case spellings."""
    for key in keys:
        if key in data:
            return data[key]
    return default


@dataclass
class DFDElement:
    """A single diagram element: actor, process or store."""
    id: str
    name: str
    type: str
    x: int = 100
    y: int = 100
    ip_address: Optional[str] = None
    services: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    confidence: int = 100
    source: str = 'manual'

    def __post_init__(self):
        # services behave as a set, first mention wins the position
        self.services = list(dict.fromkeys(self.services or []))
        if self.metadata is None:
            self.metadata = {}

    def validate(self) -> List[str]:
        """Return a list of validation error messages for this element."""
        errors = []

        if not self.id:
            errors.append('Element missing ID')

        if not isinstance(self.name, str) or not self.name.strip():
            errors.append('Element missing name')

        if self.type not in ELEMENT_TYPES:
            errors.append(f'Invalid element type: {self.type}')

        if not _is_number(self.x) or not _is_number(self.y):
            errors.append('Element position must be numeric')

        if not _is_number(self.confidence) or self.confidence < 0 or self.confidence > 100:
            errors.append('Confidence must be between 0 and 100')

        if self.source not in SOURCES:
            errors.append(f'Invalid element source: {self.source}')

        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'x': self.x,
            'y': self.y,
            'ipAddress': self.ip_address,
            'services': list(self.services),
            'metadata': dict(self.metadata),
            'confidence': self.confidence,
            'source': self.source
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DFDElement':
        return cls(
            id=data.get('id'),
            name=data.get('name'),
            type=data.get('type'),
            x=data.get('x', 100),
            y=data.get('y', 100),
            ip_address=_first(data, 'ipAddress', 'ip_address'),
            services=list(data.get('services') or []),
            metadata=dict(data.get('metadata') or {}),
            confidence=data.get('confidence', 100),
            source=data.get('source', 'manual')
        )


@dataclass
class DFDFlow:
    """A directed data flow between two elements."""
    id: str
    source_id: str
    target_id: str
    protocol: str = 'TCP'
    is_encrypted: bool = False
    is_public_network: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)
    confidence: int = 100
    source: str = 'manual'

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}

    def validate(self) -> List[str]:
        """Return a list of validation error messages for this flow."""
        errors = []

        if not self.id:
            errors.append('Flow missing ID')

        if not self.source_id:
            errors.append('Flow missing source ID')

        if not self.target_id:
            errors.append('Flow missing target ID')

        if self.source_id and self.source_id == self.target_id:
            errors.append('Flow source and target cannot be the same')

        if not _is_number(self.confidence) or self.confidence < 0 or self.confidence > 100:
            errors.append('Confidence must be between 0 and 100')

        if self.source not in SOURCES:
            errors.append(f'Invalid flow source: {self.source}')

        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'sourceId': self.source_id,
            'targetId': self.target_id,
            'protocol': self.protocol,
            'isEncrypted': self.is_encrypted,
            'isPublicNetwork': self.is_public_network,
            'metadata': dict(self.metadata),
            'confidence': self.confidence,
            'source': self.source
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DFDFlow':
        return cls(
            id=data.get('id'),
            source_id=_first(data, 'sourceId', 'source_id'),
            target_id=_first(data, 'targetId', 'target_id'),
            protocol=data.get('protocol') or 'TCP',
            is_encrypted=bool(_first(data, 'isEncrypted', 'is_encrypted', default=False)),
            is_public_network=bool(_first(data, 'isPublicNetwork', 'is_public_network', default=False)),
            metadata=dict(data.get('metadata') or {}),
            confidence=data.get('confidence', 100),
            source=data.get('source', 'manual')
        )


class DFDIR:
    """Diagram intermediate representation owning elements and flows."""

    def __init__(self, name: str = 'Untitled'):
        self.name = name
        self.elements: List[DFDElement] = []
        self.flows: List[DFDFlow] = []
        self.metadata = {
            'created': datetime.now().isoformat(),
            'source': None,
            'extractionMethod': None
        }

    def add_element(self, element: DFDElement):
        if not isinstance(element, DFDElement):
            raise DFDIRError('Must be DFDElement instance')

        # a missing id is reported by validate(), with every other violation
        if element.id and self.get_element_by_id(element.id) is not None:
            raise DFDIRError(f'Element with ID {element.id} already exists')

        self.elements.append(element)

    def add_flow(self, flow: DFDFlow):
        if not isinstance(flow, DFDFlow):
            raise DFDIRError('Must be DFDFlow instance')

        if flow.id and self.get_flow_by_id(flow.id) is not None:
            raise DFDIRError(f'Flow with ID {flow.id} already exists')

        self.flows.append(flow)

    def get_element_by_id(self, element_id: str) -> Optional[DFDElement]:
        for element in self.elements:
            if element.id == element_id:
                return element
        return None

    def get_flow_by_id(self, flow_id: str) -> Optional[DFDFlow]:
        for flow in self.flows:
            if flow.id == flow_id:
                return flow
        return None

    def remove_element(self, element_id: str) -> bool:
        """Remove an element and every flow that references it."""
        element = self.get_element_by_id(element_id)
        if element is None:
            return False

        self.flows = [
            flow for flow in self.flows
            if flow.source_id != element_id and flow.target_id != element_id
        ]
        self.elements.remove(element)
        return True

    def remove_flow(self, flow_id: str) -> bool:
        flow = self.get_flow_by_id(flow_id)
        if flow is None:
            return False
        self.flows.remove(flow)
        return True

    def validate(self) -> Dict[str, Any]:
        """
        Validate every element, every flow and flow reference integrity.
        All violations are collected; nothing stops at the first one.
        """
        errors = []

        for index, element in enumerate(self.elements):
            element_errors = element.validate()
            if element_errors:
                errors.append(f"Element {index} ({element.name}): {', '.join(element_errors)}")

        element_ids = {element.id for element in self.elements}
        for index, flow in enumerate(self.flows):
            flow_errors = flow.validate()
            if flow_errors:
                errors.append(f"Flow {index}: {', '.join(flow_errors)}")

            if flow.source_id not in element_ids:
                errors.append(f"Flow {index}: Source element {flow.source_id} not found")

            if flow.target_id not in element_ids:
                errors.append(f"Flow {index}: Target element {flow.target_id} not found")

        if not self.elements:
            errors.append('DFDIR contains no elements')

        return {
            'valid': len(errors) == 0,
            'errors': errors
        }

    def get_statistics(self, low_confidence_threshold: int = LOW_CONFIDENCE_THRESHOLD) -> Dict[str, Any]:
        """Aggregate counts and confidence figures for reporting."""
        by_type = {element_type: 0 for element_type in ELEMENT_TYPES}
        for element in self.elements:
            if element.type in by_type:
                by_type[element.type] += 1

        by_source = {source: 0 for source in SOURCES}
        for element in self.elements:
            if element.source in by_source:
                by_source[element.source] += 1

        def _mean(values):
            return round(sum(values) / len(values)) if values else 0

        extraction_sources = []
        for element in self.elements:
            if element.source not in extraction_sources:
                extraction_sources.append(element.source)

        return {
            'totalElements': len(self.elements),
            'totalFlows': len(self.flows),
            'actors': by_type['actor'],
            'processes': by_type['process'],
            'stores': by_type['store'],
            'elementsByType': by_type,
            'elementsBySource': by_source,
            'averageConfidence': {
                'elements': _mean([element.confidence for element in self.elements]),
                'flows': _mean([flow.confidence for flow in self.flows])
            },
            'extractionSources': extraction_sources,
            'lowConfidenceElements': len([e for e in self.elements if e.confidence < low_confidence_threshold]),
            'lowConfidenceFlows': len([f for f in self.flows if f.confidence < low_confidence_threshold]),
            'missingIPs': len([e for e in self.elements if not e.ip_address])
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'elements': [element.to_dict() for element in self.elements],
            'flows': [flow.to_dict() for flow in self.flows],
            'metadata': dict(self.metadata)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DFDIR':
        dfdir = cls(data.get('name', 'Untitled'))
        if data.get('metadata'):
            dfdir.metadata = dict(data['metadata'])

        for element_data in data.get('elements', []):
            dfdir.add_element(DFDElement.from_dict(element_data))

        for flow_data in data.get('flows', []):
            dfdir.add_flow(DFDFlow.from_dict(flow_data))

        return dfdir

    @classmethod
    def from_topology(cls, name: str, nodes: List[Dict[str, Any]], connections: List[Dict[str, Any]]) -> 'DFDIR':
        """Build a DFDIR from plain node/connection dicts (extractor or import output)."""
        dfdir = cls(name)
        for node in nodes:
            dfdir.add_element(DFDElement.from_dict(node))
        for connection in connections:
            dfdir.add_flow(DFDFlow.from_dict(connection))
        return dfdir
