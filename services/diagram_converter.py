"""
Conversion of a laid-out DFDIR into the diagram application's v2 JSON model.
"""
import json
import logging
from typing import Dict, Any, List, Optional

from models.dfd_models import DFDIR, DFDElement, DFDFlow
from services.validation_service import ValidationService

logger = logging.getLogger(__name__)

MODEL_VERSION = '2.5.0'
NODE_WIDTH = 160
NODE_HEIGHT = 80
NODE_Z_INDEX = 1
FLOW_Z_INDEX = 10

TYPE_MAP = {
    'actor': 'tm.Actor',
    'process': 'tm.Process',
    'store': 'tm.Store'
}

HIGH_CONFIDENCE = 85
MEDIUM_CONFIDENCE = 70
COLOR_NORMAL = '#333333'
COLOR_AMBER = '#FFA726'
COLOR_RED = '#E53935'
COLOR_ENCRYPTED = '#2E7D32'
PUBLIC_NETWORK_DASH = '5 5'

DEFAULT_OPTIONS = {
    'diagram_name': 'Imported Topology',
    'diagram_description': 'Auto-generated from OTP document',
    'project_name': 'T2T Import',
    'project_owner': 'Unknown',
    'include_metadata': True
}


class ConversionError(ValueError):
    """Raised when a DFDIR cannot be converted; .errors lists every violation."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


def get_stroke_color(confidence: int) -> str:
    """Confidence tier colour: >=85 normal, 70-84 amber, below 70 red."""
    if confidence >= HIGH_CONFIDENCE:
        return COLOR_NORMAL
    if confidence >= MEDIUM_CONFIDENCE:
        return COLOR_AMBER
    return COLOR_RED


class DiagramConverter:
    def __init__(self, validation_service: Optional[ValidationService] = None):
        self.validation_service = validation_service or ValidationService()

    def convert(self, dfdir: DFDIR, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Build the threat model document; raises ConversionError if the DFDIR is invalid."""
        opts = {**DEFAULT_OPTIONS, **{k: v for k, v in (options or {}).items() if v is not None}}

        dfdir_result = self.validation_service.validate_dfdir(dfdir)
        if not dfdir_result.valid:
            messages = [error.message for error in dfdir_result.errors]
            raise ConversionError(f"DFDIR validation failed: {', '.join(messages)}", messages)

        diagram = self._build_diagram(dfdir, opts['diagram_name'], opts['diagram_description'],
                                      opts['include_metadata'])
        threat_model = self._build_threat_model(diagram, opts['project_name'], opts['project_owner'], dfdir)

        logger.info(f"Converted {len(dfdir.elements)} elements and {len(dfdir.flows)} flows "
                    f"into {len(diagram['cells'])} cells")
        return threat_model

    def convert_and_validate(self, dfdir: DFDIR, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        threat_model = self.convert(dfdir, options)
        result = self.validation_service.validate_threat_model(threat_model)
        self.validation_service.log_result(result)

        return {
            'threat_model': threat_model,
            'validation': result
        }

    # ------------------------------------------------------------------
    # Cells
    # ------------------------------------------------------------------

    def _build_diagram(self, dfdir: DFDIR, name: str, description: str, include_metadata: bool) -> Dict[str, Any]:
        cells = [self._element_to_cell(element, include_metadata) for element in dfdir.elements]
        cells.extend(self._flow_to_cell(flow, include_metadata) for flow in dfdir.flows)

        return {
            'id': 0,
            'title': name,
            'diagramType': 'STRIDE',
            'placeholder': description,
            'thumbnail': './public/content/images/thumbnail.stride.jpg',
            'version': MODEL_VERSION,
            'cells': cells
        }

    def _element_to_cell(self, element: DFDElement, include_metadata: bool) -> Dict[str, Any]:
        shape = element.type if element.type in TYPE_MAP else 'process'

        cell = {
            'position': {'x': element.x, 'y': element.y},
            'size': {'width': NODE_WIDTH, 'height': NODE_HEIGHT},
            'attrs': {
                'text': {'text': element.name},
                'body': {
                    'stroke': get_stroke_color(element.confidence),
                    'strokeWidth': 2
                }
            },
            'visible': True,
            'shape': shape,
            'zIndex': NODE_Z_INDEX,
            'id': element.id,
            'data': {
                'type': TYPE_MAP[shape],
                'name': element.name,
                'description': self.build_element_description(element),
                'outOfScope': bool(element.metadata.get('outOfScope', False)),
                'reasonOutOfScope': '',
                'hasOpenThreats': False,
                'threats': list(element.metadata.get('threats') or [])
            }
        }

        # Flags carried over from an imported diagram
        for key in ('privilegeLevel', 'storesCredentials', 'isALog', 'providesAuthentication'):
            if key in element.metadata:
                cell['data'][key] = element.metadata[key]

        if include_metadata:
            cell['data']['metadata'] = {
                'ipAddress': element.ip_address,
                'services': list(element.services),
                'confidence': element.confidence,
                'source': element.source,
                'extractedFrom': element.metadata.get('extractedFrom'),
                'role': element.metadata.get('role'),
                'rawServices': element.metadata.get('rawServices')
            }

        return cell

    def _flow_to_cell(self, flow: DFDFlow, include_metadata: bool) -> Dict[str, Any]:
        line_attrs = {
            'stroke': COLOR_ENCRYPTED if flow.is_encrypted else COLOR_NORMAL,
            'strokeWidth': 1.5,
            'targetMarker': {'name': 'block'}
        }
        if flow.is_public_network:
            line_attrs['strokeDasharray'] = PUBLIC_NETWORK_DASH

        cell = {
            'shape': 'flow',
            'attrs': {'line': line_attrs},
            'width': 200,
            'height': 100,
            'zIndex': FLOW_Z_INDEX,
            'connector': 'smooth',
            'data': {
                'type': 'tm.Flow',
                'name': flow.protocol or 'Data Flow',
                'description': self.build_flow_description(flow),
                'outOfScope': False,
                'reasonOutOfScope': '',
                'hasOpenThreats': False,
                'isBidirectional': False,
                'isEncrypted': flow.is_encrypted,
                'isPublicNetwork': flow.is_public_network,
                'protocol': flow.protocol,
                'threats': list(flow.metadata.get('threats') or [])
            },
            'id': flow.id,
            'labels': [{
                'position': 0.5,
                'attrs': {
                    'text': {
                        'text': flow.protocol or '',
                        'font-weight': '400',
                        'font-size': 'small'
                    }
                }
            }],
            'source': {'id': flow.source_id},
            'target': {'id': flow.target_id}
        }

        if include_metadata:
            cell['data']['metadata'] = {
                'confidence': flow.confidence,
                'source': flow.source,
                'extractedFrom': flow.metadata.get('extractedFrom'),
                'sourceNode': flow.metadata.get('sourceNode'),
                'targetNode': flow.metadata.get('targetNode')
            }

        return cell

    # ------------------------------------------------------------------
    # Text synthesis
    # ------------------------------------------------------------------

    @staticmethod
    def build_element_description(element: DFDElement) -> str:
        parts = []
        if element.ip_address:
            parts.append(f"IP: {element.ip_address}")
        if element.services:
            parts.append(f"Services: {', '.join(element.services)}")
        if element.metadata.get('role'):
            parts.append(f"Role: {element.metadata['role']}")

        if not parts:
            parts.append({'actor': 'External entity', 'store': 'Data store'}.get(element.type, 'System component'))

        return ' | '.join(parts)

    @staticmethod
    def build_flow_description(flow: DFDFlow) -> str:
        parts = []
        if flow.protocol:
            parts.append(f"Protocol: {flow.protocol}")
        if flow.is_encrypted:
            parts.append('Encrypted')
        if flow.is_public_network:
            parts.append('Public Network')

        return ' | '.join(parts) if parts else 'Data flow between components'

    @staticmethod
    def build_project_description(stats: Dict[str, Any]) -> str:
        lines = [
            'Auto-generated threat model from OTP document using T2T import.',
            '',
            'Extraction Statistics:',
            f"- Elements: {stats['totalElements']} ({stats['actors']} actors, "
            f"{stats['processes']} processes, {stats['stores']} stores)",
            f"- Flows: {stats['totalFlows']}",
            f"- Average Confidence: {stats['averageConfidence']['elements']}%",
            f"- Extraction Sources: {', '.join(stats['extractionSources'])}",
            f"- Low Confidence Elements: {stats['lowConfidenceElements']}",
            f"- Elements Missing IP: {stats['missingIPs']}",
            '',
            'Please review and validate all extracted entities before conducting threat analysis.'
        ]
        return '\n'.join(lines)

    def _build_threat_model(self, diagram: Dict[str, Any], project_name: str, project_owner: str,
                            dfdir: DFDIR) -> Dict[str, Any]:
        stats = dfdir.get_statistics()
        return {
            'version': MODEL_VERSION,
            'summary': {
                'title': project_name,
                'owner': project_owner,
                'description': self.build_project_description(stats),
                'id': 0
            },
            'detail': {
                'contributors': [],
                'diagrams': [diagram],
                'diagramTop': 0,
                'reviewer': '',
                'threatTop': 0
            }
        }

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    @staticmethod
    def export_json(threat_model: Dict[str, Any], pretty: bool = True) -> str:
        return json.dumps(threat_model, indent=2 if pretty else None, ensure_ascii=False)

    @staticmethod
    def import_json(json_string: str) -> Dict[str, Any]:
        try:
            return json.loads(json_string)
        except json.JSONDecodeError as e:
            raise ConversionError(f"JSON parsing failed: {e}") from e
