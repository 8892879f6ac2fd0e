"""
Import of pre-structured topology JSON.

The dialect is decided up front by `detect_format`, which only looks at the
document's shape; `extract` then dispatches on the detected variant.
"""
import json
import logging
from typing import Dict, Any, List, Optional

from models.import_models import ImportFormat, DetectedFormat, ExtractedTopology, ImportFormatError
from services.entity_extractor import node_id_for, connection_id_for

logger = logging.getLogger(__name__)

NODE_TYPE_TAGS = {
    'tm.Actor': 'actor',
    'tm.Process': 'process',
    'tm.Store': 'store',
    # Boundaries have no DFDIR counterpart; they are kept as processes
    'tm.Boundary': 'process',
}
FLOW_TYPE_TAG = 'tm.Flow'

PRESERVED_CELL_PROPERTIES = ('privilegeLevel', 'storesCredentials', 'isALog', 'providesAuthentication')

ROLE_TO_TYPE = {
    'attacker': 'actor',
    'victim': 'actor',
    'database': 'store',
    'defender': 'process',
    'router': 'process',
    'firewall': 'process',
    'switch': 'process',
    'server': 'process',
    'workstation': 'process',
    'iot_device': 'process',
    'ics_device': 'process',
    'pivot': 'process',
}


def parse_json_text(text: str) -> Any:
    """Decode a JSON document, reporting syntax problems as ImportFormatError."""
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ImportFormatError(f"Invalid JSON format: {e}") from e


class JsonImportService:
    """Turns one of the recognised JSON dialects into plain node/connection records."""

    def detect_format(self, data: Any) -> DetectedFormat:
        if not isinstance(data, dict):
            return DetectedFormat(ImportFormat.UNRECOGNIZED)

        detail = data.get('detail')
        if data.get('summary') and isinstance(detail, dict) and isinstance(detail.get('diagrams'), list):
            return DetectedFormat(ImportFormat.NATIVE_EXPORT)

        if isinstance(data.get('projects'), list):
            return DetectedFormat(ImportFormat.MULTI_PROJECT_EXPORT)

        if isinstance(data.get('nodes'), list) and isinstance(data.get('connections'), list):
            return DetectedFormat(ImportFormat.MINIMAL_PAIR)

        return DetectedFormat(ImportFormat.UNRECOGNIZED)

    def extract(self, data: Any, detected: Optional[DetectedFormat] = None) -> ExtractedTopology:
        detected = detected or self.detect_format(data)
        if not detected.recognized:
            raise ImportFormatError(
                'Unrecognized JSON format. Expected: diagram application export, '
                'multi-project export, or simple nodes/connections format.'
            )

        if detected.format is ImportFormat.NATIVE_EXPORT:
            topology = self._extract_native_export(data)
        elif detected.format is ImportFormat.MULTI_PROJECT_EXPORT:
            topology = self._extract_multi_project_export(data)
        else:
            topology = self._extract_minimal_pair(data)

        logger.info(f"Imported {len(topology.nodes)} nodes and {len(topology.connections)} connections "
                    f"from {detected.description}")
        return topology

    # ------------------------------------------------------------------
    # Native diagram application export
    # ------------------------------------------------------------------

    @staticmethod
    def _cell_type(cell: Dict[str, Any]) -> Optional[str]:
        data = cell.get('data') if isinstance(cell.get('data'), dict) else {}
        return cell.get('type') or data.get('type')

    @staticmethod
    def _cell_name(cell: Dict[str, Any]) -> str:
        data = cell.get('data') if isinstance(cell.get('data'), dict) else {}
        attrs = cell.get('attrs') or {}
        return (
            data.get('name')
            or (attrs.get('text') or {}).get('text')
            or (attrs.get('label') or {}).get('text')
            or 'Unknown'
        )

    @staticmethod
    def _cell_endpoint(endpoint: Any) -> Optional[str]:
        if isinstance(endpoint, dict):
            return endpoint.get('id') or endpoint.get('cell')
        return endpoint

    def _extract_native_export(self, data: Dict[str, Any]) -> ExtractedTopology:
        diagrams = data['detail']['diagrams']
        if not diagrams:
            raise ImportFormatError('No diagrams found in diagram export')

        diagram = diagrams[0]
        cells = diagram.get('cells')
        if cells is None:
            cells = (diagram.get('diagramJson') or {}).get('cells')
        if not isinstance(cells, list):
            raise ImportFormatError('No diagram cells found in diagram export')

        nodes, connections = [], []
        for cell in cells:
            if not isinstance(cell, dict):
                continue
            cell_type = self._cell_type(cell)
            cell_data = cell.get('data') if isinstance(cell.get('data'), dict) else {}

            def lookup(key, default=None):
                return cell_data.get(key, cell.get(key, default))

            if cell_type == FLOW_TYPE_TAG:
                source_id = self._cell_endpoint(cell.get('source'))
                target_id = self._cell_endpoint(cell.get('target'))
                connections.append({
                    'id': cell.get('id') or connection_id_for(str(source_id), str(target_id)),
                    'sourceId': source_id,
                    'targetId': target_id,
                    'protocol': lookup('protocol') or 'TCP',
                    'isEncrypted': bool(lookup('isEncrypted', False)),
                    'isPublicNetwork': bool(lookup('isPublicNetwork', False)),
                    'confidence': 100,
                    'source': 'manual',
                    'metadata': {
                        'extractedFrom': 'native-export',
                        'name': self._cell_name(cell),
                        'hasOpenThreats': bool(lookup('hasOpenThreats', False)),
                        'threats': lookup('threats') or []
                    }
                })

            elif cell_type in NODE_TYPE_TAGS:
                metadata = {
                    'extractedFrom': 'native-export',
                    'hasOpenThreats': bool(lookup('hasOpenThreats', False)),
                    'outOfScope': bool(lookup('outOfScope', False)),
                    'threats': lookup('threats') or []
                }
                for key in PRESERVED_CELL_PROPERTIES:
                    value = lookup(key)
                    if value is not None:
                        metadata[key] = value
                if cell_type == 'tm.Boundary':
                    metadata['originalType'] = cell_type

                name = self._cell_name(cell)
                node = {
                    'id': cell.get('id') or node_id_for(name),
                    'name': name,
                    'type': NODE_TYPE_TAGS[cell_type],
                    'ipAddress': None,
                    'services': [],
                    'confidence': 100,
                    'source': 'manual',
                    'metadata': metadata
                }
                position = cell.get('position')
                if isinstance(position, dict) and 'x' in position and 'y' in position:
                    node['x'], node['y'] = position['x'], position['y']
                if cell.get('size'):
                    metadata['size'] = cell['size']
                nodes.append(node)

            else:
                logger.debug(f"Skipping cell {cell.get('id')} with type {cell_type}")

        return ExtractedTopology(nodes=nodes, connections=connections)

    # ------------------------------------------------------------------
    # Multi-project export
    # ------------------------------------------------------------------

    def _extract_multi_project_export(self, data: Dict[str, Any]) -> ExtractedTopology:
        projects = data['projects']
        if not projects or not isinstance(projects[0], dict):
            raise ImportFormatError('No project found in multi-project export')
        project = projects[0]

        nodes = []
        ids_by_name = {}
        for raw_node in project.get('nodes') or []:
            name = raw_node.get('name')
            if not name:
                logger.warning(f"Skipping project node without a name: {raw_node.get('id')}")
                continue
            node_id = raw_node.get('id') or node_id_for(name)
            ids_by_name[name] = node_id

            role = (raw_node.get('role') or 'server').lower()
            interfaces = raw_node.get('interfaces') or []
            ip_address = interfaces[0].get('ip_address') if interfaces and isinstance(interfaces[0], dict) else None
            services = [
                service.get('name') if isinstance(service, dict) else service
                for service in raw_node.get('services') or []
            ]

            node = {
                'id': node_id,
                'name': name,
                'type': ROLE_TO_TYPE.get(role, 'process'),
                'ipAddress': ip_address,
                'services': [service for service in services if service],
                'confidence': 100,
                'source': 'manual',
                'metadata': {
                    'extractedFrom': 'multi-project-export',
                    'role': role,
                    'operatingSystem': raw_node.get('operating_system'),
                    'architecture': raw_node.get('architecture'),
                    'parentGroup': raw_node.get('parent_group'),
                    'templateId': raw_node.get('template_id')
                }
            }
            map_data = raw_node.get('map_data')
            if isinstance(map_data, dict) and 'x' in map_data and 'y' in map_data:
                node['x'], node['y'] = map_data['x'], map_data['y']
                if map_data.get('width') and map_data.get('height'):
                    node['metadata']['size'] = {'width': map_data['width'], 'height': map_data['height']}
            nodes.append(node)

        connections = []
        for raw_conn in project.get('connections') or []:
            # endpoints may be given by node id or by node name
            source_id = ids_by_name.get(raw_conn.get('source_node'), raw_conn.get('source_node'))
            target_id = ids_by_name.get(raw_conn.get('target_node'), raw_conn.get('target_node'))
            connections.append({
                'id': raw_conn.get('id') or connection_id_for(str(source_id), str(target_id)),
                'sourceId': source_id,
                'targetId': target_id,
                'protocol': raw_conn.get('protocol') or 'TCP',
                'isEncrypted': False,
                'isPublicNetwork': False,
                'confidence': 100,
                'source': 'manual',
                'metadata': {
                    'extractedFrom': 'multi-project-export',
                    'name': raw_conn.get('connection_type') or 'network',
                    'bandwidth': raw_conn.get('bandwidth_mbps'),
                    'latency': raw_conn.get('latency_ms'),
                    'bidirectional': raw_conn.get('bidirectional')
                }
            })

        return ExtractedTopology(nodes=nodes, connections=connections)

    # ------------------------------------------------------------------
    # Minimal {nodes, connections}
    # ------------------------------------------------------------------

    def _extract_minimal_pair(self, data: Dict[str, Any]) -> ExtractedTopology:
        nodes: List[Dict[str, Any]] = [dict(node) for node in data['nodes'] if isinstance(node, dict)]
        connections: List[Dict[str, Any]] = [dict(conn) for conn in data['connections'] if isinstance(conn, dict)]
        return ExtractedTopology(nodes=nodes, connections=connections)
