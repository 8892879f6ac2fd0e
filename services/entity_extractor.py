"""
Rule-based entity extraction from operational test plan text.

Stages run in a fixed precedence order, each one skipping names already
claimed by an earlier, higher-confidence stage:

    1. table rows         (base confidence 95)
    2. inline Name (IP)   (base confidence 85)
    3. signatures         (OS/device 75, instrumentation 70)
    4. generic keywords   (base confidence 65)

Connections are recognised afterwards from connection phrasing, an optional
secondary recogniser's results are merged, and a final pass adjusts
confidence from record completeness.
"""
import re
import math
import uuid
import logging
from typing import Dict, Any, List, Optional

from models.import_models import ExtractedTopology
from services.pattern_library import PatternLibrary

logger = logging.getLogger(__name__)

# Stable ids: the same text always yields the same node and connection ids
ID_NAMESPACE = uuid.UUID('6f1c3a52-8d0e-4c8b-9a57-2f3e1d4b7c90')

TABLE_CONFIDENCE = 95
INLINE_CONFIDENCE = 85
OS_SIGNATURE_CONFIDENCE = 75
INSTRUMENTATION_CONFIDENCE = 70
SYSTEM_NAME_CONFIDENCE = 65
CONNECTION_CONFIDENCE = 80

SECONDARY_NODE_FACTOR = 0.9
SECONDARY_CONNECTION_FACTOR = 0.8


def node_id_for(name: str) -> str:
    return str(uuid.uuid5(ID_NAMESPACE, f"node:{name.lower()}"))


def connection_id_for(source_id: str, target_id: str) -> str:
    return str(uuid.uuid5(ID_NAMESPACE, f"flow:{source_id}->{target_id}"))


def clamp_confidence(value) -> int:
    # half-up rounding, round() would round x.5 to even
    return int(min(100, max(0, math.floor(value + 0.5))))


class EntityExtractor:
    """
    Extracts deduplicated node and connection records from plain text.

    Each extract() call keeps its working state in locals, so one instance
    can serve concurrent callers.
    """

    def __init__(self, patterns: Optional[PatternLibrary] = None):
        self.patterns = patterns or PatternLibrary()

    def extract(self, text: str, secondary_results: Optional[Dict[str, Any]] = None) -> ExtractedTopology:
        """Extract nodes and connections from text, optionally merging a secondary source."""
        text = text or ''
        nodes: Dict[str, Dict[str, Any]] = {}
        connections: List[Dict[str, Any]] = []

        self._extract_table_rows(text, nodes)
        self._extract_inline(text, nodes)
        self._extract_signatures(text, nodes)
        self._extract_system_names(text, nodes)
        logger.info(f"Extracted {len(nodes)} nodes from {len(text)} characters")

        self._extract_connections(text, nodes, connections)
        logger.info(f"Extracted {len(connections)} connections")

        if secondary_results:
            self._merge_secondary_results(secondary_results, nodes, connections)

        self._calculate_confidence(nodes, connections)

        return ExtractedTopology(
            nodes=list(nodes.values()),
            connections=connections
        )

    # ------------------------------------------------------------------
    # Node stages
    # ------------------------------------------------------------------

    def _add_node(self, nodes: Dict[str, Dict[str, Any]], name: str, ip_address: Optional[str], role: str,
                  services: List[str], metadata: Dict[str, Any], confidence: int, text: str, source: str = 'text'):
        context = self.patterns.get_context_window(text, name)
        node_type = self.patterns.classify_node_type(name, role, context)
        enclave = self.patterns.detect_enclave(context)
        if enclave and 'enclave' not in metadata:
            metadata['enclave'] = enclave

        nodes[name.lower()] = {
            'id': node_id_for(name),
            'name': name,
            'type': node_type,
            'ipAddress': ip_address,
            'services': services,
            'metadata': metadata,
            'confidence': confidence,
            'source': source
        }

    def _extract_table_rows(self, text: str, nodes: Dict[str, Dict[str, Any]]):
        for match in self.patterns.table_row.finditer(text):
            hostname, ip_address, role, services_text = (group.strip() for group in match.groups())
            if not hostname:
                continue

            services = self.patterns.extract_services(services_text)
            existing = nodes.get(hostname.lower())
            if existing:
                # Same host listed in another table: merge rather than duplicate
                existing['ipAddress'] = existing['ipAddress'] or ip_address
                existing['services'] = list(dict.fromkeys(existing['services'] + services))
                continue

            metadata = {
                'extractedFrom': 'table',
                'role': role,
                'rawServices': services_text,
                'rawMatch': match.group(0).strip()
            }
            role_category = self.patterns.detect_role(role)
            if role_category:
                metadata['roleCategory'] = role_category
            self._add_node(nodes, hostname, ip_address, role, services, metadata, TABLE_CONFIDENCE, text)

    def _extract_inline(self, text: str, nodes: Dict[str, Dict[str, Any]]):
        for match in self.patterns.inline_node.finditer(text):
            name, ip_address = match.group(1).strip(), match.group(2).strip()
            if not name or name.lower() in nodes:
                continue

            metadata = {
                'extractedFrom': 'inline',
                'rawMatch': match.group(0)
            }
            self._add_node(nodes, name, ip_address, '', [], metadata, INLINE_CONFIDENCE, text)

    def _extract_signatures(self, text: str, nodes: Dict[str, Dict[str, Any]]):
        seen = set()

        for signature in self.patterns.os_patterns:
            for match in signature.pattern.finditer(text):
                name = match.group(1).strip()
                key = name.lower()
                if key in seen:
                    continue
                seen.add(key)
                if key in nodes:
                    continue

                metadata = {
                    'extractedFrom': 'osPattern',
                    'templateHint': signature.template_hint,
                    'defaultRole': signature.default_role,
                    'rawMatch': match.group(0)
                }
                self._add_node(nodes, name, None, signature.default_role, [], metadata,
                               OS_SIGNATURE_CONFIDENCE, text)

        for tool in self.patterns.instrumentation_patterns:
            match = tool.pattern.search(text)
            if not match:
                continue
            key = tool.name.lower()
            if key in seen:
                continue
            seen.add(key)
            if key in nodes:
                continue

            metadata = {
                'extractedFrom': 'instrumentationPattern',
                'defaultRole': tool.default_role,
                'rawMatch': match.group(0)
            }
            self._add_node(nodes, tool.name, None, tool.default_role, [], metadata,
                           INSTRUMENTATION_CONFIDENCE, text)

    def _extract_system_names(self, text: str, nodes: Dict[str, Dict[str, Any]]):
        seen = set()
        for match in self.patterns.system_names.finditer(text):
            name = match.group(0).strip()
            key = name.lower()
            if key in seen:
                continue
            seen.add(key)
            if key in nodes:
                continue

            metadata = {
                'extractedFrom': 'systemName',
                'rawMatch': name
            }
            self._add_node(nodes, name, None, '', [], metadata, SYSTEM_NAME_CONFIDENCE, text)

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def _line_context(self, text: str, start: int, end: int) -> str:
        line_start = text.rfind('\n', 0, start) + 1
        line_end = text.find('\n', end)
        if line_end == -1:
            line_end = len(text)
        return text[line_start:line_end]

    def _find_nearest_node_name(self, nodes: Dict[str, Dict[str, Any]], window: str,
                                exclude: Optional[str] = None) -> Optional[str]:
        """Known node name mentioned closest to the end of window."""
        best_name, best_position = None, -1
        for node in nodes.values():
            name = node['name']
            if exclude and name.lower() == exclude.lower():
                continue
            for match in re.finditer(r'(?<![A-Za-z0-9_-])' + re.escape(name) + r'(?![A-Za-z0-9_-])',
                                     window, re.IGNORECASE):
                if match.end() > best_position:
                    best_name, best_position = name, match.end()
        return best_name

    def _extract_connections(self, text: str, nodes: Dict[str, Dict[str, Any]], connections: List[Dict[str, Any]]):
        window_size = self.patterns.context_window

        for connection_pattern in self.patterns.connection_patterns:
            for match in connection_pattern.pattern.finditer(text):
                if connection_pattern.arity == 2:
                    source_name, target_name = match.group(1), match.group(2)
                else:
                    target_name = match.group(1)
                    window = text[max(0, match.start() - window_size):match.start()]
                    source_name = self._find_nearest_node_name(nodes, window, exclude=target_name)

                if not source_name or not target_name:
                    continue

                source_node = nodes.get(source_name.lower())
                target_node = nodes.get(target_name.lower())
                if not source_node or not target_node:
                    continue
                if source_node['id'] == target_node['id']:
                    continue
                if self._has_connection(connections, source_node['id'], target_node['id']):
                    continue

                context = self._line_context(text, match.start(), match.end())
                protocol = self.patterns.detect_protocol(context)

                connections.append({
                    'id': connection_id_for(source_node['id'], target_node['id']),
                    'sourceId': source_node['id'],
                    'targetId': target_node['id'],
                    'protocol': protocol,
                    'isEncrypted': self.patterns.is_encrypted_protocol(protocol),
                    'isPublicNetwork': self.patterns.detect_enclave(context) == 'external',
                    'metadata': {
                        'sourceNode': source_node['name'],
                        'targetNode': target_node['name'],
                        'extractedFrom': 'text',
                        'pattern': connection_pattern.name,
                        'rawMatch': match.group(0)
                    },
                    'confidence': CONNECTION_CONFIDENCE,
                    'source': 'text'
                })

    @staticmethod
    def _has_connection(connections: List[Dict[str, Any]], source_id: str, target_id: str) -> bool:
        return any(
            conn['sourceId'] == source_id and conn['targetId'] == target_id
            for conn in connections
        )

    # ------------------------------------------------------------------
    # Secondary source merge
    # ------------------------------------------------------------------

    @staticmethod
    def _find_node_by_name_or_ip(nodes: Dict[str, Dict[str, Any]], name: Optional[str],
                                 ip_address: Optional[str]) -> Optional[Dict[str, Any]]:
        for node in nodes.values():
            if name and node['name'].lower() == name.lower():
                return node
            if ip_address and node['ipAddress'] == ip_address:
                return node
        return None

    def _merge_secondary_results(self, secondary_results: Dict[str, Any], nodes: Dict[str, Dict[str, Any]],
                                 connections: List[Dict[str, Any]]):
        """
        Merge nodes/connections from an independent recogniser.

        Matched nodes average their confidence and are flagged; unmatched
        nodes come in at 90% of their reported confidence. Connections are
        added at 80% only when no equivalent source/target pair exists.
        """
        id_map = {}
        merged, added = 0, 0

        for secondary_node in secondary_results.get('nodes') or []:
            name = secondary_node.get('name')
            ip_address = secondary_node.get('ipAddress') or secondary_node.get('ip_address')
            reported = secondary_node.get('confidence', 100)
            existing = self._find_node_by_name_or_ip(nodes, name, ip_address)

            if existing:
                if not existing['ipAddress'] and ip_address:
                    existing['ipAddress'] = ip_address
                existing['services'] = list(dict.fromkeys(existing['services'] + list(secondary_node.get('services') or [])))
                existing['confidence'] = clamp_confidence((existing['confidence'] + reported) / 2)
                existing['metadata']['secondaryConfirmed'] = True
                if secondary_node.get('id'):
                    id_map[secondary_node['id']] = existing['id']
                merged += 1
                continue

            if not name:
                logger.warning("Skipping secondary node without a name")
                continue

            node_id = secondary_node.get('id') or node_id_for(name)
            node_type = secondary_node.get('type')
            if node_type not in ('actor', 'process', 'store'):
                node_type = self.patterns.classify_node_type(name, (secondary_node.get('metadata') or {}).get('role', ''))

            nodes[name.lower()] = {
                'id': node_id,
                'name': name,
                'type': node_type,
                'ipAddress': ip_address,
                'services': list(secondary_node.get('services') or []),
                'metadata': {**(secondary_node.get('metadata') or {}), 'extractedFrom': 'secondary'},
                'confidence': clamp_confidence(reported * SECONDARY_NODE_FACTOR),
                'source': 'vision'
            }
            id_map[node_id] = node_id
            added += 1

        known_ids = {node['id'] for node in nodes.values()}
        connections_added = 0
        for secondary_conn in secondary_results.get('connections') or []:
            source_id = secondary_conn.get('sourceId') or secondary_conn.get('source_id')
            target_id = secondary_conn.get('targetId') or secondary_conn.get('target_id')
            source_id = id_map.get(source_id, source_id)
            target_id = id_map.get(target_id, target_id)

            if source_id not in known_ids or target_id not in known_ids or source_id == target_id:
                logger.warning(f"Skipping secondary connection {source_id} -> {target_id}: unresolved endpoint")
                continue
            if self._has_connection(connections, source_id, target_id):
                continue

            protocol = secondary_conn.get('protocol') or 'TCP'
            connections.append({
                'id': secondary_conn.get('id') or connection_id_for(source_id, target_id),
                'sourceId': source_id,
                'targetId': target_id,
                'protocol': protocol,
                'isEncrypted': bool(secondary_conn.get('isEncrypted', self.patterns.is_encrypted_protocol(protocol))),
                'isPublicNetwork': bool(secondary_conn.get('isPublicNetwork', False)),
                'metadata': {**(secondary_conn.get('metadata') or {}), 'extractedFrom': 'secondary'},
                'confidence': clamp_confidence(secondary_conn.get('confidence', 100) * SECONDARY_CONNECTION_FACTOR),
                'source': 'vision'
            })
            connections_added += 1

        logger.info(f"Secondary merge: {merged} matched, {added} new nodes, {connections_added} new connections")

    # ------------------------------------------------------------------
    # Confidence
    # ------------------------------------------------------------------

    def _calculate_confidence(self, nodes: Dict[str, Dict[str, Any]], connections: List[Dict[str, Any]]):
        for node in nodes.values():
            adjusted = node['confidence']

            if self.patterns.is_valid_ipv4(node['ipAddress']):
                adjusted += 5
            else:
                adjusted -= 15

            if node['services']:
                adjusted += 5

            if node['metadata'].get('role'):
                adjusted += 5

            node['confidence'] = clamp_confidence(adjusted)

        nodes_by_id = {node['id']: node for node in nodes.values()}
        for conn in connections:
            source_node = nodes_by_id.get(conn['sourceId'])
            target_node = nodes_by_id.get(conn['targetId'])
            if source_node and target_node:
                avg_node_confidence = (source_node['confidence'] + target_node['confidence']) / 2
                conn['confidence'] = clamp_confidence((conn['confidence'] + avg_node_confidence) / 2)
