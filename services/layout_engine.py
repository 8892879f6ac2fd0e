"""
Node placement for extracted topologies.

Three algorithms are available (tiered, radial, hierarchical). Every
coordinate handed back is a multiple of the grid snap.
"""
import math
import logging
from collections import OrderedDict
from typing import List, Dict, Any, Optional

logger = logging.getLogger(__name__)

TIER_ORDER = ('actor', 'process', 'store')


class LayoutError(ValueError):
    """Raised for malformed layout calls, e.g. an unknown algorithm name."""


class LayoutEngine:
    def __init__(self, grid_snap: int = 100, canvas_width: int = 2000, canvas_height: int = 1500,
                 tier_spacing: int = 400, node_spacing: int = 300, max_levels: int = 20,
                 start_x: int = 100, start_y: int = 100):
        if grid_snap <= 0:
            raise LayoutError('grid_snap must be a positive integer')
        self.grid_snap = grid_snap
        self.canvas_width = canvas_width
        self.canvas_height = canvas_height
        self.tier_spacing = tier_spacing
        self.node_spacing = node_spacing
        self.max_levels = max_levels
        self.start_x = start_x
        self.start_y = start_y

    def calculate_layout(self, nodes: List[Dict[str, Any]], connections: Optional[List[Dict[str, Any]]] = None,
                         algorithm: str = 'tiered') -> List[Dict[str, Any]]:
        """Return copies of the nodes with x/y assigned by the named algorithm."""
        positioned = [dict(node) for node in nodes]
        connections = connections or []

        if algorithm == 'tiered':
            self._tiered_layout(positioned)
        elif algorithm == 'radial':
            self._radial_layout(positioned)
        elif algorithm == 'hierarchical':
            self._hierarchical_layout(positioned, connections)
        else:
            raise LayoutError(f"Unknown layout type: {algorithm}")

        logger.info(f"Laid out {len(positioned)} nodes using {algorithm} layout")
        return positioned

    def snap_to_grid(self, value: float) -> int:
        # half-up rounding, Python's round() would use banker's rounding
        return int(math.floor(value / self.grid_snap + 0.5) * self.grid_snap)

    # ------------------------------------------------------------------
    # Algorithms
    # ------------------------------------------------------------------

    def _position_band(self, band_nodes: List[Dict[str, Any]], y: float):
        """Spread nodes evenly on one horizontal band, centred on the canvas."""
        if not band_nodes:
            return

        total_width = (len(band_nodes) - 1) * self.node_spacing
        current_x = max(self.start_x, (self.canvas_width - total_width) / 2)

        for node in band_nodes:
            node['x'] = self.snap_to_grid(current_x)
            node['y'] = self.snap_to_grid(y)
            current_x += self.node_spacing

    def _tiered_layout(self, nodes: List[Dict[str, Any]]):
        tiers = OrderedDict((node_type, []) for node_type in TIER_ORDER)
        for node in nodes:
            # unknown types share the process band
            tiers.get(node.get('type'), tiers['process']).append(node)

        current_y = self.start_y
        for band_nodes in tiers.values():
            self._position_band(band_nodes, current_y)
            current_y += self.tier_spacing

    def _radial_layout(self, nodes: List[Dict[str, Any]]):
        if not nodes:
            return

        center_x = self.canvas_width / 2
        center_y = self.canvas_height / 2
        radius = min(center_x, center_y) - 200

        for index, node in enumerate(nodes):
            angle = 2 * math.pi * index / len(nodes)
            node['x'] = self.snap_to_grid(center_x + radius * math.cos(angle))
            node['y'] = self.snap_to_grid(center_y + radius * math.sin(angle))

    def _hierarchical_layout(self, nodes: List[Dict[str, Any]], connections: List[Dict[str, Any]]):
        has_incoming = {conn.get('targetId') for conn in connections}
        roots = [node for node in nodes if node.get('id') not in has_incoming]

        if not roots:
            logger.info("No root nodes found, falling back to tiered layout")
            self._tiered_layout(nodes)
            return

        current_y = self.start_y
        for level_nodes in self.build_hierarchy_levels(nodes, connections, roots):
            self._position_band(level_nodes, current_y)
            current_y += self.tier_spacing

    def build_hierarchy_levels(self, nodes: List[Dict[str, Any]], connections: List[Dict[str, Any]],
                               roots: List[Dict[str, Any]]) -> List[List[Dict[str, Any]]]:
        """
        Breadth-first leveling from the root set along outgoing edges.

        Visited nodes are never revisited, so cycles terminate. Nodes not
        reached within max_levels levels are appended as one final level.
        """
        nodes_by_id = {node.get('id'): node for node in nodes}
        outgoing: Dict[Any, List[Any]] = {}
        for conn in connections:
            outgoing.setdefault(conn.get('sourceId'), []).append(conn.get('targetId'))

        levels = []
        visited = set()
        current_level = list(roots)

        while current_level and len(levels) < self.max_levels:
            level_nodes = []
            for node in current_level:
                if node.get('id') not in visited:
                    visited.add(node.get('id'))
                    level_nodes.append(node)
            if level_nodes:
                levels.append(level_nodes)

            next_level = []
            for node in level_nodes:
                for target_id in outgoing.get(node.get('id'), []):
                    target = nodes_by_id.get(target_id)
                    if target is not None and target_id not in visited:
                        next_level.append(target)
            current_level = next_level

        unvisited = [node for node in nodes if node.get('id') not in visited]
        if unvisited:
            levels.append(unvisited)

        return levels

    # ------------------------------------------------------------------
    # Post-processing
    # ------------------------------------------------------------------

    def prevent_overlaps(self, nodes: List[Dict[str, Any]], min_distance: float = 200,
                         max_iterations: int = 100) -> List[Dict[str, Any]]:
        """
        Push apart every pair of nodes closer than min_distance.

        Each node in a close pair moves half the deficit along the
        connecting vector, then is re-snapped. Dense graphs may still
        overlap when max_iterations is reached.
        """
        iterations = 0
        has_overlap = True

        while has_overlap and iterations < max_iterations:
            has_overlap = False
            iterations += 1

            for i in range(len(nodes)):
                for j in range(i + 1, len(nodes)):
                    first, second = nodes[i], nodes[j]
                    dx = second['x'] - first['x']
                    dy = second['y'] - first['y']
                    distance = math.hypot(dx, dy)

                    if distance < min_distance:
                        has_overlap = True
                        angle = math.atan2(dy, dx)
                        push = (min_distance - distance) / 2

                        first['x'] = self.snap_to_grid(first['x'] - push * math.cos(angle))
                        first['y'] = self.snap_to_grid(first['y'] - push * math.sin(angle))
                        second['x'] = self.snap_to_grid(second['x'] + push * math.cos(angle))
                        second['y'] = self.snap_to_grid(second['y'] + push * math.sin(angle))

        if has_overlap:
            logger.warning(f"Overlap resolution stopped after {iterations} iterations with residual overlap")
        else:
            logger.debug(f"Overlap resolution finished after {iterations} iterations")
        return nodes

    @staticmethod
    def calculate_bounding_box(nodes: List[Dict[str, Any]]) -> Dict[str, Any]:
        if not nodes:
            return {'minX': 0, 'minY': 0, 'maxX': 0, 'maxY': 0, 'width': 0, 'height': 0}

        xs = [node['x'] for node in nodes]
        ys = [node['y'] for node in nodes]
        return {
            'minX': min(xs),
            'minY': min(ys),
            'maxX': max(xs),
            'maxY': max(ys),
            'width': max(xs) - min(xs),
            'height': max(ys) - min(ys)
        }

    def center_diagram(self, nodes: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        bbox = self.calculate_bounding_box(nodes)
        offset_x = (self.canvas_width - bbox['width']) / 2 - bbox['minX']
        offset_y = (self.canvas_height - bbox['height']) / 2 - bbox['minY']

        for node in nodes:
            node['x'] = self.snap_to_grid(node['x'] + offset_x)
            node['y'] = self.snap_to_grid(node['y'] + offset_y)
        return nodes
