"""
Tests for node placement and overlap resolution.
"""
import pytest

from services.layout_engine import LayoutEngine, LayoutError


def node(node_id, node_type='process', **kwargs):
    data = {'id': node_id, 'name': node_id, 'type': node_type}
    data.update(kwargs)
    return data


def chain(count):
    nodes = [node(f'n{index}') for index in range(count)]
    connections = [
        {'sourceId': f'n{index}', 'targetId': f'n{index + 1}'} for index in range(count - 1)
    ]
    return nodes, connections


def by_id(nodes):
    return {item['id']: item for item in nodes}


@pytest.fixture
def engine():
    return LayoutEngine()


class TestTieredLayout:
    def test_bands_by_type(self, engine):
        nodes = [
            node('a1', 'actor'), node('a2', 'actor'), node('a3', 'actor'),
            node('p1'), node('p2'),
            node('s1', 'store'),
        ]

        placed = by_id(engine.calculate_layout(nodes))

        assert [(placed[key]['x'], placed[key]['y']) for key in ('a1', 'a2', 'a3')] == [
            (700, 100), (1000, 100), (1300, 100)
        ]
        assert placed['p1']['y'] == placed['p2']['y'] == 500
        assert placed['s1']['x'] == 1000
        assert placed['s1']['y'] == 900

    def test_unknown_type_shares_process_band(self, engine):
        placed = by_id(engine.calculate_layout([node('odd', 'gateway'), node('a', 'actor')]))

        assert placed['odd']['y'] == 500

    def test_input_not_mutated(self, engine):
        nodes = [node('a', 'actor')]

        engine.calculate_layout(nodes)

        assert 'x' not in nodes[0]

    def test_wide_band_starts_at_margin(self, engine):
        nodes = [node(f'p{index}') for index in range(10)]

        placed = engine.calculate_layout(nodes)

        assert min(item['x'] for item in placed) == 100


class TestAlgorithms:
    @pytest.mark.parametrize('algorithm', ['tiered', 'radial', 'hierarchical'])
    def test_positions_on_grid(self, engine, algorithm):
        nodes, connections = chain(7)
        nodes[0]['type'] = 'actor'
        nodes[-1]['type'] = 'store'

        placed = engine.calculate_layout(nodes, connections, algorithm)

        for item in placed:
            assert item['x'] % 100 == 0
            assert item['y'] % 100 == 0

    def test_unknown_algorithm(self, engine):
        with pytest.raises(LayoutError, match='Unknown layout type: spiral'):
            engine.calculate_layout([node('a')], algorithm='spiral')

    def test_radial_places_every_node(self, engine):
        placed = engine.calculate_layout([node(f'n{index}') for index in range(4)], algorithm='radial')

        assert len({(item['x'], item['y']) for item in placed}) == 4

    def test_empty_input(self, engine):
        assert engine.calculate_layout([], algorithm='radial') == []

    def test_invalid_grid(self):
        with pytest.raises(LayoutError):
            LayoutEngine(grid_snap=0)


class TestHierarchicalLayout:
    def test_chain_levels(self, engine):
        nodes, connections = chain(3)

        placed = by_id(engine.calculate_layout(nodes, connections, 'hierarchical'))

        assert [placed[key]['y'] for key in ('n0', 'n1', 'n2')] == [100, 500, 900]

    def test_cycle_falls_back_to_tiered(self, engine):
        nodes = [node('a', 'actor'), node('b', 'store')]
        connections = [{'sourceId': 'a', 'targetId': 'b'}, {'sourceId': 'b', 'targetId': 'a'}]

        placed = by_id(engine.calculate_layout(nodes, connections, 'hierarchical'))

        assert placed['a']['y'] == 100
        assert placed['b']['y'] == 900

    def test_levels_bounded(self, engine):
        nodes, connections = chain(25)

        levels = engine.build_hierarchy_levels(nodes, connections, [nodes[0]])

        assert len(levels) == 21
        assert [item['id'] for item in levels[-1]] == ['n20', 'n21', 'n22', 'n23', 'n24']

    def test_unreachable_nodes_in_final_level(self, engine):
        nodes = [node('root'), node('child'), node('loop-a'), node('loop-b')]
        connections = [
            {'sourceId': 'root', 'targetId': 'child'},
            {'sourceId': 'loop-a', 'targetId': 'loop-b'},
            {'sourceId': 'loop-b', 'targetId': 'loop-a'},
        ]

        levels = engine.build_hierarchy_levels(nodes, connections, [nodes[0]])

        assert [[item['id'] for item in level] for level in levels] == [
            ['root'], ['child'], ['loop-a', 'loop-b']
        ]


class TestOverlaps:
    def test_coincident_nodes_separated(self, engine):
        nodes = [node('a', x=500, y=500), node('b', x=500, y=500)]

        engine.prevent_overlaps(nodes)

        dx = nodes[0]['x'] - nodes[1]['x']
        dy = nodes[0]['y'] - nodes[1]['y']
        assert (dx ** 2 + dy ** 2) ** 0.5 >= 200
        for item in nodes:
            assert item['x'] % 100 == 0
            assert item['y'] % 100 == 0

    def test_iteration_cap(self, engine):
        nodes = [node(f'n{index}', x=500, y=500) for index in range(12)]

        result = engine.prevent_overlaps(nodes, min_distance=100000, max_iterations=3)

        assert result is nodes

    def test_spread_nodes_unchanged(self, engine):
        nodes = [node('a', x=100, y=100), node('b', x=900, y=900)]

        engine.prevent_overlaps(nodes)

        assert (nodes[0]['x'], nodes[1]['x']) == (100, 900)


class TestGridHelpers:
    @pytest.mark.parametrize('value, expected', [
        (150, 200),
        (149, 100),
        (250, 300),
        (0, 0),
        (-49, 0),
    ])
    def test_snap_rounds_half_up(self, engine, value, expected):
        assert engine.snap_to_grid(value) == expected

    def test_bounding_box(self):
        nodes = [node('a', x=100, y=300), node('b', x=700, y=100)]

        bbox = LayoutEngine.calculate_bounding_box(nodes)

        assert bbox == {'minX': 100, 'minY': 100, 'maxX': 700, 'maxY': 300, 'width': 600, 'height': 200}

    def test_bounding_box_empty(self):
        assert LayoutEngine.calculate_bounding_box([])['width'] == 0

    def test_center_diagram(self, engine):
        nodes = [node('a', x=100, y=100), node('b', x=300, y=300)]

        engine.center_diagram(nodes)

        assert [(item['x'], item['y']) for item in nodes] == [(900, 700), (1100, 900)]
