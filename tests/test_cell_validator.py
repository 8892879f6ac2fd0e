"""
Tests for render-time cell validation and auto-fix.
"""
from models.validation_models import ErrorCodes
from services.cell_validator import (
    ValidShapes, auto_fix_cells, is_edge_cell, is_valid_shape, resolve_shape,
    validate_cell, validate_cells, validate_diagram
)


def node_cell(cell_id='n1', shape='process', **kwargs):
    cell = {
        'id': cell_id,
        'shape': shape,
        'position': {'x': 100, 'y': 100},
        'size': {'width': 160, 'height': 80},
        'zIndex': 1,
        'data': {'name': cell_id, 'type': 'tm.Process'},
    }
    cell.update(kwargs)
    return cell


def edge_cell(cell_id='f1', source='n1', target='n2', **kwargs):
    cell = {
        'id': cell_id,
        'shape': 'flow',
        'source': {'cell': source},
        'target': {'cell': target},
        'zIndex': 10,
        'data': {'name': 'TCP', 'type': 'tm.Flow'},
    }
    cell.update(kwargs)
    return cell


def codes(issues):
    return [issue.code for issue in issues]


class TestShapes:
    def test_canonical_and_alias_shapes(self):
        assert is_valid_shape('actor')
        assert is_valid_shape('tm.Store')
        assert not is_valid_shape('cloud')
        assert not is_valid_shape(None)

    def test_legacy_boundary_spelling_accepted(self):
        assert is_valid_shape('trust-broundary-curve')
        assert ValidShapes.TRUST_BOUNDARY_CURVE == 'trust-broundary-curve'

    def test_resolve_shape(self):
        assert resolve_shape('tm.Actor') == 'actor'
        assert resolve_shape('store') == 'store'

    def test_edge_detection(self):
        assert is_edge_cell(edge_cell())
        assert is_edge_cell({'shape': 'trust-broundary-curve'})
        assert not is_edge_cell(node_cell())


class TestValidateCells:
    def test_valid_diagram_cells(self):
        result = validate_cells([node_cell('n1'), node_cell('n2'), edge_cell()])

        assert result.valid
        assert result.errors == []
        assert result.warnings == []

    def test_edge_without_z_index_is_only_a_warning(self):
        edge = edge_cell()
        del edge['zIndex']

        result = validate_cells([node_cell('n1'), node_cell('n2'), edge])

        assert result.valid
        assert len(result.warnings) == 1
        warning = result.warnings[0]
        assert warning.message == "Cell 2 is missing 'zIndex' property"
        assert warning.path == 'cells[2].zIndex'

    def test_invalid_shape(self):
        result = validate_cells([node_cell(shape='cloud')])

        assert not result.valid
        assert codes(result.errors) == [ErrorCodes.INVALID_SHAPE]
        assert result.errors[0].context == {'invalidShape': 'cloud'}

    def test_missing_id_and_shape(self):
        result = validate_cell({'zIndex': 1}, 3)

        assert set(codes(result.errors)) == {ErrorCodes.MISSING_ID, ErrorCodes.MISSING_SHAPE}
        assert result.errors[0].path == 'cells[3].id'

    def test_missing_position_and_size(self):
        cell = node_cell()
        cell['position'] = {'x': 'left', 'y': 10}
        del cell['size']

        result = validate_cells([cell])

        assert codes(result.errors) == [ErrorCodes.MISSING_POSITION, ErrorCodes.MISSING_SIZE]

    def test_node_without_data_warns(self):
        cell = node_cell()
        del cell['data']

        result = validate_cells([cell])

        assert result.valid
        assert "missing 'data' object" in result.warnings[0].message

    def test_edge_missing_endpoints(self):
        result = validate_cells([{'id': 'f', 'shape': 'flow', 'zIndex': 0}])

        assert codes(result.errors) == [ErrorCodes.INVALID_SOURCE, ErrorCodes.INVALID_TARGET]

    def test_orphan_reference_warns(self):
        result = validate_cells([node_cell('n1'), edge_cell(target='ghost')])

        assert result.valid
        assert codes(result.warnings) == [ErrorCodes.ORPHAN_FLOW]
        assert result.warnings[0].context == {'reference': 'ghost'}

    def test_endpoint_by_id_key(self):
        edge = edge_cell(source=None, target=None)
        edge['source'] = {'id': 'n1'}
        edge['target'] = {'id': 'n2'}

        result = validate_cells([node_cell('n1'), node_cell('n2'), edge])

        assert result.warnings == []

    def test_non_list(self):
        result = validate_cells({'cells': []})

        assert not result.valid
        assert codes(result.errors) == [ErrorCodes.INVALID_TYPE]

    def test_empty_list_warns(self):
        result = validate_cells([])

        assert result.valid
        assert codes(result.warnings) == [ErrorCodes.EMPTY_MODEL]

    def test_non_dict_cell(self):
        result = validate_cells(['not a cell'])

        assert codes(result.errors) == [ErrorCodes.INVALID_TYPE]


class TestValidateDiagram:
    def test_missing_diagram(self):
        assert not validate_diagram(None).valid

    def test_missing_title_and_id_warn(self):
        result = validate_diagram({'cells': [node_cell()]})

        assert result.valid
        assert {warning.path for warning in result.warnings} == {'diagram.title', 'diagram.id'}

    def test_zero_id_accepted(self):
        result = validate_diagram({'id': 0, 'title': 'Main', 'cells': [node_cell()]})

        assert result.warnings == []


class TestAutoFix:
    def test_assigns_z_index_by_kind(self):
        node = node_cell('n1')
        edge = edge_cell(target='n1', source='n1')
        del node['zIndex']
        del edge['zIndex']

        fixed, fixes = auto_fix_cells([node, edge])

        assert fixed[0]['zIndex'] == 1
        assert fixed[1]['zIndex'] == 0
        assert 'Cell 0: Added zIndex 1' in fixes
        assert 'Cell 1: Added zIndex 0' in fixes

    def test_input_not_mutated(self):
        node = node_cell()
        del node['zIndex']

        auto_fix_cells([node])

        assert 'zIndex' not in node

    def test_aliases_converted_and_data_added(self):
        cell = node_cell(shape='tm.Store', attrs={'text': {'text': 'Vault'}})
        del cell['data']

        fixed, fixes = auto_fix_cells([cell])

        assert fixed[0]['shape'] == 'store'
        assert fixed[0]['data'] == {'name': 'Vault', 'type': 'tm.Store', 'hasOpenThreats': False}
        assert "Cell 0: Converted shape 'tm.Store' to 'store'" in fixes

    def test_fixed_cells_revalidate_clean(self):
        edge = edge_cell()
        del edge['zIndex']
        cells = [node_cell('n1'), node_cell('n2'), edge]

        fixed, _ = auto_fix_cells(cells)

        assert validate_cells(fixed).warnings == []

    def test_non_list_input(self):
        assert auto_fix_cells(None) == ([], ['Created empty cells array'])
