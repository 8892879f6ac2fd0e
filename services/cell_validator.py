"""
Render-time validation of diagram cells.

Catches cells the renderer would choke on (missing id, unknown shape,
missing geometry, edges without endpoints) before they are handed over.
"""
import copy
from typing import List, Dict, Any, Optional, Tuple

from models.validation_models import (
    ValidationResult, ErrorCodes, create_error, create_warning
)


class ValidShapes:
    """Shape names accepted by the diagram renderer."""
    ACTOR = 'actor'
    PROCESS = 'process'
    STORE = 'store'
    FLOW = 'flow'
    TRUST_BOUNDARY_BOX = 'trust-boundary-box'
    # Misspelling is the renderer's registered name, do not correct it
    TRUST_BOUNDARY_CURVE = 'trust-broundary-curve'
    TEXT = 'td-text-block'

    @classmethod
    def values(cls) -> List[str]:
        return [cls.ACTOR, cls.PROCESS, cls.STORE, cls.FLOW,
                cls.TRUST_BOUNDARY_BOX, cls.TRUST_BOUNDARY_CURVE, cls.TEXT]


SHAPE_ALIASES = {
    'tm.Actor': ValidShapes.ACTOR,
    'tm.Process': ValidShapes.PROCESS,
    'tm.Store': ValidShapes.STORE,
    'tm.Flow': ValidShapes.FLOW,
    'tm.Boundary': ValidShapes.TRUST_BOUNDARY_BOX,
    'tm.BoundaryBox': ValidShapes.TRUST_BOUNDARY_BOX,
}

SHAPE_DATA_TYPES = {
    ValidShapes.ACTOR: 'tm.Actor',
    ValidShapes.PROCESS: 'tm.Process',
    ValidShapes.STORE: 'tm.Store',
    ValidShapes.FLOW: 'tm.Flow',
    ValidShapes.TRUST_BOUNDARY_BOX: 'tm.BoundaryBox',
    ValidShapes.TRUST_BOUNDARY_CURVE: 'tm.Boundary',
    ValidShapes.TEXT: 'tm.Text',
}

EDGE_Z_INDEX = 0
NODE_Z_INDEX = 1


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_valid_shape(shape: Optional[str]) -> bool:
    if not shape:
        return False
    return shape in ValidShapes.values() or shape in SHAPE_ALIASES


def resolve_shape(shape: Optional[str]) -> Optional[str]:
    return SHAPE_ALIASES.get(shape, shape)


def is_edge_cell(cell: Dict[str, Any]) -> bool:
    shape = resolve_shape(cell.get('shape'))
    return (
        shape in (ValidShapes.FLOW, ValidShapes.TRUST_BOUNDARY_CURVE)
        or bool(cell.get('source'))
        or bool(cell.get('target'))
    )


def _endpoint_id(endpoint: Any) -> Optional[str]:
    if isinstance(endpoint, dict):
        return endpoint.get('cell') or endpoint.get('id')
    return None


def validate_cell(cell: Dict[str, Any], index: int = 0, cell_ids: Optional[set] = None) -> ValidationResult:
    """Validate one cell. cell_ids, when given, enables dangling-reference warnings."""
    result = ValidationResult(source=f'cell[{index}]')

    if not isinstance(cell, dict):
        result.add_error(create_error(
            code=ErrorCodes.INVALID_TYPE,
            message=f"Cell {index} must be an object",
            path=f'cells[{index}]'
        ))
        return result

    if not cell.get('id'):
        result.add_error(create_error(
            code=ErrorCodes.MISSING_ID,
            message=f"Cell {index} is missing required 'id' property",
            path=f'cells[{index}].id',
            suggestion='Add a unique UUID as the cell id'
        ))

    shape = cell.get('shape')
    if not shape:
        result.add_error(create_error(
            code=ErrorCodes.MISSING_SHAPE,
            message=f"Cell {index} is missing required 'shape' property",
            path=f'cells[{index}].shape',
            suggestion="Add shape property with value like 'actor', 'process', 'store', or 'flow'"
        ))
    elif not is_valid_shape(shape):
        result.add_error(create_error(
            code=ErrorCodes.INVALID_SHAPE,
            message=f"Cell {index} has invalid shape '{shape}'",
            path=f'cells[{index}].shape',
            suggestion=f"Use one of: {', '.join(ValidShapes.values())}",
            context={'invalidShape': shape}
        ))

    if cell.get('zIndex') is None:
        result.add_warning(create_warning(
            code=ErrorCodes.MISSING_REQUIRED,
            message=f"Cell {index} is missing 'zIndex' property",
            path=f'cells[{index}].zIndex',
            suggestion='Add zIndex for proper layering (0 for edges, 1 for nodes)'
        ))

    if is_edge_cell(cell):
        _validate_edge_cell(cell, index, cell_ids or set(), result)
    elif shape:
        _validate_node_cell(cell, index, result)

    return result


def _validate_node_cell(cell: Dict[str, Any], index: int, result: ValidationResult):
    position = cell.get('position')
    if not isinstance(position, dict) or not _is_number(position.get('x')) or not _is_number(position.get('y')):
        result.add_error(create_error(
            code=ErrorCodes.MISSING_POSITION,
            message=f"Node cell {index} is missing valid position {{x, y}}",
            path=f'cells[{index}].position',
            suggestion='Add position object with numeric x and y values'
        ))

    size = cell.get('size')
    if not isinstance(size, dict) or not _is_number(size.get('width')) or not _is_number(size.get('height')):
        result.add_error(create_error(
            code=ErrorCodes.MISSING_SIZE,
            message=f"Node cell {index} is missing valid size {{width, height}}",
            path=f'cells[{index}].size',
            suggestion='Add size object with numeric width and height values'
        ))

    if not cell.get('data'):
        result.add_warning(create_warning(
            code=ErrorCodes.MISSING_REQUIRED,
            message=f"Node cell {index} is missing 'data' object",
            path=f'cells[{index}].data',
            suggestion='Add data object with name, type, and other properties'
        ))


def _validate_edge_cell(cell: Dict[str, Any], index: int, cell_ids: set, result: ValidationResult):
    for end, code in (('source', ErrorCodes.INVALID_SOURCE), ('target', ErrorCodes.INVALID_TARGET)):
        endpoint = cell.get(end)
        if not endpoint:
            result.add_error(create_error(
                code=code,
                message=f"Edge cell {index} is missing '{end}' property",
                path=f'cells[{index}].{end}',
                suggestion=f'Add {end} object with cell ID reference'
            ))
            continue

        referenced = _endpoint_id(endpoint)
        if referenced and cell_ids and referenced not in cell_ids:
            result.add_warning(create_warning(
                code=ErrorCodes.ORPHAN_FLOW,
                message=f"Edge cell {index} references non-existent {end} cell '{referenced}'",
                path=f'cells[{index}].{end}',
                suggestion=f'Ensure {end} cell ID exists in the diagram',
                context={'reference': referenced}
            ))


def validate_cells(cells: Any) -> ValidationResult:
    result = ValidationResult(source='cellValidator')

    if not isinstance(cells, list):
        result.add_error(create_error(
            code=ErrorCodes.INVALID_TYPE,
            message='Cells must be an array',
            path='cells',
            suggestion='Ensure diagram.cells is an array'
        ))
        return result

    if not cells:
        result.add_warning(create_warning(
            code=ErrorCodes.EMPTY_MODEL,
            message='Diagram contains no cells',
            path='cells',
            suggestion='Add nodes and flows to the diagram'
        ))
        return result

    cell_ids = {cell.get('id') for cell in cells if isinstance(cell, dict) and cell.get('id')}
    for index, cell in enumerate(cells):
        result.merge(validate_cell(cell, index, cell_ids))

    return result


def validate_diagram(diagram: Optional[Dict[str, Any]]) -> ValidationResult:
    result = ValidationResult(source='diagramValidator')

    if not diagram:
        result.add_error(create_error(
            code=ErrorCodes.MISSING_REQUIRED,
            message='Diagram is null or undefined',
            path='diagram'
        ))
        return result

    if not diagram.get('title'):
        result.add_warning(create_warning(
            code=ErrorCodes.MISSING_REQUIRED,
            message='Diagram is missing title',
            path='diagram.title'
        ))

    if diagram.get('id') is None or diagram.get('id') == '':
        result.add_warning(create_warning(
            code=ErrorCodes.MISSING_ID,
            message='Diagram is missing id',
            path='diagram.id'
        ))

    result.merge(validate_cells(diagram.get('cells')))
    return result


def auto_fix_cells(cells: Any) -> Tuple[List[Dict[str, Any]], List[str]]:
    """
    Return fixed copies of the cells and a description of every fix.
    The input list and its cells are left untouched.
    """
    if not isinstance(cells, list):
        return [], ['Created empty cells array']

    fixes = []
    fixed_cells = []
    for index, cell in enumerate(cells):
        if not isinstance(cell, dict):
            fixed_cells.append(cell)
            continue
        fixed = copy.deepcopy(cell)

        shape = fixed.get('shape')
        if shape in SHAPE_ALIASES:
            fixed['shape'] = SHAPE_ALIASES[shape]
            fixes.append(f"Cell {index}: Converted shape '{shape}' to '{fixed['shape']}'")

        if fixed.get('zIndex') is None:
            fixed['zIndex'] = EDGE_Z_INDEX if is_edge_cell(fixed) else NODE_Z_INDEX
            fixes.append(f"Cell {index}: Added zIndex {fixed['zIndex']}")

        if not fixed.get('data'):
            attrs = fixed.get('attrs') or {}
            fixed['data'] = {
                'name': (attrs.get('text') or {}).get('text') or f'Cell {index}',
                'type': SHAPE_DATA_TYPES.get(fixed.get('shape'), 'tm.Process'),
                'hasOpenThreats': False
            }
            fixes.append(f"Cell {index}: Added data object")

        fixed_cells.append(fixed)

    return fixed_cells, fixes
