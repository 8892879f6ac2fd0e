"""
Unified validation: diagram schema conformance, DFDIR structure and
render-time cell checks, all reported through ValidationResult.
"""
import logging
from enum import Enum
from typing import Dict, Any, Optional, Union

from models import diagram_schema
from models.dfd_models import DFDIR
from models.validation_models import (
    ValidationResult, ErrorCodes, create_error, create_warning, create_info,
    from_string_errors, from_pydantic_errors
)
from services.cell_validator import validate_cells, validate_diagram, auto_fix_cells
from services.pattern_library import PatternLibrary

logger = logging.getLogger(__name__)


class ValidationMode(Enum):
    STRICT = 'strict'        # any error stops processing
    LENIENT = 'lenient'      # errors are reported, processing continues
    AUTO_FIX = 'auto-fix'    # fixable cell issues are repaired


class ValidationService:
    def __init__(self, mode: Union[ValidationMode, str] = ValidationMode.STRICT):
        self.mode = ValidationMode(mode)
        self.last_result: Optional[ValidationResult] = None

    def validate_threat_model(self, threat_model: Optional[Dict[str, Any]]) -> ValidationResult:
        """Schema check followed by a structural check of every diagram."""
        result = ValidationResult(source='validationService.threatModel')

        if not threat_model:
            result.add_error(create_error(
                code=ErrorCodes.MISSING_REQUIRED,
                message='Threat model is null or undefined',
                path='threatModel'
            ))
            return self._finalize(result)

        result.merge(self.validate_schema(threat_model))

        detail = threat_model.get('detail') if isinstance(threat_model, dict) else None
        diagrams = detail.get('diagrams') if isinstance(detail, dict) else None
        if isinstance(diagrams, list):
            for index, diagram in enumerate(diagrams):
                result.merge(self.validate_diagram_structure(diagram, index))

        return self._finalize(result)

    def validate_schema(self, model: Any) -> ValidationResult:
        result = ValidationResult(source='validationService.schema')

        if diagram_schema.is_v2(model):
            return result

        if diagram_schema.is_v1(model):
            result.add_warning(create_warning(
                code=ErrorCodes.SCHEMA_INVALID,
                message='Model uses V1 schema format',
                suggestion='Consider upgrading to V2 format'
            ))
            return result

        if diagram_schema.is_tm_bom(model):
            result.add_info(create_info(
                code=ErrorCodes.SCHEMA_INVALID,
                message='Model is in TM-BOM format'
            ))
            return result

        if diagram_schema.is_otm(model):
            result.add_info(create_info(
                code=ErrorCodes.SCHEMA_INVALID,
                message='Model is in Open Threat Model format'
            ))
            return result

        result.merge(from_pydantic_errors(diagram_schema.check_v2(model), source='pydantic-v2'))
        return result

    def validate_diagram_structure(self, diagram: Optional[Dict[str, Any]], index: int = 0) -> ValidationResult:
        result = ValidationResult(source=f'validationService.diagram[{index}]')

        if not diagram:
            result.add_error(create_error(
                code=ErrorCodes.MISSING_REQUIRED,
                message=f'Diagram {index} is null or undefined',
                path=f'diagrams[{index}]'
            ))
            return result

        result.merge(validate_diagram(diagram))
        return result

    def validate_cells_for_render(self, cells: Any) -> ValidationResult:
        return validate_cells(cells)

    def validate_and_fix_cells(self, cells: Any) -> Dict[str, Any]:
        """
        Validate cells; in AUTO_FIX mode invalid or incomplete cells are
        repaired and re-validated. Other modes never modify the input.
        """
        result = self.validate_cells_for_render(cells)

        if self.mode is ValidationMode.AUTO_FIX and (not result.valid or result.has_warnings):
            fixed_cells, fixes = auto_fix_cells(cells)
            if fixes:
                logger.info(f"Auto-fix applied {len(fixes)} fixes")
            return {
                'result': self.validate_cells_for_render(fixed_cells),
                'cells': fixed_cells,
                'fixes': fixes,
                'original_result': result
            }

        return {'result': result, 'cells': cells, 'fixes': [], 'original_result': None}

    def validate_dfdir(self, dfdir: Optional[DFDIR]) -> ValidationResult:
        result = ValidationResult(source='validationService.dfdir')

        if dfdir is None:
            result.add_error(create_error(
                code=ErrorCodes.MISSING_REQUIRED,
                message='DFDIR is null or undefined',
                path='dfdir'
            ))
            return result

        dfdir_validation = dfdir.validate()
        if not dfdir_validation['valid']:
            result.merge(from_string_errors(dfdir_validation['errors'], source='dfdir',
                                            code=ErrorCodes.INVALID_ELEMENT))

        # A malformed address lowers confidence but does not invalidate the model
        for index, element in enumerate(dfdir.elements):
            if element.ip_address and not PatternLibrary.is_valid_ipv4(element.ip_address):
                result.add_warning(create_warning(
                    code=ErrorCodes.INVALID_FORMAT,
                    message=f"Element {index} ({element.name}) has invalid IPv4 address '{element.ip_address}'",
                    path=f'elements[{index}].ipAddress',
                    suggestion='Correct the address or remove it'
                ))

        return result

    def is_valid(self, model: Dict[str, Any]) -> bool:
        return self.validate_threat_model(model).valid

    def blocks(self, result: ValidationResult) -> bool:
        """Whether the result should stop processing under the current mode."""
        return result.has_errors and self.mode is not ValidationMode.LENIENT

    def log_result(self, result: ValidationResult):
        prefix = '[ValidationService]'

        if result.valid:
            logger.debug(f"{prefix} ✓ Validation passed ({result.source})")
        else:
            logger.warning(f"{prefix} ✗ Validation failed ({result.source})")
            for error in result.errors:
                logger.error(f"{prefix}   {error.code}: {error.message}")
                if error.suggestion:
                    logger.info(f"{prefix}     → {error.suggestion}")

        for warning in result.warnings:
            logger.warning(f"{prefix}   ⚠ {warning.message}")

    def _finalize(self, result: ValidationResult) -> ValidationResult:
        self.last_result = result
        return result
