"""
Data models for validation results shared by the schema, DFDIR and cell validators.
"""
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Severity(Enum):
    """Severity levels for validation issues."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class ErrorCodes:
    """Validation error codes."""
    # Schema errors
    SCHEMA_INVALID = 'SCHEMA_INVALID'
    MISSING_REQUIRED = 'MISSING_REQUIRED'
    INVALID_TYPE = 'INVALID_TYPE'
    INVALID_FORMAT = 'INVALID_FORMAT'

    # Cell/Diagram errors
    MISSING_SHAPE = 'MISSING_SHAPE'
    INVALID_SHAPE = 'INVALID_SHAPE'
    MISSING_ID = 'MISSING_ID'
    MISSING_POSITION = 'MISSING_POSITION'
    MISSING_SIZE = 'MISSING_SIZE'
    INVALID_SOURCE = 'INVALID_SOURCE'
    INVALID_TARGET = 'INVALID_TARGET'
    ORPHAN_FLOW = 'ORPHAN_FLOW'

    # DFDIR errors
    EMPTY_MODEL = 'EMPTY_MODEL'
    INVALID_ELEMENT = 'INVALID_ELEMENT'
    INVALID_FLOW = 'INVALID_FLOW'
    REFERENCE_ERROR = 'REFERENCE_ERROR'

    # General errors
    UNKNOWN_ERROR = 'UNKNOWN_ERROR'


@dataclass
class ValidationIssue:
    """A single validation error, warning or informational note."""
    code: str = ErrorCodes.UNKNOWN_ERROR
    message: str = 'Unknown validation error'
    path: str = ''
    severity: Severity = Severity.ERROR
    suggestion: str = ''
    context: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'message': self.message,
            'path': self.path,
            'severity': self.severity.value,
            'suggestion': self.suggestion,
            'context': self.context,
            'timestamp': self.timestamp
        }


def create_error(code: str = ErrorCodes.UNKNOWN_ERROR, message: str = 'Unknown validation error',
                 path: str = '', severity: Severity = Severity.ERROR, suggestion: str = '',
                 context: Optional[Dict[str, Any]] = None) -> ValidationIssue:
    return ValidationIssue(
        code=code,
        message=message,
        path=path,
        severity=severity,
        suggestion=suggestion,
        context=context or {}
    )


def create_warning(code: str, message: str, path: str = '', suggestion: str = '',
                   context: Optional[Dict[str, Any]] = None) -> ValidationIssue:
    return create_error(code, message, path, Severity.WARNING, suggestion, context)


def create_info(code: str, message: str, path: str = '', suggestion: str = '',
                context: Optional[Dict[str, Any]] = None) -> ValidationIssue:
    return create_error(code, message, path, Severity.INFO, suggestion, context)


@dataclass
class ValidationResult:
    """Unified result returned by every validator."""
    valid: bool = True
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)
    info: List[ValidationIssue] = field(default_factory=list)
    source: str = 'unknown'
    validated_at: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    @property
    def has_warnings(self) -> bool:
        return len(self.warnings) > 0

    @property
    def total_issues(self) -> int:
        return len(self.errors) + len(self.warnings)

    def add_error(self, error: ValidationIssue):
        self.errors.append(error)
        self.valid = False

    def add_warning(self, warning: ValidationIssue):
        self.warnings.append(warning)

    def add_info(self, info_item: ValidationIssue):
        self.info.append(info_item)

    def merge(self, other: 'ValidationResult') -> 'ValidationResult':
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.info.extend(other.info)
        if other.errors:
            self.valid = False
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            'valid': self.valid,
            'errors': [error.to_dict() for error in self.errors],
            'warnings': [warning.to_dict() for warning in self.warnings],
            'info': [item.to_dict() for item in self.info],
            'source': self.source,
            'validatedAt': self.validated_at
        }

    def __str__(self) -> str:
        if self.valid:
            return f"✓ Validation passed ({self.source})"
        error_lines = '\n'.join(f"  ✗ {error.message}" for error in self.errors)
        return f"✗ Validation failed ({self.source}):\n{error_lines}"


def from_string_errors(error_strings: List[str], source: str = 'unknown',
                       code: str = ErrorCodes.UNKNOWN_ERROR) -> ValidationResult:
    """Wrap plain error messages into a ValidationResult."""
    result = ValidationResult(source=source, valid=len(error_strings) == 0)
    for message in error_strings:
        result.add_error(create_error(code=code, message=message))
    return result


_PYDANTIC_TYPE_CODES = {
    'missing': ErrorCodes.MISSING_REQUIRED,
    'literal_error': ErrorCodes.INVALID_TYPE,
    'enum': ErrorCodes.INVALID_TYPE,
    'string_type': ErrorCodes.INVALID_TYPE,
    'int_type': ErrorCodes.INVALID_TYPE,
    'int_parsing': ErrorCodes.INVALID_TYPE,
    'float_type': ErrorCodes.INVALID_TYPE,
    'float_parsing': ErrorCodes.INVALID_TYPE,
    'bool_type': ErrorCodes.INVALID_TYPE,
    'bool_parsing': ErrorCodes.INVALID_TYPE,
    'list_type': ErrorCodes.INVALID_TYPE,
    'dict_type': ErrorCodes.INVALID_TYPE,
    'model_type': ErrorCodes.INVALID_TYPE,
    'string_pattern_mismatch': ErrorCodes.INVALID_FORMAT,
    'string_too_short': ErrorCodes.INVALID_FORMAT,
    'string_too_long': ErrorCodes.INVALID_FORMAT,
    'greater_than_equal': ErrorCodes.INVALID_FORMAT,
    'less_than_equal': ErrorCodes.INVALID_FORMAT,
}


def _format_location(loc) -> str:
    path = ''
    for part in loc:
        if isinstance(part, int):
            path += f'[{part}]'
        else:
            path += f'.{part}' if path else str(part)
    return path


def from_pydantic_errors(pydantic_errors: List[Dict[str, Any]], source: str = 'pydantic') -> ValidationResult:
    """Convert pydantic ValidationError.errors() output to field-level issues."""
    result = ValidationResult(source=source, valid=not pydantic_errors)

    for item in pydantic_errors or []:
        error_type = item.get('type', '')
        path = _format_location(item.get('loc', ()))
        path_str = f"at '{path}'" if path else ''

        if error_type == 'missing':
            field_name = item['loc'][-1] if item.get('loc') else ''
            message = f"Missing required property '{field_name}' {path_str}".strip()
            suggestion = f"Add the missing property '{field_name}'"
        else:
            message = f"{item.get('msg', 'Invalid value')} {path_str}".strip()
            suggestion = ''
            if error_type.endswith('_type') or error_type.endswith('_parsing'):
                suggestion = f"Ensure the value is of type '{error_type.split('_')[0]}'"

        result.add_error(create_error(
            code=_PYDANTIC_TYPE_CODES.get(error_type, ErrorCodes.SCHEMA_INVALID),
            message=message,
            path=path,
            suggestion=suggestion,
            context={'type': error_type, 'loc': list(item.get('loc', ()))}
        ))

    return result
