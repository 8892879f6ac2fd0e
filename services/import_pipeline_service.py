"""
End-to-end import pipeline:

    text or JSON -> nodes/connections -> layout -> DFDIR -> diagram JSON -> validation

Every collaborator is constructed per service instance, so independent
imports never share mutable state.
"""
import logging
from datetime import datetime
from typing import Dict, Any, List, Optional

from config.settings import Config
from models.dfd_models import DFDIR
from models.import_models import DetectedFormat, ExtractedTopology
from models.validation_models import ValidationResult, ErrorCodes, create_warning
from services.diagram_converter import DiagramConverter
from services.entity_extractor import EntityExtractor
from services.json_import_service import JsonImportService
from services.layout_engine import LayoutEngine
from services.pattern_library import PatternLibrary
from services.validation_service import ValidationService

logger = logging.getLogger(__name__)

PRESERVE_LAYOUT = 'preserve'


class ImportPipelineService:
    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 validation_service: Optional[ValidationService] = None):
        self.config = config or Config.get_config()
        self.validation_service = validation_service or ValidationService(
            self.config.get('validation_mode', 'strict')
        )
        self.patterns = PatternLibrary(context_window=self.config.get('context_window', 200))
        logger.debug(f"Pattern library loaded: {self.patterns.summary()}")
        self.json_import = JsonImportService()
        self.layout_engine = LayoutEngine(**Config.get_layout_options(self.config))
        self.converter = DiagramConverter(self.validation_service)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run_text_import(self, text: str, options: Optional[Dict[str, Any]] = None,
                        secondary_results: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Extract a topology from free text and convert it to a diagram model."""
        options = options or {}
        if not isinstance(text, str) or not text.strip():
            raise ValueError('No text provided for import')

        warnings = []
        max_length = self.config.get('max_text_length', 1000000)
        truncated = len(text) > max_length
        if truncated:
            message = f"Text truncated from {len(text)} to {max_length} characters"
            logger.warning(message)
            warnings.append(message)
            text = text[:max_length]

        logger.info(f"Starting text import ({len(text)} characters)")
        topology = EntityExtractor(self.patterns).extract(text, secondary_results)

        metadata = {
            'source': 'text',
            'format': 'text',
            'textLength': len(text),
            'truncated': truncated,
            'secondarySource': bool(secondary_results)
        }
        return self._run(topology, options, metadata, extraction_method='pattern', warnings=warnings)

    def run_json_import(self, data: Any, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Import a pre-structured JSON document in any recognised dialect."""
        options = options or {}
        detected: DetectedFormat = self.json_import.detect_format(data)
        logger.info(f"Starting JSON import, detected format: {detected.format.value}")

        topology = self.json_import.extract(data, detected)

        metadata = {
            'source': 'json',
            'format': detected.format.value,
            'formatDescription': detected.description
        }
        return self._run(topology, options, metadata, extraction_method=detected.format.value)

    # ------------------------------------------------------------------
    # Shared stages
    # ------------------------------------------------------------------

    def _resolve_algorithm(self, options: Dict[str, Any]) -> str:
        return options.get('layout_algorithm') or self.config.get('layout_algorithm', 'tiered')

    def _layout(self, topology: ExtractedTopology, algorithm: str, options: Dict[str, Any]) -> List[Dict[str, Any]]:
        nodes = topology.nodes

        if algorithm == PRESERVE_LAYOUT:
            if nodes and all('x' in node and 'y' in node for node in nodes):
                logger.info("Keeping imported node positions")
                return [dict(node) for node in nodes]
            algorithm = self.config.get('layout_algorithm', 'tiered')
            logger.warning(f"Not every node carries a position, using {algorithm} layout instead")

        positioned = self.layout_engine.calculate_layout(nodes, topology.connections, algorithm)

        resolve_overlaps = options.get('resolve_overlaps', self.config.get('resolve_overlaps', True))
        if resolve_overlaps:
            self.layout_engine.prevent_overlaps(
                positioned,
                min_distance=self.config.get('overlap_min_distance', 200),
                max_iterations=self.config.get('overlap_max_iterations', 100)
            )
        return positioned

    def _conversion_options(self, options: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'diagram_name': options.get('diagram_name'),
            'diagram_description': options.get('diagram_description'),
            'project_name': options.get('project_name'),
            'project_owner': options.get('project_owner') or self.config.get('project_owner'),
            'include_metadata': options.get('include_metadata', self.config.get('include_metadata', True))
        }

    def _validate_output(self, threat_model: Dict[str, Any], validation_service: ValidationService) -> Dict[str, Any]:
        """Validate the converted model; in auto-fix mode the cells are repaired in place first."""
        fixes = []
        for diagram in threat_model['detail']['diagrams']:
            outcome = validation_service.validate_and_fix_cells(diagram['cells'])
            if outcome['fixes']:
                diagram['cells'] = outcome['cells']
                fixes.extend(outcome['fixes'])

        result: ValidationResult = validation_service.validate_threat_model(threat_model)
        validation_service.log_result(result)
        return {'result': result, 'fixes': fixes}

    def _run(self, topology: ExtractedTopology, options: Dict[str, Any], metadata: Dict[str, Any],
             extraction_method: str, warnings: Optional[List[str]] = None) -> Dict[str, Any]:
        validation_service = self.validation_service
        if options.get('validation_mode'):
            validation_service = ValidationService(options['validation_mode'])
        converter = self.converter if validation_service is self.validation_service else DiagramConverter(validation_service)

        algorithm = self._resolve_algorithm(options)
        positioned = self._layout(topology, algorithm, options)

        dfdir = DFDIR.from_topology(options.get('diagram_name') or 'Imported Topology',
                                    positioned, topology.connections)
        dfdir.metadata['source'] = metadata['source']
        dfdir.metadata['extractionMethod'] = extraction_method

        dfdir_result = validation_service.validate_dfdir(dfdir)
        threat_model = converter.convert(dfdir, self._conversion_options(options))
        output = self._validate_output(threat_model, validation_service)

        validation: ValidationResult = output['result']
        validation.merge(dfdir_result)
        for message in warnings or []:
            validation.add_warning(create_warning(code=ErrorCodes.INVALID_FORMAT, message=message, path='text'))

        statistics = dfdir.get_statistics(self.config.get('low_confidence_threshold', 70))
        success = not validation_service.blocks(validation)
        if not success:
            logger.warning(f"Import produced {len(validation.errors)} validation errors "
                           f"in {validation_service.mode.value} mode")

        metadata.update({
            'timestamp': datetime.now().isoformat(),
            'layoutAlgorithm': algorithm,
            'validationMode': validation_service.mode.value,
            'nodeCount': len(dfdir.elements),
            'connectionCount': len(dfdir.flows),
            'fixesApplied': output['fixes'],
            'qualityIndicators': {
                'averageConfidence': statistics['averageConfidence']['elements'],
                'lowConfidenceElements': statistics['lowConfidenceElements'],
                'lowConfidenceFlows': statistics['lowConfidenceFlows'],
                'missingIPs': statistics['missingIPs'],
                'needsReview': statistics['lowConfidenceElements'] > 0 or statistics['missingIPs'] > 0
            }
        })

        logger.info(f"Import finished: {metadata['nodeCount']} nodes, {metadata['connectionCount']} connections, "
                    f"valid={validation.valid}")

        return {
            'success': success,
            'threat_model': threat_model,
            'validation': validation.to_dict(),
            'statistics': statistics,
            'dfdir': dfdir.to_dict(),
            'metadata': metadata
        }

