from flask import jsonify, request
from datetime import datetime
from config.settings import Config, LAYOUT_ALGORITHMS, VALIDATION_MODES
from models.dfd_models import DFDIRError
from models.import_models import ImportFormatError
from services.diagram_converter import ConversionError
from services.import_pipeline_service import ImportPipelineService, PRESERVE_LAYOUT
from services.layout_engine import LayoutEngine, LayoutError
from services.validation_service import ValidationService, ValidationMode
from utils.logging_utils import logger

OPTION_KEYS = {
    'layoutAlgorithm': 'layout_algorithm',
    'resolveOverlaps': 'resolve_overlaps',
    'validationMode': 'validation_mode',
    'diagramName': 'diagram_name',
    'diagramDescription': 'diagram_description',
    'projectName': 'project_name',
    'projectOwner': 'project_owner',
    'includeMetadata': 'include_metadata',
}


def parse_options(raw_options):
    """Accept camelCase or snake_case option names from the client."""
    if raw_options is not None and not isinstance(raw_options, dict):
        raise ValueError("'options' must be a JSON object")

    options = {}
    for key, value in (raw_options or {}).items():
        options[OPTION_KEYS.get(key, key)] = value

    algorithm = options.get('layout_algorithm')
    if algorithm and algorithm not in LAYOUT_ALGORITHMS + (PRESERVE_LAYOUT,):
        raise LayoutError(f"Unknown layout type: {algorithm}")
    mode = options.get('validation_mode')
    if mode and mode not in VALIDATION_MODES:
        raise ValueError(f"validation_mode must be one of: {', '.join(VALIDATION_MODES)}")
    return options


def import_response(result):
    status = 200 if result['success'] else 422
    return jsonify(result), status


def register_routes(app, runtime_config):
    @app.before_request
    def log_request_info():
        logger.info(f"Request: {request.method} {request.url}")
        if request.method == 'POST':
            logger.debug(f"Content-Type: {request.content_type}")

    @app.errorhandler(ConversionError)
    def handle_conversion_error(e):
        logger.error(f"Conversion failed: {e}")
        return jsonify({'error': 'Conversion failed', 'message': str(e), 'details': e.errors}), 400

    @app.errorhandler(ImportFormatError)
    def handle_import_format_error(e):
        logger.error(f"Import format error: {e}")
        return jsonify({'error': 'Invalid import format', 'message': str(e), 'details': []}), 400

    @app.errorhandler(LayoutError)
    def handle_layout_error(e):
        logger.error(f"Layout error: {e}")
        return jsonify({'error': 'Invalid layout request', 'message': str(e), 'details': []}), 400

    @app.errorhandler(DFDIRError)
    def handle_dfdir_error(e):
        logger.error(f"DFDIR error: {e}")
        return jsonify({'error': 'Invalid topology', 'message': str(e), 'details': []}), 400

    @app.errorhandler(ValueError)
    def handle_value_error(e):
        logger.error(f"400 Bad Request: {e}")
        return jsonify({'error': 'Bad Request', 'message': str(e), 'details': []}), 400

    @app.route('/api/health', methods=['GET'])
    def health_check():
        return jsonify({
            'status': 'healthy',
            'timestamp': datetime.now().isoformat(),
            'config': {
                'layout_algorithm': runtime_config['layout_algorithm'],
                'validation_mode': runtime_config['validation_mode'],
                'grid_snap': runtime_config['grid_snap']
            }
        })

    @app.route('/api/config', methods=['GET'])
    def get_config():
        safe_config = {
            key: runtime_config[key] for key in (
                'grid_snap', 'canvas_width', 'canvas_height', 'tier_spacing', 'node_spacing',
                'layout_algorithm', 'resolve_overlaps', 'overlap_min_distance', 'overlap_max_iterations',
                'max_hierarchy_levels', 'context_window', 'low_confidence_threshold', 'max_text_length',
                'max_upload_size', 'validation_mode', 'include_metadata', 'project_owner'
            )
        }
        safe_config['layout_algorithms'] = list(LAYOUT_ALGORITHMS)
        safe_config['validation_modes'] = list(VALIDATION_MODES)
        return jsonify(safe_config)

    @app.route('/api/import/text', methods=['POST'])
    def import_text():
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or 'text' not in data:
            return jsonify({'error': 'Bad Request', 'message': "Request body must contain 'text'"}), 400

        options = parse_options(data.get('options'))
        secondary_results = data.get('secondaryResults')
        if secondary_results is not None and not isinstance(secondary_results, dict):
            return jsonify({'error': 'Bad Request', 'message': "'secondaryResults' must be a JSON object"}), 400

        pipeline = ImportPipelineService(runtime_config)
        result = pipeline.run_text_import(data['text'], options, secondary_results)
        return import_response(result)

    @app.route('/api/import/json', methods=['POST'])
    def import_json():
        data = request.get_json(silent=True)
        if data is None:
            return jsonify({'error': 'Bad Request', 'message': 'Request body must be JSON'}), 400

        options = {}
        if isinstance(data, dict) and 'document' in data:
            options = parse_options(data.get('options'))
            data = data['document']

        pipeline = ImportPipelineService(runtime_config)
        result = pipeline.run_json_import(data, options)
        return import_response(result)

    @app.route('/api/layout', methods=['POST'])
    def layout():
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or not isinstance(data.get('nodes'), list):
            return jsonify({'error': 'Bad Request', 'message': "Request body must contain a 'nodes' array"}), 400

        algorithm = data.get('algorithm') or runtime_config['layout_algorithm']
        engine = LayoutEngine(**Config.get_layout_options(runtime_config))
        nodes = engine.calculate_layout(data['nodes'], data.get('connections') or [], algorithm)

        if data.get('resolveOverlaps', runtime_config['resolve_overlaps']):
            engine.prevent_overlaps(nodes, runtime_config['overlap_min_distance'],
                                    runtime_config['overlap_max_iterations'])

        return jsonify({
            'nodes': nodes,
            'algorithm': algorithm,
            'boundingBox': engine.calculate_bounding_box(nodes)
        })

    @app.route('/api/validate', methods=['POST'])
    def validate():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({'error': 'Bad Request', 'message': 'Request body must be a JSON object'}), 400

        if 'threatModel' in data:
            service = ValidationService(runtime_config['validation_mode'])
            result = service.validate_threat_model(data['threatModel'])
            return jsonify({'validation': result.to_dict()})

        if 'cells' in data:
            mode = ValidationMode.AUTO_FIX if data.get('autoFix') else runtime_config['validation_mode']
            outcome = ValidationService(mode).validate_and_fix_cells(data['cells'])
            original = outcome['original_result']
            return jsonify({
                'validation': outcome['result'].to_dict(),
                'cells': outcome['cells'],
                'fixes': outcome['fixes'],
                'originalValidation': original.to_dict() if original else None
            })

        return jsonify({'error': 'Bad Request', 'message': "Provide 'threatModel' or 'cells'"}), 400
