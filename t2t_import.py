#!/usr/bin/env python3
"""
Command-line import: operational test plan text or pre-structured JSON in,
threat-model diagram JSON out.
"""
import argparse
import sys

from config.settings import Config, LAYOUT_ALGORITHMS, VALIDATION_MODES
from models.import_models import ImportFormatError
from services.diagram_converter import DiagramConverter
from services.import_pipeline_service import ImportPipelineService, PRESERVE_LAYOUT
from utils.file_utils import (
    JSON_EXTENSIONS, TEXT_EXTENSIONS, get_file_extension, read_text_file, read_json_file,
    check_file_size, default_output_path, save_diagram
)
from utils.logging_utils import setup_logging, logger


def build_parser():
    parser = argparse.ArgumentParser(description='Convert an operational test plan into a threat model diagram')
    parser.add_argument('input', help='Path to a .txt/.md plan or a .json topology export')
    parser.add_argument('--output', help='Where to write the diagram JSON')
    parser.add_argument('--layout', choices=LAYOUT_ALGORITHMS + (PRESERVE_LAYOUT,),
                        help='Layout algorithm (default from LAYOUT_ALGORITHM)')
    parser.add_argument('--mode', choices=VALIDATION_MODES, help='Validation mode (default from VALIDATION_MODE)')
    parser.add_argument('--project-name', help='Threat model title')
    parser.add_argument('--owner', help='Threat model owner')
    parser.add_argument('--no-metadata', action='store_true', help='Omit extraction metadata from cells')
    parser.add_argument('--pretty', action='store_true', help='Indent the output JSON')
    return parser


def run_import(args, config):
    extension = get_file_extension(args.input)
    if extension not in TEXT_EXTENSIONS | JSON_EXTENSIONS:
        raise ValueError(f"Unsupported file type: .{extension}")

    size_error = check_file_size(args.input, config['max_upload_size'])
    if size_error:
        raise ValueError(size_error)

    options = {
        'layout_algorithm': args.layout,
        'validation_mode': args.mode,
        'project_name': args.project_name,
        'project_owner': args.owner,
        'include_metadata': not args.no_metadata
    }
    options = {key: value for key, value in options.items() if value is not None}
    pipeline = ImportPipelineService(config)

    if extension in JSON_EXTENSIONS:
        data, error = read_json_file(args.input)
        if error:
            raise ImportFormatError(error)
        return pipeline.run_json_import(data, options)

    text, error = read_text_file(args.input)
    if error:
        raise ValueError(error)
    return pipeline.run_text_import(text, options)


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging()
    config = Config.get_config()

    try:
        result = run_import(args, config)
    except ValueError as e:
        # ConversionError, ImportFormatError, LayoutError and DFDIRError included
        logger.error(f"Import failed: {e}")
        for detail in getattr(e, 'errors', []):
            logger.error(f"  - {detail}")
        return 1

    output_path = args.output or default_output_path(args.input, config['output_dir'])
    save_diagram(DiagramConverter.export_json(result['threat_model'], pretty=args.pretty), output_path)

    stats = result['statistics']
    logger.info(f"Elements: {stats['totalElements']} ({stats['actors']} actors, {stats['processes']} processes, "
                f"{stats['stores']} stores), flows: {stats['totalFlows']}")
    logger.info(f"Average confidence: {stats['averageConfidence']['elements']}%, "
                f"low confidence elements: {stats['lowConfidenceElements']}")

    if not result['success']:
        for error in result['validation']['errors']:
            logger.error(f"  ✗ {error['message']}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
