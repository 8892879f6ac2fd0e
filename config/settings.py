"""
Configuration settings for the topology import pipeline.
"""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

LAYOUT_ALGORITHMS = ('tiered', 'radial', 'hierarchical')
VALIDATION_MODES = ('strict', 'lenient', 'auto-fix')

class Config:
    @staticmethod
    def get_config():
        """Get configuration from environment with defaults."""
        return {
            # Layout
            'grid_snap': int(os.getenv('GRID_SNAP', '100')),
            'canvas_width': int(os.getenv('CANVAS_WIDTH', '2000')),
            'canvas_height': int(os.getenv('CANVAS_HEIGHT', '1500')),
            'tier_spacing': int(os.getenv('TIER_SPACING', '400')),
            'node_spacing': int(os.getenv('NODE_SPACING', '300')),
            'layout_algorithm': os.getenv('LAYOUT_ALGORITHM', 'tiered'),
            'resolve_overlaps': os.getenv('RESOLVE_OVERLAPS', 'true').lower() == 'true',
            'overlap_min_distance': int(os.getenv('OVERLAP_MIN_DISTANCE', '200')),
            'overlap_max_iterations': int(os.getenv('OVERLAP_MAX_ITERATIONS', '100')),
            'max_hierarchy_levels': int(os.getenv('MAX_HIERARCHY_LEVELS', '20')),

            # Extraction
            'context_window': int(os.getenv('CONTEXT_WINDOW', '200')),
            'low_confidence_threshold': int(os.getenv('LOW_CONFIDENCE_THRESHOLD', '70')),
            'max_text_length': int(os.getenv('MAX_TEXT_LENGTH', '1000000')),
            'max_upload_size': int(os.getenv('MAX_UPLOAD_SIZE', str(10 * 1024 * 1024))),

            # Conversion & validation
            'validation_mode': os.getenv('VALIDATION_MODE', 'strict'),
            'include_metadata': os.getenv('INCLUDE_METADATA', 'true').lower() == 'true',
            'project_owner': os.getenv('PROJECT_OWNER', 'Unknown'),

            # Directories
            'output_dir': os.getenv('OUTPUT_DIR', './output'),
        }

    @staticmethod
    def ensure_directories(*dirs):
        """Ensure all provided directories exist."""
        for directory in dirs:
            if directory and not os.path.exists(directory):
                os.makedirs(directory, exist_ok=True)

    @staticmethod
    def validate_config(config):
        """Validate configuration values, returning a list of error messages."""
        errors = []

        if config.get('layout_algorithm') not in LAYOUT_ALGORITHMS:
            errors.append(f"layout_algorithm must be one of: {', '.join(LAYOUT_ALGORITHMS)}")

        if config.get('validation_mode') not in VALIDATION_MODES:
            errors.append(f"validation_mode must be one of: {', '.join(VALIDATION_MODES)}")

        grid_snap = config.get('grid_snap', 100)
        if not isinstance(grid_snap, int) or grid_snap <= 0:
            errors.append("grid_snap must be a positive integer")

        max_iterations = config.get('overlap_max_iterations', 100)
        if not isinstance(max_iterations, int) or max_iterations < 1 or max_iterations > 10000:
            errors.append("overlap_max_iterations must be between 1 and 10000")

        threshold = config.get('low_confidence_threshold', 70)
        if not isinstance(threshold, int) or threshold < 0 or threshold > 100:
            errors.append("low_confidence_threshold must be between 0 and 100")

        return errors

    @staticmethod
    def get_layout_options(config):
        """Pick the layout engine keyword arguments out of a config dict."""
        return {
            'grid_snap': config.get('grid_snap', 100),
            'canvas_width': config.get('canvas_width', 2000),
            'canvas_height': config.get('canvas_height', 1500),
            'tier_spacing': config.get('tier_spacing', 400),
            'node_spacing': config.get('node_spacing', 300),
            'max_levels': config.get('max_hierarchy_levels', 20),
        }
