#!/usr/bin/env python3
"""
Flask backend for the text-to-topology import pipeline.
Turns operational test plan text or pre-structured JSON into a validated
threat-model diagram.
"""
from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
import traceback
from config.settings import Config
from utils.logging_utils import setup_logging, log_startup_info, logger
from api.routes import register_routes
from datetime import datetime

def create_app(config=None):
    runtime_config = {**Config.get_config(), **(config or {})}
    setup_logging()

    config_errors = Config.validate_config(runtime_config)
    if config_errors:
        raise ValueError(f"Invalid configuration: {'; '.join(config_errors)}")

    Config.ensure_directories(runtime_config['output_dir'])
    app = Flask(__name__)
    app.config['MAX_CONTENT_LENGTH'] = runtime_config['max_upload_size']
    CORS(app)
    log_startup_info(runtime_config)
    register_routes(app, runtime_config)

    @app.errorhandler(Exception)
    def handle_exception(e):
        if isinstance(e, HTTPException):
            return jsonify({'error': e.name, 'message': e.description}), e.code
        logger.error(f"Unhandled exception: {e}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({
            'error': 'Internal server error',
            'message': str(e),
            'timestamp': datetime.now().isoformat()
        }), 500

    logger.info("Topology import backend ready")
    return app

if __name__ == '__main__':
    app = create_app()
    app.run(debug=True, port=5000, host='0.0.0.0')
