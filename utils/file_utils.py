"""
File handling utilities for the topology import pipeline.
"""
import os
import json
import logging
from datetime import datetime
from typing import Tuple, Optional, Any

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = {'txt', 'md'}
JSON_EXTENSIONS = {'json'}
ALLOWED_EXTENSIONS = TEXT_EXTENSIONS | JSON_EXTENSIONS


def get_file_extension(filename: str) -> str:
    return filename.rsplit('.', 1)[1].lower() if '.' in filename else ''


def allowed_file(filename: str) -> bool:
    """Check if file extension is allowed."""
    return get_file_extension(filename) in ALLOWED_EXTENSIONS


def read_text_file(file_path: str) -> Tuple[Optional[str], Optional[str]]:
    """Read a plain text or markdown file, returning (text, error)."""
    if not os.path.exists(file_path):
        return None, f"File not found: {file_path}"

    # Try different encodings for text files
    for encoding in ['utf-8', 'latin-1', 'cp1252']:
        try:
            with open(file_path, 'r', encoding=encoding) as f:
                return f.read(), None
        except UnicodeDecodeError:
            continue
        except OSError as e:
            return None, str(e)

    return None, f"Could not decode {file_path}"


def read_json_file(file_path: str) -> Tuple[Optional[Any], Optional[str]]:
    """Load a JSON document, returning (data, error)."""
    if not os.path.exists(file_path):
        return None, f"File not found: {file_path}"

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            return json.load(f), None
    except json.JSONDecodeError as e:
        return None, f"Invalid JSON format: {e}"
    except OSError as e:
        return None, str(e)


def check_file_size(file_path: str, max_size: int) -> Optional[str]:
    """Return an error message when the file exceeds max_size bytes."""
    size = os.path.getsize(file_path)
    if size > max_size:
        return f"File too large: {size / 1024 / 1024:.2f}MB (max {max_size / 1024 / 1024:.0f}MB)"
    return None


def default_output_path(input_path: str, output_folder: str) -> str:
    stem = os.path.splitext(os.path.basename(input_path))[0]
    return os.path.join(output_folder, f"{stem}_threatmodel.json")


def save_diagram(content: str, output_path: str) -> str:
    """Write serialized diagram JSON, creating the parent folder if needed."""
    folder = os.path.dirname(output_path)
    if folder:
        os.makedirs(folder, exist_ok=True)

    with open(output_path, 'w', encoding='utf-8') as f:
        f.write(content)

    logger.info(f"Saved diagram to {output_path} at {datetime.now().isoformat()}")
    return output_path
