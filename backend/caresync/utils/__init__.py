"""
Utility helpers
"""
from .responses import success_response, ApiResponse
from .validators import validate_operation, validate_collection_name, validate_payload, sanitize_string
from .logger import setup_logger, get_logger

__all__ = [
    'success_response',
    'ApiResponse',
    'validate_operation',
    'validate_collection_name',
    'validate_payload',
    'sanitize_string',
    'setup_logger',
    'get_logger',
]
