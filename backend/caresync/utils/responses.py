"""
Uniform API response envelope
"""
from flask import jsonify
from typing import Any, Optional, Dict


class ApiResponse:
    """API response builder"""

    @staticmethod
    def success(data: Any = None, message: str = 'OK') -> tuple:
        """
        Success response

        Args:
            data: response payload
            message: human readable message

        Returns:
            (Response, status) tuple
        """
        response = {
            'success': True,
            'message': message,
        }
        if data is not None:
            response['data'] = data
        return jsonify(response), 200

    @staticmethod
    def created(data: Any = None, message: str = 'Created') -> tuple:
        """201 response"""
        response = {
            'success': True,
            'message': message,
        }
        if data is not None:
            response['data'] = data
        return jsonify(response), 201

    @staticmethod
    def accepted(data: Any = None, message: str = 'Queued for sync') -> tuple:
        """202 response, used when a write was queued instead of applied remotely"""
        response = {
            'success': True,
            'message': message,
        }
        if data is not None:
            response['data'] = data
        return jsonify(response), 202

    @staticmethod
    def error(
        message: str,
        code: int = 400,
        error_code: str = 'BAD_REQUEST',
        details: Optional[Dict] = None
    ) -> tuple:
        """
        Error response

        Args:
            message: error message
            code: HTTP status code
            error_code: machine readable error code
            details: extra error details

        Returns:
            (Response, status) tuple
        """
        response = {
            'success': False,
            'error': {
                'code': error_code,
                'message': message,
            }
        }
        if details:
            response['error']['details'] = details
        return jsonify(response), code

    @staticmethod
    def not_found(message: str = 'Resource not found') -> tuple:
        """404 response"""
        return ApiResponse.error(message, 404, 'NOT_FOUND')

    @staticmethod
    def unauthorized(message: str = 'Unauthorized') -> tuple:
        """401 response"""
        return ApiResponse.error(message, 401, 'UNAUTHORIZED')

    @staticmethod
    def forbidden(message: str = 'Forbidden') -> tuple:
        """403 response"""
        return ApiResponse.error(message, 403, 'FORBIDDEN')

    @staticmethod
    def validation_error(message: str, details: Optional[Dict] = None) -> tuple:
        """Validation error response"""
        return ApiResponse.error(message, 400, 'VALIDATION_ERROR', details)

    @staticmethod
    def storage_unavailable(message: str = 'Local store unavailable') -> tuple:
        """503 response for local store failures"""
        return ApiResponse.error(message, 503, 'STORAGE_UNAVAILABLE')

    @staticmethod
    def server_error(message: str = 'Internal server error') -> tuple:
        """500 response"""
        return ApiResponse.error(message, 500, 'INTERNAL_ERROR')


# Shortcuts
def success_response(data: Any = None, message: str = 'OK') -> tuple:
    """Shortcut for ApiResponse.success"""
    return ApiResponse.success(data, message)
