"""
API blueprints
"""
from .records import records_bp
from .sync import sync_bp

__all__ = ['records_bp', 'sync_bp']
