"""
Work Order Hub - Routes Package

API routers for the Work Order Hub.
"""

from .signed import router as signed_router, set_dependencies as set_signed_deps

__all__ = [
    'signed_router', 'set_signed_deps',
]
