"""
Test Fixtures Package
"""

from .sample_data import (
    SAMPLE_FAL_SUCCESS,
    SAMPLE_FAL_ERROR,
    create_sample_batch,
    get_fal_callback,
    make_spec,
)

__all__ = [
    'SAMPLE_FAL_SUCCESS',
    'SAMPLE_FAL_ERROR',
    'create_sample_batch',
    'get_fal_callback',
    'make_spec',
]
