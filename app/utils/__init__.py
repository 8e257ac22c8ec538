"""
Utils package
"""
from .data_utils import (
    get_request_data,
    parse_bool,
    public_user,
    pick,
)

__all__ = [
    'get_request_data',
    'parse_bool',
    'public_user',
    'pick',
]
