"""
Utility modules for listing generation
"""
from .sanitizers import sanitize_input, sanitize_tag, normalize_tag_list, split_list_cell

__all__ = [
    "sanitize_input",
    "sanitize_tag",
    "normalize_tag_list",
    "split_list_cell",
]
