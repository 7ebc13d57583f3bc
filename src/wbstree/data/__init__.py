"""
Data submodule: YAML file I/O and the file-backed project store.
"""

from .io import atomic_write, load_model, save_model, DATA_YAML, DATA_JSON
from .store import YamlProjectStore

__all__ = [
    'atomic_write',
    'load_model',
    'save_model',
    'DATA_YAML',
    'DATA_JSON',
    'YamlProjectStore',
]
