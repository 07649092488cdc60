"""
Pyrite trace-element analysis - Source Package
"""

from . import config
from . import mlflow_utils
from . import health

# Subpackages
from . import data
from . import analysis
from . import visualization

__all__ = [
    # Core
    'config',
    'mlflow_utils',
    'health',
    # Subpackages
    'data',
    'analysis',
    'visualization',
]
