"""dqgate - Data quality gate for securities-lending datasets.

dqgate checks market, position, calculation, reference and inventory
datasets for cross-record consistency, optionally after a JSON Schema
check, and reports every violation with a CI-friendly exit code.
"""

__version__ = "0.1.0"
__author__ = "dqgate maintainers"
__description__ = "Data quality gate for securities-lending datasets"

from dqgate.config import DqgateConfig

__all__ = [
    "__version__",
    "__author__",
    "__description__",
    "DqgateConfig",
]
