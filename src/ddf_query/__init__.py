"""DDF query tools: a read-only query engine over DDF csv datasets.

Queries select key and value columns from one table kind (`concepts`,
`entities` or `datapoints`); datapoints spread over many files are joined on
their entity and time coordinates.
"""

__all__ = [
    "__version__",
    "DdfQueryEngine",
    "Query",
]

__version__ = "0.1.0"

from .core.engine import DdfQueryEngine  # noqa: E402
from .core.query.models import Query  # noqa: E402
