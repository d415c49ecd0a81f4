"""planview - Query execution plan parser for PostgreSQL and MySQL EXPLAIN output."""

__version__ = "0.3.0"
__license__ = "MIT"

# Exception hierarchy (import first so other modules can use it)
from planview.exceptions import (
    PlanViewError,
    MalformedPlanError,
    ConfigurationError,
    UnresolvedReferenceWarning,
)

from planview.config import (
    Config,
    get_config,
)
from planview.parser import (
    Dialect,
    PlanDocument,
    PlanNode,
    SharedSubplan,
    SubplanKind,
    detect,
    normalize,
    parse_plan,
    parse_plan_file,
)

__all__ = [
    # Exception hierarchy
    "PlanViewError",
    "MalformedPlanError",
    "ConfigurationError",
    "UnresolvedReferenceWarning",
    # Core
    "parse_plan",
    "parse_plan_file",
    "normalize",
    "detect",
    # Models
    "Dialect",
    "PlanDocument",
    "PlanNode",
    "SharedSubplan",
    "SubplanKind",
    # Configuration
    "Config",
    "get_config",
    # Metadata
    "__version__",
    "__license__",
]
