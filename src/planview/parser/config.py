"""
Resource limits applied while a plan is parsed.

Plan text is usually pasted by hand or piped from a database client, so the
parser bounds how much of it it will look at: the raw character count, the
number of nodes it will build, and how deep the nesting may go. Exceeding
any limit is a MalformedPlanError tagged ``resource_limit``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

# Brackets per plan level in JSON input (node object, child array, wrapper
# object such as MySQL's "table") plus the envelope around the root node
JSON_NESTING_PER_LEVEL = 3
JSON_NESTING_ENVELOPE = 8


class ParserConfig(BaseModel):
    """
    Limits for one parse_plan() call.

    Attributes:
        max_source_chars: Longest raw plan text accepted, before any
            normalization.
        max_nodes: Nodes built across the main tree and every shared
            subplan.
        max_depth: Deepest nesting level of a node. Text plans check it as
            the indentation stack grows, JSON plans before decoding (see
            ``max_json_nesting``) and again while walking the objects.

    Example:
        # A psql session
        parse_plan(text)

        # Plans pasted into a shared tool
        parse_plan(text, config=ParserConfig(max_source_chars=100_000, max_nodes=1000))
    """

    model_config = ConfigDict(frozen=True)

    max_source_chars: int = Field(
        default=5_000_000,
        gt=0,
        description="Maximum raw plan text length in characters",
    )

    max_nodes: int = Field(
        default=50_000,
        gt=0,
        description="Maximum number of plan nodes",
    )

    max_depth: int = Field(
        default=100,
        gt=0,
        description="Maximum nesting level of a plan node",
    )

    @property
    def max_json_nesting(self) -> int:
        """Bracket depth a JSON plan of max_depth levels can reach."""
        return JSON_NESTING_PER_LEVEL * self.max_depth + JSON_NESTING_ENVELOPE


DEFAULT_CONFIG = ParserConfig()

# Plans from untrusted sources
STRICT_CONFIG = ParserConfig(
    max_source_chars=500_000,
    max_nodes=5_000,
    max_depth=50,
)
