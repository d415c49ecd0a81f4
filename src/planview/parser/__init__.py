"""EXPLAIN output parsing: normalize, detect, build, assemble."""

from planview.exceptions import MalformedPlanError, UnresolvedReferenceWarning
from planview.parser.assembler import assemble
from planview.parser.builder import BuildResult, build
from planview.parser.config import DEFAULT_CONFIG, STRICT_CONFIG, ParserConfig
from planview.parser.dialect import detect
from planview.parser.models import (
    Dialect,
    PlanDocument,
    PlanNode,
    SharedSubplan,
    SubplanKind,
)
from planview.parser.normalizer import normalize
from planview.parser.parser import parse_plan, parse_plan_file
from planview.parser.stats import ExtractedStats, extract_stats
from planview.parser.tabular import format_result_table

__all__ = [
    "PlanDocument",
    "PlanNode",
    "SharedSubplan",
    "SubplanKind",
    "Dialect",
    "parse_plan",
    "parse_plan_file",
    "normalize",
    "detect",
    "build",
    "BuildResult",
    "extract_stats",
    "ExtractedStats",
    "assemble",
    "format_result_table",
    "MalformedPlanError",
    "UnresolvedReferenceWarning",
    "ParserConfig",
    "DEFAULT_CONFIG",
    "STRICT_CONFIG",
]
