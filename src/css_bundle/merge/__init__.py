"""Merge engine and rule-merge transform."""

from css_bundle.merge.dedupe import discard_duplicates
from css_bundle.merge.engine import (
    RuleMerger,
    concatenate_fragments,
    merge_fragments,
    read_fragment,
)

__all__ = [
    "discard_duplicates",
    "RuleMerger",
    "concatenate_fragments",
    "merge_fragments",
    "read_fragment",
]
