"""Fragment discovery, fingerprinting, and manifests."""

from css_bundle.fragments.discover import (
    DEFAULT_FILE_NAME_PATTERN,
    DEFAULT_IGNORE_DIR_NAMES,
    compile_pattern,
    scan_fragments,
)
from css_bundle.fragments.fingerprint import (
    ChangeState,
    combine_digests,
    compute_fingerprint,
    file_digests,
    has_changed,
    hash_file,
)
from css_bundle.fragments.manifest import (
    FRAGMENT_STATUS_VALUES,
    FragmentStatus,
    build_fragment_manifest,
    classify_fragment_manifest,
    empty_manifest,
    status_counts,
)

__all__ = [
    "DEFAULT_FILE_NAME_PATTERN",
    "DEFAULT_IGNORE_DIR_NAMES",
    "compile_pattern",
    "scan_fragments",
    "ChangeState",
    "hash_file",
    "file_digests",
    "combine_digests",
    "compute_fingerprint",
    "has_changed",
    "FRAGMENT_STATUS_VALUES",
    "FragmentStatus",
    "build_fragment_manifest",
    "classify_fragment_manifest",
    "empty_manifest",
    "status_counts",
]
