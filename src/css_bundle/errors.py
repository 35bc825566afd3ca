"""Exception hierarchy for scan, merge, and publication failures."""

from __future__ import annotations


class BundleError(Exception):
    """Base class for all css_bundle failures."""


class ScanError(BundleError):
    """A directory in the fragment tree could not be read."""


class FingerprintError(BundleError):
    """A fragment could not be read while computing the fingerprint."""


class MergeError(BundleError):
    """Fragment contents could not be read or merged."""


class RuleMergeError(MergeError):
    """The concatenated stylesheet is malformed."""


class SetupError(BundleError):
    """Output directories, buffers, or links could not be prepared."""


class PublishError(BundleError):
    """Writing a buffer or swapping the shadow link failed."""


class PublicationInconsistentError(PublishError):
    """The shadow link swap failed and could not be rolled back.

    Buffers and links for the output target may disagree until the next
    successful publish or a manual repair.
    """
