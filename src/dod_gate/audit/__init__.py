"""Audit artifacts: receipts, markdown reports and evidence bundles."""

from dod_gate.audit.evidence import (
    BundleIntegrityReport,
    EvidenceBundleGenerator,
    EvidenceManifest,
    FileEntry,
    FileType,
    verify_bundle,
)
from dod_gate.audit.git_metadata import GitMetadataProvider, GitMetadataSource
from dod_gate.audit.receipt import (
    CheckHash,
    Receipt,
    ReceiptGenerator,
    ReceiptMetadata,
    chain_hashes,
    hash_check_result,
)
from dod_gate.audit.report import ReportGenerator, escape_markdown_cell

__all__ = [
    "BundleIntegrityReport",
    "CheckHash",
    "EvidenceBundleGenerator",
    "EvidenceManifest",
    "FileEntry",
    "FileType",
    "GitMetadataProvider",
    "GitMetadataSource",
    "Receipt",
    "ReceiptGenerator",
    "ReceiptMetadata",
    "ReportGenerator",
    "chain_hashes",
    "escape_markdown_cell",
    "hash_check_result",
    "verify_bundle",
]
