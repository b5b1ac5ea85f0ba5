"""
Structure preservation for the SEO compliance optimizer.

This module guards document structure while text is being rewritten:
- Snapshots: restorable copies kept in a bounded ring buffer
- Fingerprints: element counts (paragraphs, headings per level, images, lists)
- Validation: compares fingerprints before and after a correction batch
- Checksums: a content digest for cheap corruption checks

Major violations (headings changed, images removed, paragraphs or list items
changed beyond tolerance) require a rollback. Minor ones (large length
change, title drift, list count change) are reported as warnings.
"""

import hashlib
import logging
import re
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from bs4 import BeautifulSoup

from .analyzers import html_to_text, title_similarity
from .config import OptimizerConfig
from .models import Document, Snapshot, StructureFingerprint

logger = logging.getLogger(__name__)


@dataclass
class StructureValidationResult:
    """Result of structure validation."""
    is_valid: bool
    violations: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    change_percent: float = 0.0
    title_similarity: float = 1.0

    @property
    def requires_rollback(self) -> bool:
        return bool(self.violations)


@dataclass(frozen=True)
class CorruptionReport:
    """Outcome of a checksum comparison."""
    is_corrupted: bool
    expected_checksum: str
    actual_checksum: str


@dataclass
class PreservationOutcome:
    """Document to continue with after guarding a correction batch."""
    document: Document
    rolled_back: bool
    validation: StructureValidationResult
    snapshot: Snapshot


def compute_fingerprint(html: str) -> StructureFingerprint:
    """Count structural elements in an HTML body."""
    if not html:
        return StructureFingerprint()
    soup = BeautifulSoup(html, "html.parser")
    headings = tuple(len(soup.find_all(f"h{level}")) for level in range(1, 7))
    return StructureFingerprint(
        paragraphs=len(soup.find_all("p")),
        headings=headings,
        images=len(soup.find_all("img")),
        lists=len(soup.find_all(["ul", "ol"])),
        list_items=len(soup.find_all("li")),
        links=len(soup.find_all("a")),
        total_tags=len(soup.find_all(True)),
    )


def _normalize(text: str) -> str:
    text = re.sub(r">\s+<", "><", text or "")
    return re.sub(r"\s+", " ", text).strip()


def compute_checksum(document: Document) -> str:
    """SHA-256 over the whitespace-normalized title, meta description and body."""
    payload = "\x1f".join([
        _normalize(document.title),
        _normalize(document.meta_description),
        _normalize(document.body),
    ])
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class StructurePreserver:
    """
    Snapshots documents and validates structural integrity of corrections.

    Snapshot storage is scoped to one preserver instance (one session).
    """

    def __init__(self, config: Optional[OptimizerConfig] = None):
        """
        Initialize structure preserver.

        Args:
            config: Optimizer configuration. Supplies the snapshot buffer size
                and the tolerance/warning thresholds.
        """
        self.config = config or OptimizerConfig()
        self.snapshots: deque[Snapshot] = deque(maxlen=self.config.max_snapshots)

    def create_snapshot(self, document: Document, label: str = "") -> Snapshot:
        """Store a snapshot, evicting the oldest when the buffer is full."""
        snapshot = Snapshot(
            snapshot_id=str(uuid.uuid4()),
            document=document,
            fingerprint=compute_fingerprint(document.body),
            checksum=compute_checksum(document),
            label=label,
            timestamp=time.time(),
        )
        self.snapshots.append(snapshot)
        logger.debug(f"Snapshot '{label}' created ({len(self.snapshots)} stored)")
        return snapshot

    def get_snapshot(self, snapshot_id: str) -> Optional[Snapshot]:
        for snapshot in self.snapshots:
            if snapshot.snapshot_id == snapshot_id:
                return snapshot
        return None

    def rollback(self, snapshot_id: str) -> Document:
        """
        Return the document stored in a snapshot.

        Raises:
            KeyError: If the snapshot was never taken or has been evicted.
        """
        snapshot = self.get_snapshot(snapshot_id)
        if snapshot is None:
            raise KeyError(f"Snapshot {snapshot_id} not found")
        logger.info(f"Rolled back to snapshot '{snapshot.label}'")
        return snapshot.document

    def validate_structure(self, before: Document, after: Document) -> StructureValidationResult:
        """
        Compare the structure of two versions of a document.

        Args:
            before: Version prior to the correction batch.
            after: Corrected version.

        Returns:
            StructureValidationResult. ``violations`` holds major problems
            that require rollback; ``warnings`` holds minor ones.
        """
        cfg = self.config
        old = compute_fingerprint(before.body)
        new = compute_fingerprint(after.body)
        violations: list[str] = []
        warnings: list[str] = []

        for level, (was, now) in enumerate(zip(old.headings, new.headings), 1):
            if was != now:
                violations.append(f"Heading count changed for h{level}: {was} -> {now}")

        if new.images < old.images:
            violations.append(f"Image count decreased: {old.images} -> {new.images}")

        if old.paragraphs:
            drift = abs(new.paragraphs - old.paragraphs) / old.paragraphs
            if drift > cfg.paragraph_tolerance:
                violations.append(
                    f"Paragraph count changed by {drift:.0%}: {old.paragraphs} -> {new.paragraphs}"
                )

        if old.list_items:
            drift = (old.list_items - new.list_items) / old.list_items
            if drift > cfg.paragraph_tolerance:
                violations.append(
                    f"List items dropped by {drift:.0%}: {old.list_items} -> {new.list_items}"
                )

        if new.lists != old.lists:
            warnings.append(f"List count changed: {old.lists} -> {new.lists}")

        old_len = len(html_to_text(before.body))
        new_len = len(html_to_text(after.body))
        change = abs(new_len - old_len) / old_len if old_len else (1.0 if new_len else 0.0)
        if change > cfg.length_change_warning:
            warnings.append(f"Content length changed by {change:.0%}")

        similarity = title_similarity(before.title, after.title) if before.title else 1.0
        if similarity < cfg.title_similarity_warning:
            warnings.append(f"Title similarity dropped to {similarity:.0%}")

        if violations:
            logger.warning(f"Structure violations: {'; '.join(violations)}")

        return StructureValidationResult(
            is_valid=not violations,
            violations=violations,
            warnings=warnings,
            change_percent=round(change * 100, 2),
            title_similarity=similarity,
        )

    def preserve(self, snapshot: Snapshot, corrected: Document) -> PreservationOutcome:
        """
        Validate a corrected document against its pre-batch snapshot.

        Rolls back to the snapshot when a major violation is found.
        """
        validation = self.validate_structure(snapshot.document, corrected)
        if validation.requires_rollback:
            logger.info(f"Rolled back to snapshot '{snapshot.label}'")
            return PreservationOutcome(
                document=snapshot.document,
                rolled_back=True,
                validation=validation,
                snapshot=snapshot,
            )
        return PreservationOutcome(
            document=corrected,
            rolled_back=False,
            validation=validation,
            snapshot=snapshot,
        )

    def detect_corruption(self, document: Document, expected_checksum: str) -> CorruptionReport:
        """Flag a document whose checksum does not match the claimed one."""
        actual = compute_checksum(document)
        return CorruptionReport(
            is_corrupted=actual != expected_checksum,
            expected_checksum=expected_checksum,
            actual_checksum=actual,
        )
