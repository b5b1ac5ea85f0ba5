"""
Data models for the SEO compliance optimizer.

This module defines the core data structures passed between the detector,
prompt generator, corrector, structure preserver and optimizer. Values that
travel across passes (documents, issues, snapshots) are frozen so that pass
history never aliases mutable state.
"""

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Literal, Optional, Union
import uuid


class Severity(Enum):
    """Issue severity, ordered from worst to least bad."""
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"

    @property
    def weight(self) -> int:
        """Penalty multiplier used by the compliance score."""
        return {"critical": 3, "major": 2, "minor": 1}[self.value]

    def escalate(self) -> "Severity":
        """Return the next worse severity (critical stays critical)."""
        if self is Severity.MINOR:
            return Severity.MAJOR
        return Severity.CRITICAL


class IssueType(Enum):
    """Every issue the detector can report."""
    KEYWORD_DENSITY_LOW = "keyword_density_low"
    KEYWORD_DENSITY_HIGH = "keyword_density_high"
    META_DESCRIPTION_SHORT = "meta_description_short"
    META_DESCRIPTION_LONG = "meta_description_long"
    META_DESCRIPTION_NO_KEYWORD = "meta_description_no_keyword"
    PASSIVE_VOICE_HIGH = "passive_voice_high"
    SENTENCE_LENGTH_HIGH = "sentence_length_high"
    TRANSITION_WORDS_LOW = "transition_words_low"
    TITLE_TOO_LONG = "title_too_long"
    TITLE_NO_KEYWORD = "title_no_keyword"
    SUBHEADING_KEYWORD_OVERUSE = "subheading_keyword_overuse"
    NO_IMAGES = "no_images"
    ALT_TEXT_NO_KEYWORD = "alt_text_no_keyword"


class TerminationReason(Enum):
    """Why an optimization session stopped."""
    INITIAL_COMPLIANCE = "initial_compliance"
    COMPLIANCE_ACHIEVED = "compliance_achieved"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    STAGNATION_DETECTED = "stagnation_detected"
    INSUFFICIENT_IMPROVEMENT = "insufficient_improvement"
    CRITICAL_ERROR = "critical_error"
    TIME_BUDGET_EXCEEDED = "time_budget_exceeded"


CorrectionAction = Literal["increase", "reduce"]


# =============================================================================
# Document
# =============================================================================

@dataclass(frozen=True)
class Document:
    """A document under optimization: title, HTML body and meta description."""
    title: str
    body: str
    meta_description: str = ""
    focus_keyword: str = ""
    secondary_keywords: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # Lists passed by callers are frozen into tuples.
        if not isinstance(self.secondary_keywords, tuple):
            object.__setattr__(self, "secondary_keywords", tuple(self.secondary_keywords))

    @property
    def keywords(self) -> tuple[str, ...]:
        """Focus keyword followed by the secondary keywords."""
        if not self.focus_keyword:
            return self.secondary_keywords
        return (self.focus_keyword,) + self.secondary_keywords

    def with_changes(self, **changes: Any) -> "Document":
        """Return a new Document with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "content": self.body,
            "meta_description": self.meta_description,
            "focus_keyword": self.focus_keyword,
            "secondary_keywords": list(self.secondary_keywords),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Document":
        """
        Build a Document from a host payload.

        Accepts ``content`` or ``body`` for the HTML body and
        ``meta_description`` or ``metaDescription`` for the meta text.
        """
        return cls(
            title=data.get("title", "") or "",
            body=data.get("content", data.get("body", "")) or "",
            meta_description=data.get("meta_description", data.get("metaDescription", "")) or "",
            focus_keyword=data.get("focus_keyword", data.get("focusKeyword", "")) or "",
            secondary_keywords=tuple(
                data.get("secondary_keywords", data.get("secondaryKeywords", [])) or ()
            ),
        )


# =============================================================================
# Issue locations
# =============================================================================

@dataclass(frozen=True)
class TextLocation:
    """A character span in the body text with surrounding context."""
    position: int
    length: int
    context: str
    note: str = ""


@dataclass(frozen=True)
class SentenceLocation:
    """A sentence flagged by a readability analyzer."""
    sentence_index: int
    sentence: str
    word_count: int = 0
    patterns: tuple[str, ...] = ()
    confidence: float = 1.0


@dataclass(frozen=True)
class FieldLocation:
    """A span inside a single-line field such as the title or meta description."""
    field_name: str
    text: str
    start: int = 0
    end: int = 0


@dataclass(frozen=True)
class HeadingLocation:
    """A subheading that contains the focus keyword."""
    index: int
    level: int
    text: str


@dataclass(frozen=True)
class ImageLocation:
    """An image whose alt text needs work."""
    index: int
    src: str
    alt: str
    problem: Literal["missing", "too_short", "no_keyword"]


Location = Union[TextLocation, SentenceLocation, FieldLocation, HeadingLocation, ImageLocation]


# =============================================================================
# Issues
# =============================================================================

@dataclass(frozen=True, kw_only=True)
class Issue:
    """A single detected violation of a metric band."""
    type: IssueType
    severity: Severity
    current_value: float
    target_value: float
    message: str
    priority: int
    weight: float
    locations: tuple[Location, ...] = ()
    detection_order: int = 0

    @property
    def penalty(self) -> float:
        """Weighted penalty contributed to the compliance score."""
        return self.severity.weight * self.weight

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        data["severity"] = self.severity.value
        return data


@dataclass(frozen=True, kw_only=True)
class KeywordDensityIssue(Issue):
    """Density outside the configured band."""
    keyword: str
    occurrences: int
    word_count: int
    min_density: float
    max_density: float


@dataclass(frozen=True, kw_only=True)
class MetaDescriptionIssue(Issue):
    """Meta description length or keyword problem."""
    text: str
    keyword: str
    min_length: int
    max_length: int


@dataclass(frozen=True, kw_only=True)
class TitleIssue(Issue):
    """Title length or keyword problem."""
    text: str
    keyword: str
    max_length: int


@dataclass(frozen=True, kw_only=True)
class ReadabilityIssue(Issue):
    """Passive voice, sentence length or transition word problem."""
    total_sentences: int
    flagged_sentences: int


@dataclass(frozen=True, kw_only=True)
class HeadingIssue(Issue):
    """Focus keyword overused in subheadings."""
    keyword: str
    total_headings: int
    keyword_headings: int


@dataclass(frozen=True, kw_only=True)
class ImageIssue(Issue):
    """Missing images or alt text without the focus keyword."""
    keyword: str
    image_count: int
    proper_alt_count: int


# =============================================================================
# Validation
# =============================================================================

@dataclass(frozen=True)
class ValidationResult:
    """Outcome of running the issue detector over one document."""
    compliance_score: float
    issues: tuple[Issue, ...] = ()
    metrics: dict[str, Any] = field(default_factory=dict)
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    corrections_made: tuple[str, ...] = ()

    @property
    def total_issues(self) -> int:
        return len(self.issues)

    @property
    def critical_issues(self) -> int:
        return sum(1 for i in self.issues if i.severity is Severity.CRITICAL)

    @property
    def major_issues(self) -> int:
        return sum(1 for i in self.issues if i.severity is Severity.MAJOR)

    @property
    def minor_issues(self) -> int:
        return sum(1 for i in self.issues if i.severity is Severity.MINOR)

    @property
    def issue_types(self) -> list[IssueType]:
        return [i.type for i in self.issues]

    @property
    def is_valid(self) -> bool:
        return not self.issues and not self.errors

    def get_issue(self, issue_type: IssueType) -> Optional[Issue]:
        """Return the first issue of the given type, if any."""
        for issue in self.issues:
            if issue.type is issue_type:
                return issue
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "compliance_score": self.compliance_score,
            "total_issues": self.total_issues,
            "critical_issues": self.critical_issues,
            "major_issues": self.major_issues,
            "minor_issues": self.minor_issues,
            "issues": [i.to_dict() for i in self.issues],
            "metrics": dict(self.metrics),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "corrections_made": list(self.corrections_made),
        }


# =============================================================================
# Correction prompts
# =============================================================================

@dataclass(frozen=True)
class QuantitativeTarget:
    """How far a metric must move and in which direction."""
    current: float
    target: float
    difference: float
    count: int
    action: CorrectionAction
    unit: str = "occurrences"


@dataclass(frozen=True)
class ExpectedChanges:
    """What the corrector should observe after applying a prompt."""
    metric: str
    current_value: float
    target_value: float
    expected_improvement: float
    action: CorrectionAction
    change_count: int


@dataclass(frozen=True)
class CorrectionPrompt:
    """A targeted, self-contained rewrite instruction for one issue."""
    issue_type: IssueType
    prompt_text: str
    quantitative_target: QuantitativeTarget
    expected_changes: ExpectedChanges
    priority: int
    target_locations: tuple[Location, ...] = ()
    detection_order: int = 0
    max_attempts: int = 3


# =============================================================================
# Structure
# =============================================================================

@dataclass(frozen=True)
class StructureFingerprint:
    """Counts of structural HTML elements, independent of prose."""
    paragraphs: int = 0
    headings: tuple[int, int, int, int, int, int] = (0, 0, 0, 0, 0, 0)
    images: int = 0
    lists: int = 0
    list_items: int = 0
    links: int = 0
    total_tags: int = 0

    @property
    def total_headings(self) -> int:
        return sum(self.headings)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["headings"] = {f"h{level}": count for level, count in enumerate(self.headings, 1)}
        return data


@dataclass(frozen=True)
class Snapshot:
    """A restorable copy of a document taken before or after a batch."""
    snapshot_id: str
    document: Document
    fingerprint: StructureFingerprint
    checksum: str
    label: str
    timestamp: float


# =============================================================================
# Corrections and passes
# =============================================================================

@dataclass(frozen=True)
class CorrectionRecord:
    """Outcome of applying one prompt."""
    issue_type: IssueType
    success: bool
    provider: Optional[str] = None
    attempts: int = 0
    before_value: Optional[float] = None
    after_value: Optional[float] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class PassRecord:
    """One detect/correct/re-validate iteration."""
    pass_number: int
    before_score: float
    after_score: float
    score_improvement: float
    issues_resolved: int
    before_issue_count: int
    after_issue_count: int
    corrections: tuple[CorrectionRecord, ...] = ()
    strategy: str = "targeted_correction"
    resolved_issue_types: tuple[str, ...] = ()
    new_issue_types: tuple[str, ...] = ()
    persistent_issue_types: tuple[str, ...] = ()
    rolled_back: bool = False
    snapshot_id: Optional[str] = None
    duration_ms: float = 0.0
    degraded: bool = False
    degradation_level: Optional[str] = None

    @property
    def improvements(self) -> dict[str, list[str]]:
        return {
            "resolvedIssueTypes": list(self.resolved_issue_types),
            "newIssueTypes": list(self.new_issue_types),
            "persistentIssueTypes": list(self.persistent_issue_types),
        }

    @property
    def successful_corrections(self) -> int:
        return sum(1 for c in self.corrections if c.success)

    @property
    def correction_success_rate(self) -> Optional[float]:
        if not self.corrections:
            return None
        return round(self.successful_corrections / len(self.corrections) * 100, 2)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pass_number": self.pass_number,
            "before_score": self.before_score,
            "after_score": self.after_score,
            "score_improvement": self.score_improvement,
            "issues_resolved": self.issues_resolved,
            "before_issue_count": self.before_issue_count,
            "after_issue_count": self.after_issue_count,
            "corrections": [
                {
                    "issue_type": c.issue_type.value,
                    "success": c.success,
                    "provider": c.provider,
                    "attempts": c.attempts,
                    "before_value": c.before_value,
                    "after_value": c.after_value,
                    "error": c.error,
                }
                for c in self.corrections
            ],
            "strategy": self.strategy,
            "improvements": self.improvements,
            "rolled_back": self.rolled_back,
            "snapshot_id": self.snapshot_id,
            "duration_ms": self.duration_ms,
            "degraded": self.degraded,
            "degradation_level": self.degradation_level,
            "correction_success_rate": self.correction_success_rate,
        }


@dataclass
class Session:
    """One optimize() call. Terminal once ``ended`` is set."""
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    initial_score: float = 0.0
    final_score: Optional[float] = None
    total_passes: int = 0
    termination_reason: Optional[TerminationReason] = None
    started_at: float = 0.0
    duration_ms: Optional[float] = None
    ended: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "initial_score": self.initial_score,
            "final_score": self.final_score,
            "total_passes": self.total_passes,
            "termination_reason": (
                self.termination_reason.value if self.termination_reason else None
            ),
            "duration_ms": self.duration_ms,
        }


@dataclass
class OptimizationResult:
    """Final output of a multi-pass optimization session."""
    document: Document
    termination_reason: TerminationReason
    pass_records: list[PassRecord] = field(default_factory=list)
    summary: dict[str, Any] = field(default_factory=dict)
    report: dict[str, Any] = field(default_factory=dict)
    final_validation: Optional[ValidationResult] = None
    error: Optional[str] = None

    @property
    def compliance_achieved(self) -> bool:
        return bool(self.summary.get("complianceAchieved"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "document": self.document.to_dict(),
            "termination_reason": self.termination_reason.value,
            "pass_records": [p.to_dict() for p in self.pass_records],
            "optimization_summary": self.summary,
            "report": self.report,
            "final_validation": (
                self.final_validation.to_dict() if self.final_validation else None
            ),
            "error": self.error,
        }
