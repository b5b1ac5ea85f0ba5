"""
Issue detection and compliance scoring.

Runs every metric analyzer once over a Document and normalizes the
measurements into typed, severity-ranked Issues. The compliance score is the
share of weighted checks that pass:

    score = 100 * (1 - sum(issue penalties) / sum(max penalty of each applicable check))

where an issue's penalty is ``severity weight (3/2/1) * rule weight``. Checks
that do not apply to the content (sentence checks on a body without
sentences, alt text checks on a body without images...) drop out of the
denominator, so short documents are not rewarded or punished for checks they
cannot fail.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from . import analyzers
from .config import OptimizerConfig
from .errors import DetectorError
from .models import (
    Document,
    FieldLocation,
    HeadingIssue,
    ImageIssue,
    Issue,
    IssueType,
    KeywordDensityIssue,
    MetaDescriptionIssue,
    ReadabilityIssue,
    Severity,
    TitleIssue,
    ValidationResult,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssueRule:
    """Static properties of an issue type."""
    severity: Severity
    priority: int
    weight: float
    escalates: bool = False  # severity rises one step when deviation >= 100%

    @property
    def max_penalty(self) -> float:
        severity = self.severity.escalate() if self.escalates else self.severity
        return severity.weight * self.weight


ISSUE_RULES: dict[IssueType, IssueRule] = {
    IssueType.KEYWORD_DENSITY_LOW: IssueRule(Severity.MAJOR, 8, 2.0, escalates=True),
    IssueType.KEYWORD_DENSITY_HIGH: IssueRule(Severity.CRITICAL, 9, 3.0),
    IssueType.META_DESCRIPTION_SHORT: IssueRule(Severity.CRITICAL, 10, 3.0),
    IssueType.META_DESCRIPTION_LONG: IssueRule(Severity.MAJOR, 7, 2.0, escalates=True),
    IssueType.META_DESCRIPTION_NO_KEYWORD: IssueRule(Severity.MAJOR, 6, 2.0),
    IssueType.PASSIVE_VOICE_HIGH: IssueRule(Severity.MAJOR, 5, 2.0, escalates=True),
    IssueType.SENTENCE_LENGTH_HIGH: IssueRule(Severity.MINOR, 3, 1.0, escalates=True),
    IssueType.TRANSITION_WORDS_LOW: IssueRule(Severity.MINOR, 2, 1.0, escalates=True),
    IssueType.TITLE_TOO_LONG: IssueRule(Severity.MAJOR, 7, 2.0, escalates=True),
    IssueType.TITLE_NO_KEYWORD: IssueRule(Severity.CRITICAL, 9, 3.0),
    IssueType.SUBHEADING_KEYWORD_OVERUSE: IssueRule(Severity.MINOR, 4, 1.0, escalates=True),
    IssueType.NO_IMAGES: IssueRule(Severity.MAJOR, 6, 2.0),
    IssueType.ALT_TEXT_NO_KEYWORD: IssueRule(Severity.MINOR, 3, 1.0),
}

# Issue types whose corrections need positional targeting.
LOCATION_REQUIRED: frozenset[IssueType] = frozenset({
    IssueType.KEYWORD_DENSITY_LOW,
    IssueType.KEYWORD_DENSITY_HIGH,
    IssueType.PASSIVE_VOICE_HIGH,
    IssueType.SENTENCE_LENGTH_HIGH,
    IssueType.META_DESCRIPTION_SHORT,
    IssueType.META_DESCRIPTION_LONG,
    IssueType.TITLE_TOO_LONG,
    IssueType.SUBHEADING_KEYWORD_OVERUSE,
    IssueType.ALT_TEXT_NO_KEYWORD,
})


def severity_for(issue_type: IssueType, current: float, bound: float) -> Severity:
    """Base severity, escalated when the value is off by 100% of its bound or more."""
    rule = ISSUE_RULES[issue_type]
    if rule.escalates and bound > 0 and abs(current - bound) / bound >= 1.0:
        return rule.severity.escalate()
    if rule.escalates and bound == 0 and current > 0:
        return rule.severity.escalate()
    return rule.severity


def calculate_compliance_score(issues: list[Issue], applicable_checks: list[list[IssueType]]) -> float:
    """
    Compute the 0-100 compliance score.

    Args:
        issues: Detected issues.
        applicable_checks: One entry per check that ran; each entry lists the
            issue types that check can emit.

    Returns:
        Score rounded to two places and clamped to [0, 100].
    """
    max_penalty = sum(
        max(ISSUE_RULES[t].max_penalty for t in check) for check in applicable_checks
    )
    penalty = sum(issue.penalty for issue in issues)
    if max_penalty <= 0:
        return 100.0 if not issues else 0.0
    score = 100.0 * (1.0 - penalty / max_penalty)
    return round(max(0.0, min(100.0, score)), 2)


class IssueDetector:
    """
    Runs all analyzers over a document and reports typed issues.

    Detection is deterministic for identical input and configuration.
    ``analyzer_calls`` counts analyzer invocations so callers (and tests) can
    observe whether a cached result skipped the work.
    """

    def __init__(self, config: Optional[OptimizerConfig] = None):
        self.config = config or OptimizerConfig()
        self.analyzer_calls = 0

    def detect(
        self,
        document: Document,
        previous: Optional[ValidationResult] = None,
        existing_titles: Optional[list[str]] = None,
    ) -> ValidationResult:
        """
        Detect issues in a document.

        Args:
            document: Document to validate.
            previous: Optional result from the prior pass. Issue types that
                were absent before are reported as warnings.
            existing_titles: Optional titles already published by the host.
                Near-duplicates of the document title are reported as
                warnings.

        Returns:
            ValidationResult with issues in detection order.

        Raises:
            DetectorError: If any analyzer fails or a positional issue lacks
                locations.
        """
        cfg = self.config
        keyword = document.focus_keyword
        issues: list[Issue] = []
        checks: list[list[IssueType]] = []

        def add(issue_cls: type, issue_type: IssueType, severity: Severity, **kwargs: Any) -> None:
            rule = ISSUE_RULES[issue_type]
            issues.append(issue_cls(
                type=issue_type,
                severity=severity,
                priority=rule.priority,
                weight=rule.weight,
                detection_order=len(issues),
                **kwargs,
            ))

        density = self._run("keyword_density", analyzers.calculate_keyword_density, document)
        meta = self._run("meta_description", analyzers.analyze_meta_description, document)
        title = self._run("title", analyzers.analyze_title, document)
        passive = self._run("passive_voice", analyzers.analyze_passive_voice, document.body)
        sentences = self._run("sentence_length", analyzers.analyze_sentence_length, document.body)
        transitions = self._run("transition_words", analyzers.analyze_transition_words, document.body)
        headings = self._run("subheadings", analyzers.analyze_subheadings, document)
        images = self._run("images", analyzers.analyze_images, document)

        # Keyword density
        checks.append([IssueType.KEYWORD_DENSITY_LOW, IssueType.KEYWORD_DENSITY_HIGH])
        density_fields = dict(
            keyword=keyword,
            occurrences=density.occurrences,
            word_count=density.word_count,
            min_density=cfg.min_keyword_density,
            max_density=cfg.max_keyword_density,
            locations=tuple(density.locations),
        )
        if density.density < cfg.min_keyword_density:
            add(
                KeywordDensityIssue, IssueType.KEYWORD_DENSITY_LOW,
                severity_for(IssueType.KEYWORD_DENSITY_LOW, density.density, cfg.min_keyword_density),
                current_value=density.density,
                target_value=cfg.min_keyword_density,
                message=(
                    f"Keyword density {density.density}% is below the minimum "
                    f"of {cfg.min_keyword_density}%"
                ),
                **density_fields,
            )
        elif density.density > cfg.max_keyword_density:
            add(
                KeywordDensityIssue, IssueType.KEYWORD_DENSITY_HIGH,
                ISSUE_RULES[IssueType.KEYWORD_DENSITY_HIGH].severity,
                current_value=density.density,
                target_value=cfg.max_keyword_density,
                message=(
                    f"Keyword density {density.density}% exceeds the maximum "
                    f"of {cfg.max_keyword_density}%"
                ),
                **density_fields,
            )

        # Meta description
        checks.append([IssueType.META_DESCRIPTION_SHORT, IssueType.META_DESCRIPTION_LONG])
        meta_fields = dict(
            text=meta.text,
            keyword=keyword,
            min_length=cfg.min_meta_desc_length,
            max_length=cfg.max_meta_desc_length,
        )
        if meta.length < cfg.min_meta_desc_length:
            add(
                MetaDescriptionIssue, IssueType.META_DESCRIPTION_SHORT,
                ISSUE_RULES[IssueType.META_DESCRIPTION_SHORT].severity,
                current_value=meta.length,
                target_value=cfg.min_meta_desc_length,
                message=(
                    f"Meta description is {meta.length} characters, minimum is "
                    f"{cfg.min_meta_desc_length}"
                ),
                locations=(FieldLocation("meta_description", meta.text, 0, meta.length),),
                **meta_fields,
            )
        elif meta.length > cfg.max_meta_desc_length:
            add(
                MetaDescriptionIssue, IssueType.META_DESCRIPTION_LONG,
                severity_for(IssueType.META_DESCRIPTION_LONG, meta.length, cfg.max_meta_desc_length),
                current_value=meta.length,
                target_value=cfg.max_meta_desc_length,
                message=(
                    f"Meta description is {meta.length} characters, maximum is "
                    f"{cfg.max_meta_desc_length}"
                ),
                locations=(FieldLocation(
                    "meta_description",
                    meta.text[cfg.max_meta_desc_length:],
                    cfg.max_meta_desc_length,
                    meta.length,
                ),),
                **meta_fields,
            )
        if keyword:
            checks.append([IssueType.META_DESCRIPTION_NO_KEYWORD])
            if not meta.has_keyword:
                add(
                    MetaDescriptionIssue, IssueType.META_DESCRIPTION_NO_KEYWORD,
                    ISSUE_RULES[IssueType.META_DESCRIPTION_NO_KEYWORD].severity,
                    current_value=0,
                    target_value=1,
                    message=f"Meta description does not contain the focus keyword '{keyword}'",
                    locations=(FieldLocation("meta_description", meta.text, 0, meta.length),),
                    **meta_fields,
                )

        # Readability
        if passive.total_sentences:
            checks.append([IssueType.PASSIVE_VOICE_HIGH])
            if passive.percentage > cfg.max_passive_voice:
                add(
                    ReadabilityIssue, IssueType.PASSIVE_VOICE_HIGH,
                    severity_for(IssueType.PASSIVE_VOICE_HIGH, passive.percentage, cfg.max_passive_voice),
                    current_value=passive.percentage,
                    target_value=cfg.max_passive_voice,
                    message=(
                        f"Passive voice in {passive.percentage}% of sentences, maximum "
                        f"is {cfg.max_passive_voice}%"
                    ),
                    locations=tuple(passive.locations),
                    total_sentences=passive.total_sentences,
                    flagged_sentences=passive.passive_count,
                )
        if sentences.total_sentences:
            checks.append([IssueType.SENTENCE_LENGTH_HIGH])
            if sentences.long_percentage > cfg.max_long_sentences:
                add(
                    ReadabilityIssue, IssueType.SENTENCE_LENGTH_HIGH,
                    severity_for(
                        IssueType.SENTENCE_LENGTH_HIGH, sentences.long_percentage, cfg.max_long_sentences
                    ),
                    current_value=sentences.long_percentage,
                    target_value=cfg.max_long_sentences,
                    message=(
                        f"{sentences.long_percentage}% of sentences exceed "
                        f"{analyzers.LONG_SENTENCE_WORDS} words, maximum is {cfg.max_long_sentences}%"
                    ),
                    locations=tuple(sentences.locations),
                    total_sentences=sentences.total_sentences,
                    flagged_sentences=sentences.long_count,
                )
        if transitions.total_sentences:
            checks.append([IssueType.TRANSITION_WORDS_LOW])
            if transitions.percentage < cfg.min_transition_words:
                add(
                    ReadabilityIssue, IssueType.TRANSITION_WORDS_LOW,
                    severity_for(
                        IssueType.TRANSITION_WORDS_LOW, transitions.percentage, cfg.min_transition_words
                    ),
                    current_value=transitions.percentage,
                    target_value=cfg.min_transition_words,
                    message=(
                        f"Transition words in {transitions.percentage}% of sentences, "
                        f"minimum is {cfg.min_transition_words}%"
                    ),
                    locations=tuple(transitions.locations),
                    total_sentences=transitions.total_sentences,
                    flagged_sentences=transitions.total_sentences - transitions.with_transitions,
                )

        # Title
        checks.append([IssueType.TITLE_TOO_LONG])
        title_fields = dict(text=title.text, keyword=keyword, max_length=cfg.max_title_length)
        if title.length > cfg.max_title_length:
            add(
                TitleIssue, IssueType.TITLE_TOO_LONG,
                severity_for(IssueType.TITLE_TOO_LONG, title.length, cfg.max_title_length),
                current_value=title.length,
                target_value=cfg.max_title_length,
                message=f"Title is {title.length} characters, maximum is {cfg.max_title_length}",
                locations=(FieldLocation(
                    "title", title.text[cfg.max_title_length:], cfg.max_title_length, title.length
                ),),
                **title_fields,
            )
        if keyword:
            checks.append([IssueType.TITLE_NO_KEYWORD])
            if not title.has_keyword:
                add(
                    TitleIssue, IssueType.TITLE_NO_KEYWORD,
                    ISSUE_RULES[IssueType.TITLE_NO_KEYWORD].severity,
                    current_value=0,
                    target_value=1,
                    message=f"Title does not contain the focus keyword '{keyword}'",
                    locations=(FieldLocation("title", title.text, 0, title.length),),
                    **title_fields,
                )

        # Subheadings
        if headings.total_headings and keyword:
            checks.append([IssueType.SUBHEADING_KEYWORD_OVERUSE])
            if headings.usage_percentage > cfg.max_subheading_keyword_usage:
                add(
                    HeadingIssue, IssueType.SUBHEADING_KEYWORD_OVERUSE,
                    severity_for(
                        IssueType.SUBHEADING_KEYWORD_OVERUSE,
                        headings.usage_percentage,
                        cfg.max_subheading_keyword_usage,
                    ),
                    current_value=headings.usage_percentage,
                    target_value=cfg.max_subheading_keyword_usage,
                    message=(
                        f"Focus keyword appears in {headings.usage_percentage}% of subheadings, "
                        f"maximum is {cfg.max_subheading_keyword_usage}%"
                    ),
                    locations=tuple(headings.locations),
                    keyword=keyword,
                    total_headings=headings.total_headings,
                    keyword_headings=headings.keyword_headings,
                )

        # Images
        image_fields = dict(
            keyword=keyword,
            image_count=images.image_count,
            proper_alt_count=images.proper_alt_count,
        )
        if cfg.require_images:
            checks.append([IssueType.NO_IMAGES])
            if images.image_count == 0:
                add(
                    ImageIssue, IssueType.NO_IMAGES,
                    ISSUE_RULES[IssueType.NO_IMAGES].severity,
                    current_value=0,
                    target_value=1,
                    message="Content has no images",
                    **image_fields,
                )
        if cfg.require_keyword_in_alt_text and images.image_count and keyword:
            checks.append([IssueType.ALT_TEXT_NO_KEYWORD])
            if images.proper_alt_count < images.image_count:
                add(
                    ImageIssue, IssueType.ALT_TEXT_NO_KEYWORD,
                    ISSUE_RULES[IssueType.ALT_TEXT_NO_KEYWORD].severity,
                    current_value=images.proper_alt_count,
                    target_value=images.image_count,
                    message=(
                        f"{images.image_count - images.proper_alt_count} of {images.image_count} "
                        f"images lack descriptive alt text with '{keyword}'"
                    ),
                    locations=tuple(images.locations),
                    **image_fields,
                )

        for issue in issues:
            if issue.type in LOCATION_REQUIRED and not issue.locations:
                raise DetectorError(
                    issue.type.value,
                    ValueError(f"{issue.type.value} was detected without locations"),
                )

        metrics = {
            "keyword_density": density.density,
            "keyword_occurrences": density.occurrences,
            "word_count": density.word_count,
            "subheading_density": density.subheading_density,
            "meta_description_length": meta.length,
            "title_length": title.length,
            "sentence_count": sentences.total_sentences,
            "passive_voice_percentage": passive.percentage,
            "long_sentence_percentage": sentences.long_percentage,
            "average_sentence_length": sentences.average_length,
            "median_sentence_length": sentences.median_length,
            "transition_word_percentage": transitions.percentage,
            "transition_categories": dict(transitions.categories),
            "subheading_keyword_usage": headings.usage_percentage,
            "image_count": images.image_count,
            "proper_alt_count": images.proper_alt_count,
        }

        score = calculate_compliance_score(issues, checks)
        logger.debug(f"Detected {len(issues)} issues, compliance score {score}")

        result = ValidationResult(
            compliance_score=score,
            issues=tuple(issues),
            metrics=metrics,
        )
        return self.add_context_warnings(result, document, previous, existing_titles)

    def add_context_warnings(
        self,
        result: ValidationResult,
        document: Document,
        previous: Optional[ValidationResult] = None,
        existing_titles: Optional[list[str]] = None,
    ) -> ValidationResult:
        """
        Attach warnings that depend on more than the document itself.

        Issue types absent from ``previous`` and titles at or above
        ``title_similarity_threshold`` against ``existing_titles`` become
        warnings. The receiver is returned unchanged when there are none, so
        context-free results stay cacheable.
        """
        warnings = []
        if previous is not None:
            before = {i.type for i in previous.issues}
            for issue in result.issues:
                if issue.type not in before:
                    warnings.append(f"New issue since previous pass: {issue.type.value}")

        if existing_titles and (document.title or "").strip():
            matches = analyzers.find_similar_titles(
                document.title, existing_titles, self.config.title_similarity_threshold
            )
            for existing, similarity in matches:
                warnings.append(
                    f"Title may not be unique: {round(similarity * 100, 1)}% similar to '{existing}'"
                )

        if not warnings:
            return result
        return replace(result, warnings=result.warnings + tuple(warnings))

    def _run(self, name: str, analyzer: Callable, *args: Any) -> Any:
        """Invoke one analyzer, converting any failure into a DetectorError."""
        self.analyzer_calls += 1
        try:
            return analyzer(*args)
        except Exception as e:
            logger.error(f"Analyzer '{name}' failed: {e}")
            raise DetectorError(name, e) from e
