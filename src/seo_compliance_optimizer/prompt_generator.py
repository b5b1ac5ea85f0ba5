"""
Correction prompt synthesis.

Turns each Issue into a self-contained rewrite instruction with a computed
quantitative target. The conversion from a metric delta to a discrete number
of edits (the unit-size heuristic) is:

- Length issues (meta description, title): one unit is one word, sized as the
  field's mean word length plus one space; ``count = ceil(difference / unit)``.
- Density issues: the number of keyword occurrences to add or replace so the
  density lands on the middle of the band, nudged until it is strictly inside
  it. Added occurrences also add words; replaced ones do not.
- Sentence issues: the number of sentences to rewrite so the ratio is within
  its limit, computed against the real sentence count.
- Heading and image issues: the number of headings or images to touch.
- Presence issues: ``count = 1``, ``action = increase``.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from .config import OptimizerConfig
from .models import (
    CorrectionPrompt,
    Document,
    ExpectedChanges,
    FieldLocation,
    HeadingIssue,
    HeadingLocation,
    ImageIssue,
    ImageLocation,
    Issue,
    IssueType,
    KeywordDensityIssue,
    MetaDescriptionIssue,
    QuantitativeTarget,
    ReadabilityIssue,
    SentenceLocation,
    Severity,
    TextLocation,
    TitleIssue,
)

logger = logging.getLogger(__name__)


DEFAULT_WORD_CHARS = 6.0
MAX_LOCATIONS_IN_PROMPT = 5

SEVERITY_BOOST: dict[Severity, int] = {
    Severity.CRITICAL: 2,
    Severity.MAJOR: 1,
    Severity.MINOR: 0,
}


@dataclass(frozen=True)
class PromptTemplate:
    """Instruction text and base priority for one issue type."""
    template: str
    priority: int
    quantitative: bool = True


PROMPT_TEMPLATES: dict[IssueType, PromptTemplate] = {
    IssueType.KEYWORD_DENSITY_HIGH: PromptTemplate(
        "Reduce the density of keyword '{keyword}' from {current}% to about {target}% "
        "(allowed range {min}%-{max}%) by replacing {count} occurrences with synonyms or "
        "related terms. Occurrences to revisit: {locations}",
        priority=9,
    ),
    IssueType.KEYWORD_DENSITY_LOW: PromptTemplate(
        "Increase the density of keyword '{keyword}' from {current}% to about {target}% "
        "(allowed range {min}%-{max}%) by naturally adding {count} more occurrences of the "
        "exact phrase. Current usage: {locations}",
        priority=8,
    ),
    IssueType.META_DESCRIPTION_SHORT: PromptTemplate(
        "Expand the meta description from {current} to between {min} and {max} characters "
        "(add at least {diff} characters, roughly {count} words). It must contain the "
        "keyword '{keyword}' and end with a compelling call to action. Current: '{text}'",
        priority=10,
    ),
    IssueType.META_DESCRIPTION_LONG: PromptTemplate(
        "Shorten the meta description from {current} to between {min} and {max} characters "
        "(remove at least {diff} characters, roughly {count} words). Keep the keyword "
        "'{keyword}' and the main message. Overflow text: '{locations}'. Current: '{text}'",
        priority=7,
    ),
    IssueType.META_DESCRIPTION_NO_KEYWORD: PromptTemplate(
        "Add the focus keyword '{keyword}' to the meta description naturally, keeping it "
        "between {min} and {max} characters. Current: '{text}'",
        priority=6,
        quantitative=False,
    ),
    IssueType.PASSIVE_VOICE_HIGH: PromptTemplate(
        "Convert {count} passive voice sentences to active voice to reduce passive voice "
        "from {current}% to at most {target}%. Target sentences: {locations}",
        priority=5,
    ),
    IssueType.SENTENCE_LENGTH_HIGH: PromptTemplate(
        "Split {count} long sentences (over 20 words) to reduce long sentences from "
        "{current}% to at most {target}%. Target sentences: {locations}",
        priority=3,
    ),
    IssueType.TRANSITION_WORDS_LOW: PromptTemplate(
        "Add transition words to {count} sentences to raise transition usage from "
        "{current}% to at least {target}%. Use words such as 'however', 'therefore', "
        "'additionally', 'for example'. Candidate sentences: {locations}",
        priority=2,
    ),
    IssueType.TITLE_TOO_LONG: PromptTemplate(
        "Shorten the title from {current} to at most {target} characters (remove at least "
        "{diff} characters, roughly {count} words). Keep the keyword '{keyword}'. "
        "Overflow text: '{locations}'. Current: '{text}'",
        priority=7,
    ),
    IssueType.TITLE_NO_KEYWORD: PromptTemplate(
        "Add the focus keyword '{keyword}' to the title naturally. Keep it under {max} "
        "characters. Current: '{text}'",
        priority=9,
        quantitative=False,
    ),
    IssueType.SUBHEADING_KEYWORD_OVERUSE: PromptTemplate(
        "Reduce use of keyword '{keyword}' in subheadings from {current}% to at most "
        "{target}% by rewording {count} headings without the keyword: {locations}",
        priority=4,
    ),
    IssueType.NO_IMAGES: PromptTemplate(
        "Add at least one relevant <img> element with descriptive alt text containing "
        "the keyword '{keyword}'. Do not remove or reorder any existing element.",
        priority=6,
        quantitative=False,
    ),
    IssueType.ALT_TEXT_NO_KEYWORD: PromptTemplate(
        "Update the alt text of {count} images so each is a descriptive phrase over 10 "
        "characters containing the keyword '{keyword}'. Images: {locations}",
        priority=3,
    ),
}

# Document field each issue type lives in, for manual overrides.
ISSUE_FIELDS: dict[IssueType, str] = {
    IssueType.META_DESCRIPTION_SHORT: "meta_description",
    IssueType.META_DESCRIPTION_LONG: "meta_description",
    IssueType.META_DESCRIPTION_NO_KEYWORD: "meta_description",
    IssueType.TITLE_TOO_LONG: "title",
    IssueType.TITLE_NO_KEYWORD: "title",
}


def field_for(issue_type: IssueType) -> str:
    return ISSUE_FIELDS.get(issue_type, "content")


# =============================================================================
# Manual overrides and effectiveness tracking
# =============================================================================

class ManualOverrideRegistry:
    """
    Registry of ``(field, reason) -> {skip_validation}`` overrides.

    ``field`` is either an issue type value (``"title_no_keyword"``) or a
    document field (``"title"``, ``"meta_description"``, ``"content"``).
    """

    def __init__(self):
        self._overrides: dict[tuple[str, str], dict[str, bool]] = {}

    def register(self, field_name: str, reason: str, skip_validation: bool = True) -> None:
        self._overrides[(field_name, reason)] = {"skip_validation": skip_validation}
        logger.info(f"Manual override registered for {field_name}: {reason}")

    def remove(self, field_name: str, reason: str) -> bool:
        return self._overrides.pop((field_name, reason), None) is not None

    def should_skip(self, issue_type: IssueType) -> bool:
        """Check whether corrections for this issue type are suppressed."""
        keys = {issue_type.value, field_for(issue_type)}
        return any(
            entry["skip_validation"]
            for (field_name, _), entry in self._overrides.items()
            if field_name in keys
        )

    def items(self) -> list[tuple[tuple[str, str], dict[str, bool]]]:
        return list(self._overrides.items())

    def __len__(self) -> int:
        return len(self._overrides)


class EffectivenessTracker:
    """Per issue type attempt and success counts for generated prompts."""

    def __init__(self):
        self._stats: dict[IssueType, dict[str, int]] = {}

    def record(self, issue_type: IssueType, success: bool) -> None:
        stats = self._stats.setdefault(issue_type, {"attempts": 0, "successes": 0})
        stats["attempts"] += 1
        if success:
            stats["successes"] += 1

    def success_rate(self, issue_type: IssueType) -> Optional[float]:
        stats = self._stats.get(issue_type)
        if not stats or not stats["attempts"]:
            return None
        return round(stats["successes"] / stats["attempts"] * 100, 2)

    def report(self) -> dict[str, dict[str, float]]:
        return {
            issue_type.value: {
                "attempts": stats["attempts"],
                "successes": stats["successes"],
                "success_rate": self.success_rate(issue_type),
            }
            for issue_type, stats in self._stats.items()
        }


# =============================================================================
# Unit-size heuristics
# =============================================================================

def average_word_chars(text: str) -> float:
    """Mean word length plus one separating space."""
    words = text.split()
    if not words:
        return DEFAULT_WORD_CHARS
    return sum(len(w) for w in words) / len(words) + 1


def _density(occurrences: int, words: int) -> float:
    return occurrences / words * 100 if words else 0.0


def occurrences_to_band(
    occurrences: int,
    word_count: int,
    keyword_words: int,
    min_density: float,
    max_density: float,
    increase: bool,
) -> int:
    """
    Number of keyword occurrences to add or replace to land inside the band.

    Aims for the band midpoint, then steps toward the strict interior. Both
    adjustment loops are bounded by the document word count.

    Returns:
        At least 1.
    """
    midpoint = (min_density + max_density) / 2
    limit = max(word_count, 1) + 1

    if increase:
        share = 1 - midpoint * keyword_words / 100
        raw = (midpoint * word_count / 100 - occurrences) / share if share > 0 else 1
        count = max(1, math.ceil(raw))

        def after(n: int) -> float:
            return _density(occurrences + n, word_count + n * keyword_words)

        steps = 0
        while after(count) <= min_density and steps < limit:
            count += 1
            steps += 1
        while count > 1 and after(count) >= max_density and after(count - 1) > min_density:
            count -= 1
        return count

    count = max(1, math.ceil(occurrences - midpoint * word_count / 100))
    count = min(count, occurrences) if occurrences else 1

    def remaining(n: int) -> float:
        return _density(occurrences - n, word_count)

    steps = 0
    while remaining(count) >= max_density and count < occurrences and steps < limit:
        count += 1
        steps += 1
    while count > 1 and remaining(count) <= min_density and remaining(count - 1) < max_density:
        count -= 1
    return count


# =============================================================================
# Generator
# =============================================================================

class PromptGenerator:
    """
    Converts issues into priority-ordered correction prompts.

    One issue yields at most one prompt; issues suppressed by a manual
    override yield none.
    """

    def __init__(
        self,
        config: Optional[OptimizerConfig] = None,
        overrides: Optional[ManualOverrideRegistry] = None,
        tracker: Optional[EffectivenessTracker] = None,
    ):
        self.config = config or OptimizerConfig()
        self.overrides = overrides if overrides is not None else ManualOverrideRegistry()
        self.tracker = tracker if tracker is not None else EffectivenessTracker()

    def generate(self, issues: list[Issue], document: Document) -> list[CorrectionPrompt]:
        """
        Build prompts for a list of issues.

        Args:
            issues: Issues in detection order.
            document: Document the issues were detected in.

        Returns:
            Prompts sorted by priority (highest first), ties broken by
            detection order.
        """
        prompts = []
        for issue in issues:
            prompt = self.generate_for_issue(issue, document)
            if prompt is not None:
                prompts.append(prompt)
        prompts.sort(key=lambda p: (-p.priority, p.detection_order))
        logger.debug(f"Generated {len(prompts)} prompts for {len(issues)} issues")
        return prompts

    def generate_for_issue(self, issue: Issue, document: Document) -> Optional[CorrectionPrompt]:
        if self.overrides.should_skip(issue.type):
            logger.info(f"Skipping {issue.type.value}: manual override")
            return None

        template = PROMPT_TEMPLATES[issue.type]
        target = self.compute_target(issue, document)
        cfg = self.config

        if issue.type in (IssueType.KEYWORD_DENSITY_LOW, IssueType.KEYWORD_DENSITY_HIGH):
            band = (cfg.min_keyword_density, cfg.max_keyword_density)
        elif isinstance(issue, MetaDescriptionIssue):
            band = (issue.min_length, issue.max_length)
        else:
            band = (issue.target_value, cfg.max_title_length)

        prompt_text = template.template.format(
            keyword=document.focus_keyword,
            current=_fmt(issue.current_value),
            target=_fmt(target.target),
            count=target.count,
            diff=_fmt(target.difference),
            min=_fmt(band[0]),
            max=_fmt(band[1]),
            text=getattr(issue, "text", ""),
            locations=describe_locations(issue.locations),
        )

        priority = min(10, template.priority + SEVERITY_BOOST[issue.severity])
        return CorrectionPrompt(
            issue_type=issue.type,
            prompt_text=prompt_text,
            quantitative_target=target,
            expected_changes=ExpectedChanges(
                metric=issue.type.value,
                current_value=issue.current_value,
                target_value=target.target,
                expected_improvement=target.difference,
                action=target.action,
                change_count=target.count,
            ),
            priority=priority,
            target_locations=issue.locations,
            detection_order=issue.detection_order,
            max_attempts=cfg.max_retry_attempts,
        )

    def compute_target(self, issue: Issue, document: Document) -> QuantitativeTarget:
        """Apply the unit-size heuristic for an issue."""
        current = float(issue.current_value)
        target = float(issue.target_value)

        if isinstance(issue, KeywordDensityIssue):
            increase = issue.type is IssueType.KEYWORD_DENSITY_LOW
            aim = round((issue.min_density + issue.max_density) / 2, 2)
            count = occurrences_to_band(
                issue.occurrences,
                issue.word_count,
                max(1, len(issue.keyword.split())),
                issue.min_density,
                issue.max_density,
                increase,
            )
            return QuantitativeTarget(
                current=current,
                target=aim,
                difference=round(abs(current - aim), 2),
                count=count,
                action="increase" if increase else "reduce",
                unit="occurrences",
            )

        if isinstance(issue, (MetaDescriptionIssue, TitleIssue)) and issue.type not in (
            IssueType.META_DESCRIPTION_NO_KEYWORD,
            IssueType.TITLE_NO_KEYWORD,
        ):
            difference = abs(current - target)
            count = max(1, math.ceil(difference / average_word_chars(issue.text)))
            return QuantitativeTarget(
                current=current,
                target=target,
                difference=difference,
                count=count,
                action="reduce" if current > target else "increase",
                unit="words",
            )

        if isinstance(issue, ReadabilityIssue):
            total = issue.total_sentences
            if issue.type is IssueType.TRANSITION_WORDS_LOW:
                with_transitions = total - issue.flagged_sentences
                count = math.ceil(target * total / 100) - with_transitions
                action = "increase"
            else:
                allowed = math.floor(target * total / 100)
                count = issue.flagged_sentences - allowed
                action = "reduce"
            return QuantitativeTarget(
                current=current,
                target=target,
                difference=round(abs(current - target), 2),
                count=max(1, count),
                action=action,
                unit="sentences",
            )

        if isinstance(issue, HeadingIssue):
            allowed = math.floor(target * issue.total_headings / 100)
            return QuantitativeTarget(
                current=current,
                target=target,
                difference=round(abs(current - target), 2),
                count=max(1, issue.keyword_headings - allowed),
                action="reduce",
                unit="headings",
            )

        if isinstance(issue, ImageIssue) and issue.type is IssueType.ALT_TEXT_NO_KEYWORD:
            return QuantitativeTarget(
                current=current,
                target=target,
                difference=abs(current - target),
                count=max(1, issue.image_count - issue.proper_alt_count),
                action="increase",
                unit="images",
            )

        # Presence issues: missing keyword or missing image.
        return QuantitativeTarget(
            current=current,
            target=target,
            difference=abs(current - target),
            count=1,
            action="increase",
            unit="images" if issue.type is IssueType.NO_IMAGES else "occurrences",
        )


def describe_locations(locations: tuple, limit: int = MAX_LOCATIONS_IN_PROMPT) -> str:
    """Render issue locations as quoted evidence for prompt text."""
    parts = []
    for location in locations[:limit]:
        if isinstance(location, SentenceLocation):
            parts.append(f'"{location.sentence}"')
        elif isinstance(location, HeadingLocation):
            parts.append(f'H{location.level}: "{location.text}"')
        elif isinstance(location, ImageLocation):
            parts.append(f'{location.src or "image"} (alt: "{location.alt}", {location.problem})')
        elif isinstance(location, FieldLocation):
            parts.append(location.text)
        elif isinstance(location, TextLocation):
            parts.append(location.note or f'"...{location.context}..."')
    if len(locations) > limit:
        parts.append(f"and {len(locations) - limit} more")
    return "; ".join(parts) if parts else "none"


def _fmt(value: float) -> str:
    """Render whole numbers without a trailing .0."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"
