"""
Metric analyzers for the SEO compliance optimizer.

Each analyzer is an independent, side-effect free calculator that takes a
Document (or a piece of it) and returns a quantified measurement. The issue
detector turns measurements into Issues; the AI corrector re-runs a single
analyzer through ``measure_issue_metric`` to check that a correction moved
the metric it targeted.
"""

import logging
import re
import statistics
from dataclasses import dataclass, field
from typing import Callable

from bs4 import BeautifulSoup

from .models import (
    Document,
    FieldLocation,
    HeadingLocation,
    ImageLocation,
    IssueType,
    SentenceLocation,
    TextLocation,
)

logger = logging.getLogger(__name__)


LONG_SENTENCE_WORDS = 20
OPTIMAL_SENTENCE_RANGE = (8, 15)
MIN_SENTENCE_CHARS = 10
MIN_ALT_TEXT_CHARS = 10
CONTEXT_CHARS = 50

WORD_RE = re.compile(r"[A-Za-z0-9]+(?:['\-][A-Za-z0-9]+)*")
SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
WHITESPACE_RE = re.compile(r"\s+")


# =============================================================================
# Text helpers
# =============================================================================

def html_to_text(html: str) -> str:
    """Strip tags and collapse whitespace."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    return WHITESPACE_RE.sub(" ", soup.get_text(" ")).strip()


def count_words(text: str) -> int:
    """Count words in plain text."""
    return len(WORD_RE.findall(text or ""))


def split_sentences(text: str) -> list[str]:
    """
    Split plain text into sentences.

    Fragments of MIN_SENTENCE_CHARS characters or fewer (list bullets,
    abbreviations, stray punctuation) are dropped.
    """
    sentences = []
    for fragment in SENTENCE_SPLIT_RE.split(text or ""):
        fragment = fragment.strip()
        if len(fragment) > MIN_SENTENCE_CHARS:
            sentences.append(fragment)
    return sentences


def keyword_pattern(keyword: str) -> re.Pattern:
    """Case-insensitive, word-bounded pattern for a keyword phrase."""
    return re.compile(r"\b" + re.escape(keyword.strip()) + r"\b", re.IGNORECASE)


def contains_keyword(text: str, keyword: str) -> bool:
    """Check whether text contains the keyword phrase."""
    if not text or not keyword or not keyword.strip():
        return False
    return bool(keyword_pattern(keyword).search(text))


# =============================================================================
# Keyword density
# =============================================================================

@dataclass
class DensityMeasurement:
    """Keyword density over title and body text."""
    density: float
    occurrences: int
    word_count: int
    keyword_words: int
    subheading_density: float = 0.0
    locations: list = field(default_factory=list)


def calculate_keyword_density(document: Document) -> DensityMeasurement:
    """
    Calculate combined density of the focus and secondary keywords.

    Density is occurrences / total words * 100, rounded to two places, where
    both counts are taken over the title plus the tag-stripped body.

    Args:
        document: Document to analyze.

    Returns:
        DensityMeasurement with per-occurrence locations. When the focus
        keyword never appears a single placeholder location is recorded.
    """
    body_text = html_to_text(document.body)
    word_count = count_words(document.title) + count_words(body_text)
    keywords = [k for k in document.keywords if k.strip()]

    occurrences = 0
    locations: list = []
    for keyword in keywords:
        pattern = keyword_pattern(keyword)
        for match in pattern.finditer(document.title or ""):
            occurrences += 1
            locations.append(FieldLocation(
                field_name="title",
                text=match.group(0),
                start=match.start(),
                end=match.end(),
            ))
        for match in pattern.finditer(body_text):
            occurrences += 1
            locations.append(TextLocation(
                position=match.start(),
                length=match.end() - match.start(),
                context=_context(body_text, match.start(), match.end()),
            ))

    if not locations:
        locations.append(TextLocation(
            position=0,
            length=0,
            context=body_text[:CONTEXT_CHARS * 2],
            note="Keyword not found in content",
        ))

    density = round(occurrences / word_count * 100, 2) if word_count else 0.0
    keyword_words = count_words(document.focus_keyword) or 1

    headings = extract_headings(document.body, levels=(1, 2, 3, 4, 5, 6))
    heading_words = sum(count_words(text) for _, text in headings)
    heading_hits = sum(
        len(keyword_pattern(k).findall(text)) for _, text in headings for k in keywords
    )
    subheading_density = round(heading_hits / heading_words * 100, 2) if heading_words else 0.0

    return DensityMeasurement(
        density=density,
        occurrences=occurrences,
        word_count=word_count,
        keyword_words=keyword_words,
        subheading_density=subheading_density,
        locations=locations,
    )


def _context(text: str, start: int, end: int) -> str:
    left = max(0, start - CONTEXT_CHARS)
    right = min(len(text), end + CONTEXT_CHARS)
    return text[left:right]


# =============================================================================
# Passive voice
# =============================================================================

IRREGULAR_PARTICIPLES = (
    "given", "taken", "written", "spoken", "broken", "chosen", "driven",
    "eaten", "fallen", "forgotten", "hidden", "known", "seen", "shown",
    "thrown", "worn", "made", "built", "sent", "held", "found", "told",
)

# Words ending in -ed/-en that are not participles.
NON_PARTICIPLES = {
    "often", "even", "open", "then", "when", "ten", "seven", "eleven",
    "need", "indeed", "speed", "seed", "feed", "red", "bed", "hundred",
    "garden", "children", "women", "men", "token", "kitchen", "heaven",
}

PASSIVE_PATTERNS: tuple[tuple[str, re.Pattern], ...] = (
    ("be_participle", re.compile(r"\b(?:am|is|are|was|were|being|been)\s+(\w+(?:ed|en))\b", re.I)),
    ("perfect_participle", re.compile(r"\b(?:have|has|had)\s+been\s+(\w+(?:ed|en))\b", re.I)),
    ("modal_participle", re.compile(r"\b(?:will|would|could|should|might|must|can|may)\s+be\s+(\w+(?:ed|en))\b", re.I)),
    ("irregular_participle", re.compile(
        r"\b(?:am|is|are|was|were|be|being|been)\s+(" + "|".join(IRREGULAR_PARTICIPLES) + r")\b", re.I
    )),
)


@dataclass
class PassiveVoiceMeasurement:
    """Share of sentences written in the passive voice."""
    percentage: float
    passive_count: int
    total_sentences: int
    locations: list = field(default_factory=list)


def detect_passive_patterns(sentence: str) -> list[str]:
    """Return the names of passive constructions found in a sentence."""
    found = []
    for name, pattern in PASSIVE_PATTERNS:
        for match in pattern.finditer(sentence):
            if match.group(1).lower() not in NON_PARTICIPLES:
                found.append(name)
                break
    return found


def analyze_passive_voice(html: str) -> PassiveVoiceMeasurement:
    """
    Measure the passive-voice ratio of an HTML body.

    Args:
        html: HTML body.

    Returns:
        PassiveVoiceMeasurement; percentage is passive / total * 100 rounded
        to two places.
    """
    sentences = split_sentences(html_to_text(html))
    locations = []
    for index, sentence in enumerate(sentences):
        patterns = detect_passive_patterns(sentence)
        if patterns:
            locations.append(SentenceLocation(
                sentence_index=index,
                sentence=sentence,
                word_count=count_words(sentence),
                patterns=tuple(patterns),
                confidence=min(1.0, 0.6 + 0.2 * len(patterns)),
            ))

    total = len(sentences)
    percentage = round(len(locations) / total * 100, 2) if total else 0.0
    return PassiveVoiceMeasurement(
        percentage=percentage,
        passive_count=len(locations),
        total_sentences=total,
        locations=locations,
    )


# =============================================================================
# Sentence length
# =============================================================================

@dataclass
class SentenceLengthMeasurement:
    """Sentence length distribution."""
    long_percentage: float
    long_count: int
    total_sentences: int
    average_length: float
    median_length: float
    optimal_count: int
    locations: list = field(default_factory=list)


def analyze_sentence_length(html: str) -> SentenceLengthMeasurement:
    """Measure how many sentences exceed LONG_SENTENCE_WORDS words."""
    sentences = split_sentences(html_to_text(html))
    lengths = [count_words(s) for s in sentences]
    locations = [
        SentenceLocation(sentence_index=i, sentence=s, word_count=n)
        for i, (s, n) in enumerate(zip(sentences, lengths))
        if n > LONG_SENTENCE_WORDS
    ]
    low, high = OPTIMAL_SENTENCE_RANGE
    total = len(sentences)
    return SentenceLengthMeasurement(
        long_percentage=round(len(locations) / total * 100, 2) if total else 0.0,
        long_count=len(locations),
        total_sentences=total,
        average_length=round(statistics.mean(lengths), 2) if lengths else 0.0,
        median_length=float(statistics.median(lengths)) if lengths else 0.0,
        optimal_count=sum(1 for n in lengths if low <= n <= high),
        locations=locations,
    )


# =============================================================================
# Transition words
# =============================================================================

TRANSITION_WORDS: dict[str, tuple[str, ...]] = {
    "addition": (
        "additionally", "also", "furthermore", "moreover", "in addition",
        "besides", "as well as", "not only", "equally important",
    ),
    "contrast": (
        "however", "nevertheless", "nonetheless", "on the other hand",
        "in contrast", "conversely", "although", "whereas", "instead",
        "yet", "even so",
    ),
    "cause_effect": (
        "therefore", "consequently", "as a result", "thus", "hence",
        "accordingly", "because", "since", "due to", "for this reason",
    ),
    "sequence": (
        "first", "second", "third", "next", "then", "finally", "meanwhile",
        "subsequently", "afterward", "to begin with", "lastly",
    ),
    "example": (
        "for example", "for instance", "such as", "specifically",
        "to illustrate", "namely", "in particular",
    ),
    "emphasis": (
        "indeed", "in fact", "certainly", "above all", "especially",
        "notably", "of course", "clearly",
    ),
    "summary": (
        "in conclusion", "to summarize", "in summary", "overall",
        "in short", "to sum up", "ultimately", "all in all",
    ),
    "comparison": (
        "similarly", "likewise", "in the same way", "compared to",
        "just as", "in comparison",
    ),
}

# Longest phrases first so "in addition" wins over "in".
_TRANSITION_PATTERNS: list[tuple[str, str, re.Pattern]] = sorted(
    (
        (category, phrase, re.compile(r"\b" + re.escape(phrase) + r"\b", re.I))
        for category, phrases in TRANSITION_WORDS.items()
        for phrase in phrases
    ),
    key=lambda item: len(item[1]),
    reverse=True,
)


@dataclass
class TransitionMeasurement:
    """Share of sentences that contain a transition word or phrase."""
    percentage: float
    with_transitions: int
    total_sentences: int
    categories: dict[str, int] = field(default_factory=dict)
    locations: list = field(default_factory=list)


def find_transitions(sentence: str) -> list[tuple[str, str]]:
    """Return (category, phrase) pairs found in a sentence, longest first."""
    found = []
    consumed: list[tuple[int, int]] = []
    for category, phrase, pattern in _TRANSITION_PATTERNS:
        for match in pattern.finditer(sentence):
            span = match.span()
            if any(s <= span[0] < e or s < span[1] <= e for s, e in consumed):
                continue
            consumed.append(span)
            found.append((category, phrase))
    return found


def analyze_transition_words(html: str) -> TransitionMeasurement:
    """
    Measure transition word usage.

    Locations list the sentences lacking any transition, which are the
    candidates a correction should touch.
    """
    sentences = split_sentences(html_to_text(html))
    categories: dict[str, int] = {}
    with_transitions = 0
    locations = []
    for index, sentence in enumerate(sentences):
        found = find_transitions(sentence)
        if found:
            with_transitions += 1
            for category, _ in found:
                categories[category] = categories.get(category, 0) + 1
        else:
            locations.append(SentenceLocation(
                sentence_index=index,
                sentence=sentence,
                word_count=count_words(sentence),
            ))
    total = len(sentences)
    return TransitionMeasurement(
        percentage=round(with_transitions / total * 100, 2) if total else 0.0,
        with_transitions=with_transitions,
        total_sentences=total,
        categories=categories,
        locations=locations,
    )


# =============================================================================
# Meta description and title
# =============================================================================

@dataclass
class FieldMeasurement:
    """Length and keyword presence of a single-line field."""
    text: str
    length: int
    has_keyword: bool


def analyze_meta_description(document: Document) -> FieldMeasurement:
    text = (document.meta_description or "").strip()
    return FieldMeasurement(
        text=text,
        length=len(text),
        has_keyword=contains_keyword(text, document.focus_keyword),
    )


def analyze_title(document: Document) -> FieldMeasurement:
    text = (document.title or "").strip()
    return FieldMeasurement(
        text=text,
        length=len(text),
        has_keyword=contains_keyword(text, document.focus_keyword),
    )


TITLE_STOP_WORDS = {
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by",
}


def normalize_title(title: str) -> str:
    """Lowercase, drop stop words and punctuation, collapse spaces."""
    words = [w for w in (title or "").lower().split() if w.strip() and w not in TITLE_STOP_WORDS]
    normalized = re.sub(r"[^\w\s]", "", " ".join(words))
    return WHITESPACE_RE.sub(" ", normalized).strip()


def _levenshtein(a: str, b: str) -> int:
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, 1):
        current = [i]
        for j, char_b in enumerate(b, 1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (char_a != char_b),
            ))
        previous = current
    return previous[-1]


def _jaccard(left: set, right: set) -> float:
    if not left and not right:
        return 1.0
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


def title_similarity(title1: str, title2: str) -> float:
    """
    Similarity of two titles in [0, 1].

    Weighted blend: 0.3 Levenshtein ratio, 0.4 word Jaccard and 0.3 character
    bigram Jaccard, computed over normalized titles.
    """
    a = normalize_title(title1)
    b = normalize_title(title2)
    if a == b:
        return 1.0

    longest = max(len(a), len(b))
    levenshtein = 1 - _levenshtein(a, b) / longest if longest else 1.0
    words = _jaccard(set(a.split()), set(b.split()))
    bigrams = _jaccard(
        {a[i:i + 2] for i in range(len(a) - 1)},
        {b[i:i + 2] for i in range(len(b) - 1)},
    )
    return round(levenshtein * 0.3 + words * 0.4 + bigrams * 0.3, 3)


def find_similar_titles(
    title: str,
    existing_titles: list[str],
    threshold: float = 0.8,
) -> list[tuple[str, float]]:
    """
    Find existing titles too similar to a candidate.

    Args:
        title: Candidate title.
        existing_titles: Titles already published by the host.
        threshold: Similarity at or above which a title is a duplicate.

    Returns:
        (title, similarity) pairs, most similar first.
    """
    matches = []
    for existing in existing_titles:
        similarity = title_similarity(title, existing)
        if similarity >= threshold:
            matches.append((existing, similarity))
    matches.sort(key=lambda m: m[1], reverse=True)
    return matches


# =============================================================================
# Headings and images
# =============================================================================

def extract_headings(html: str, levels: tuple[int, ...] = (2, 3, 4, 5, 6)) -> list[tuple[int, str]]:
    """Return (level, text) for each heading of the given levels, in order."""
    if not html:
        return []
    soup = BeautifulSoup(html, "html.parser")
    names = [f"h{level}" for level in levels]
    return [
        (int(tag.name[1]), WHITESPACE_RE.sub(" ", tag.get_text(" ")).strip())
        for tag in soup.find_all(names)
    ]


@dataclass
class HeadingMeasurement:
    """Focus keyword usage across H2-H6 subheadings."""
    usage_percentage: float
    keyword_headings: int
    total_headings: int
    locations: list = field(default_factory=list)


def analyze_subheadings(document: Document) -> HeadingMeasurement:
    headings = extract_headings(document.body)
    locations = [
        HeadingLocation(index=i, level=level, text=text)
        for i, (level, text) in enumerate(headings)
        if contains_keyword(text, document.focus_keyword)
    ]
    total = len(headings)
    return HeadingMeasurement(
        usage_percentage=round(len(locations) / total * 100, 2) if total else 0.0,
        keyword_headings=len(locations),
        total_headings=total,
        locations=locations,
    )


@dataclass
class ImageMeasurement:
    """Image count and alt text quality."""
    image_count: int
    proper_alt_count: int
    locations: list = field(default_factory=list)


def analyze_images(document: Document) -> ImageMeasurement:
    """
    Inspect ``<img>`` tags.

    Proper alt text is longer than MIN_ALT_TEXT_CHARS characters and contains
    the focus keyword. Every other image becomes a location.
    """
    if not document.body:
        return ImageMeasurement(image_count=0, proper_alt_count=0)
    soup = BeautifulSoup(document.body, "html.parser")
    images = soup.find_all("img")
    proper = 0
    locations = []
    for index, img in enumerate(images):
        alt = (img.get("alt") or "").strip()
        src = img.get("src") or ""
        if not alt:
            problem = "missing"
        elif len(alt) <= MIN_ALT_TEXT_CHARS:
            problem = "too_short"
        elif not contains_keyword(alt, document.focus_keyword):
            problem = "no_keyword"
        else:
            proper += 1
            continue
        locations.append(ImageLocation(index=index, src=src, alt=alt, problem=problem))
    return ImageMeasurement(image_count=len(images), proper_alt_count=proper, locations=locations)


# =============================================================================
# Single-metric re-measurement
# =============================================================================

def _presence(flag: bool) -> float:
    return 1.0 if flag else 0.0


METRIC_ANALYZERS: dict[IssueType, Callable[[Document], float]] = {
    IssueType.KEYWORD_DENSITY_LOW: lambda d: calculate_keyword_density(d).density,
    IssueType.KEYWORD_DENSITY_HIGH: lambda d: calculate_keyword_density(d).density,
    IssueType.META_DESCRIPTION_SHORT: lambda d: float(analyze_meta_description(d).length),
    IssueType.META_DESCRIPTION_LONG: lambda d: float(analyze_meta_description(d).length),
    IssueType.META_DESCRIPTION_NO_KEYWORD: lambda d: _presence(analyze_meta_description(d).has_keyword),
    IssueType.PASSIVE_VOICE_HIGH: lambda d: analyze_passive_voice(d.body).percentage,
    IssueType.SENTENCE_LENGTH_HIGH: lambda d: analyze_sentence_length(d.body).long_percentage,
    IssueType.TRANSITION_WORDS_LOW: lambda d: analyze_transition_words(d.body).percentage,
    IssueType.TITLE_TOO_LONG: lambda d: float(analyze_title(d).length),
    IssueType.TITLE_NO_KEYWORD: lambda d: _presence(analyze_title(d).has_keyword),
    IssueType.SUBHEADING_KEYWORD_OVERUSE: lambda d: analyze_subheadings(d).usage_percentage,
    IssueType.NO_IMAGES: lambda d: float(analyze_images(d).image_count),
    IssueType.ALT_TEXT_NO_KEYWORD: lambda d: float(analyze_images(d).proper_alt_count),
}


def measure_issue_metric(issue_type: IssueType, document: Document) -> float:
    """Re-run only the analyzer behind one issue type."""
    return METRIC_ANALYZERS[issue_type](document)


def metric_moved_toward(before: float, after: float, target: float) -> bool:
    """Check that ``after`` is strictly closer to ``target`` than ``before``."""
    return abs(after - target) < abs(before - target)
