"""Tests for correction prompt generation."""

from seo_compliance_optimizer.issue_detector import IssueDetector
from seo_compliance_optimizer.models import Document, IssueType
from seo_compliance_optimizer.prompt_generator import (
    PROMPT_TEMPLATES,
    EffectivenessTracker,
    ManualOverrideRegistry,
    PromptGenerator,
    average_word_chars,
    describe_locations,
    occurrences_to_band,
)

from test_issue_detector import MESSY_DOCUMENT


def _prompts(document, generator=None):
    result = IssueDetector().detect(document)
    generator = generator or PromptGenerator()
    return generator.generate(list(result.issues), document)


def _by_type(prompts, issue_type):
    return next(p for p in prompts if p.issue_type is issue_type)


class TestTemplates:
    """Tests for the prompt template table."""

    def test_every_issue_type_has_template(self):
        """Test that every issue type has a prompt template."""
        assert set(PROMPT_TEMPLATES) == set(IssueType)


class TestUnitHeuristics:
    """Tests for the unit-size helpers."""

    def test_average_word_chars(self):
        """Test mean word length plus one space."""
        assert average_word_chars("abc abcde") == 5.0

    def test_average_word_chars_empty(self):
        """Test the default for empty text."""
        assert average_word_chars("") == 6.0

    def test_occurrences_to_add(self):
        """Test that added occurrences land inside the band."""
        count = occurrences_to_band(0, 200, 1, 0.5, 2.5, increase=True)

        assert count == 4
        assert 0.5 < count / (200 + count) * 100 < 2.5

    def test_occurrences_to_replace(self):
        """Test that replaced occurrences never exceed the existing ones."""
        assert occurrences_to_band(6, 8, 1, 0.5, 2.5, increase=False) == 6

    def test_occurrences_to_replace_partial(self):
        """Test replacing part of the occurrences in a long document."""
        count = occurrences_to_band(10, 200, 1, 0.5, 2.5, increase=False)

        assert count == 7
        assert 0.5 < (10 - count) / 200 * 100 < 2.5


class TestPromptGeneration:
    """Tests for PromptGenerator."""

    def test_short_meta_prompt(self, short_meta_document):
        """Test the prompt for a five character meta description."""
        prompts = _prompts(short_meta_document)
        prompt = prompts[0]

        assert prompt.issue_type is IssueType.META_DESCRIPTION_SHORT
        assert prompt.priority == 10
        assert "120" in prompt.prompt_text
        assert "156" in prompt.prompt_text
        assert "coffee brewing" in prompt.prompt_text
        assert prompt.quantitative_target.target == 120
        assert prompt.quantitative_target.difference == 115
        assert prompt.quantitative_target.count == 20
        assert prompt.quantitative_target.action == "increase"
        assert prompt.expected_changes.change_count == 20

    def test_density_high_prompt(self):
        """Test the prompt for a keyword-stuffed title."""
        doc = Document(title="SEO SEO SEO SEO SEO Guide", body="<p>SEO tips.</p>", focus_keyword="SEO")

        prompt = _by_type(_prompts(doc), IssueType.KEYWORD_DENSITY_HIGH)

        assert prompt.quantitative_target.action == "reduce"
        assert prompt.quantitative_target.target == 1.5
        assert prompt.quantitative_target.count == 6
        assert "75%" in prompt.prompt_text

    def test_passive_prompt_quotes_sentences(self):
        """Test that readability prompts quote the flagged sentences."""
        prompt = _by_type(_prompts(MESSY_DOCUMENT), IssueType.PASSIVE_VOICE_HIGH)

        assert prompt.quantitative_target.count == 3
        assert prompt.quantitative_target.unit == "sentences"
        assert '"Each recipe is tested by our team"' in prompt.prompt_text

    def test_transition_prompt(self):
        """Test the sentence count for missing transitions."""
        prompt = _by_type(_prompts(MESSY_DOCUMENT), IssueType.TRANSITION_WORDS_LOW)

        assert prompt.quantitative_target.count == 1
        assert prompt.quantitative_target.action == "increase"

    def test_title_too_long_prompt(self):
        """Test word-based reduction for an overlong title."""
        prompt = _by_type(_prompts(MESSY_DOCUMENT), IssueType.TITLE_TOO_LONG)

        assert prompt.quantitative_target.difference == 22
        assert prompt.quantitative_target.count == 4
        assert prompt.quantitative_target.unit == "words"

    def test_presence_prompt(self):
        """Test that presence issues ask for a single change."""
        prompt = _by_type(_prompts(MESSY_DOCUMENT), IssueType.TITLE_NO_KEYWORD)

        assert prompt.quantitative_target.count == 1
        assert prompt.quantitative_target.action == "increase"

    def test_sorted_by_priority(self):
        """Test that prompts are ordered by priority, then detection order."""
        prompts = _prompts(MESSY_DOCUMENT)
        keys = [(-p.priority, p.detection_order) for p in prompts]

        assert keys == sorted(keys)

    def test_one_prompt_per_issue(self):
        """Test that each issue yields exactly one prompt."""
        result = IssueDetector().detect(MESSY_DOCUMENT)
        prompts = PromptGenerator().generate(list(result.issues), MESSY_DOCUMENT)

        assert len(prompts) == len(result.issues)

    def test_no_issues_no_prompts(self, compliant_document):
        """Test that a compliant document produces no prompts."""
        assert _prompts(compliant_document) == []


class TestManualOverrides:
    """Tests for manual override suppression."""

    def test_field_override_skips_issues(self, short_meta_document):
        """Test that a field override suppresses every issue in that field."""
        overrides = ManualOverrideRegistry()
        overrides.register("meta_description", "written by the editor")

        prompts = _prompts(short_meta_document, PromptGenerator(overrides=overrides))

        assert prompts == []

    def test_override_registered_after_construction(self, short_meta_document):
        """Test that an initially empty registry passed in stays live."""
        overrides = ManualOverrideRegistry()
        generator = PromptGenerator(overrides=overrides)
        overrides.register("meta_description", "approved by legal")

        assert generator.overrides is overrides
        assert _prompts(short_meta_document, generator) == []

    def test_issue_type_override(self):
        """Test that an issue type override suppresses only that type."""
        overrides = ManualOverrideRegistry()
        overrides.register("title_no_keyword", "brand title")

        prompts = _prompts(MESSY_DOCUMENT, PromptGenerator(overrides=overrides))
        types = [p.issue_type for p in prompts]

        assert IssueType.TITLE_NO_KEYWORD not in types
        assert IssueType.TITLE_TOO_LONG in types

    def test_override_without_skip(self, short_meta_document):
        """Test that overrides with skip_validation=False do not suppress."""
        overrides = ManualOverrideRegistry()
        overrides.register("meta_description", "note only", skip_validation=False)

        assert len(_prompts(short_meta_document, PromptGenerator(overrides=overrides))) == 2

    def test_remove_override(self):
        """Test removing a registered override."""
        overrides = ManualOverrideRegistry()
        overrides.register("title", "locked")

        assert overrides.remove("title", "locked") is True
        assert overrides.remove("title", "locked") is False
        assert len(overrides) == 0


class TestEffectivenessTracker:
    """Tests for prompt effectiveness tracking."""

    def test_success_rate(self):
        """Test per issue type success rates."""
        tracker = EffectivenessTracker()
        tracker.record(IssueType.TITLE_NO_KEYWORD, True)
        tracker.record(IssueType.TITLE_NO_KEYWORD, False)

        assert tracker.success_rate(IssueType.TITLE_NO_KEYWORD) == 50.0
        assert tracker.success_rate(IssueType.NO_IMAGES) is None
        assert tracker.report()["title_no_keyword"]["attempts"] == 2


class TestDescribeLocations:
    """Tests for location rendering."""

    def test_empty(self):
        """Test rendering of no locations."""
        assert describe_locations(()) == "none"
