"""Tests for the validation pipeline."""

from seo_compliance_optimizer.ai_corrector import AIContentCorrector
from seo_compliance_optimizer.config import OptimizerConfig
from seo_compliance_optimizer.models import IssueType
from seo_compliance_optimizer.pipeline import ValidationPipeline
from seo_compliance_optimizer.validation_cache import ValidationCache

from conftest import fix_meta


class TestValidate:
    """Tests for cached validation."""

    def test_cache_hit_skips_analyzers(self, compliant_document):
        """Test that a repeated validation does not re-run analyzers."""
        pipeline = ValidationPipeline()

        first = pipeline.validate(compliant_document)
        calls = pipeline.detector.analyzer_calls
        second = pipeline.validate(compliant_document)

        assert second is first
        assert pipeline.detector.analyzer_calls == calls
        assert pipeline.get_cache_stats()["hits"] == 1

    def test_threshold_change_misses_cache(self, short_meta_document):
        """Test that changing a threshold invalidates cached results."""
        pipeline = ValidationPipeline()
        before = pipeline.validate(short_meta_document)

        pipeline.update_config(OptimizerConfig(min_meta_desc_length=5))
        after = pipeline.validate(short_meta_document)

        assert IssueType.META_DESCRIPTION_SHORT in before.issue_types
        assert IssueType.META_DESCRIPTION_SHORT not in after.issue_types

    def test_shared_cache(self, compliant_document):
        """Test that pipelines sharing a cache reuse each other's results."""
        cache = ValidationCache()
        ValidationPipeline(cache=cache).validate(compliant_document)
        other = ValidationPipeline(cache=cache)

        other.validate(compliant_document)

        assert other.detector.analyzer_calls == 0


class TestValidateAndCorrect:
    """Tests for one-shot correction."""

    def test_corrects_and_revalidates(self, short_meta_document, make_corrector, error_handler):
        """Test a full detect, correct and re-validate cycle."""
        config = OptimizerConfig()
        corrector = AIContentCorrector([make_corrector(default=fix_meta)], config, error_handler)
        pipeline = ValidationPipeline(config, corrector=corrector)

        result = pipeline.validate_and_correct(short_meta_document)

        assert result.before.compliance_score == 75.93
        assert result.after.compliance_score == 100.0
        assert result.corrections_made == ("meta_description_short",)
        assert len(result.prompts) == 2
        assert any("did not move" in e for e in result.after.errors)

    def test_validate_only_without_corrector(self, short_meta_document):
        """Test that without a corrector the pipeline only validates."""
        result = ValidationPipeline().validate_and_correct(short_meta_document)

        assert result.after is result.before
        assert result.document == short_meta_document

    def test_auto_correction_disabled(self, short_meta_document, make_corrector, error_handler):
        """Test that auto_correction=False skips correction."""
        provider = make_corrector(default=fix_meta)
        config = OptimizerConfig(auto_correction=False)
        pipeline = ValidationPipeline(
            config, corrector=AIContentCorrector([provider], config, error_handler)
        )

        result = pipeline.validate_and_correct(short_meta_document)

        assert result.batch is None
        assert provider.calls == []


class TestInjectedCache:
    """Tests for caches passed in by the caller."""

    def test_empty_cache_is_kept(self):
        """Test that a fresh, still empty cache is used rather than replaced."""
        cache = ValidationCache()

        assert ValidationPipeline(cache=cache).cache is cache


class TestContextWarnings:
    """Tests for warnings that depend on more than the document."""

    def test_previous_pass_warnings_not_cached(self, short_meta_document, compliant_document):
        """Test that prior-pass warnings never leak into other validations."""
        pipeline = ValidationPipeline()
        compliant = pipeline.validate(compliant_document)

        with_context = pipeline.validate(short_meta_document, previous=compliant)
        plain = pipeline.validate(short_meta_document)

        assert "New issue since previous pass: meta_description_short" in with_context.warnings
        assert plain.warnings == ()

    def test_plain_result_first_then_context(self, short_meta_document, compliant_document):
        """Test that a cached context-free result still gains prior-pass warnings."""
        pipeline = ValidationPipeline()
        compliant = pipeline.validate(compliant_document)
        pipeline.validate(short_meta_document)

        with_context = pipeline.validate(short_meta_document, previous=compliant)

        assert "New issue since previous pass: meta_description_short" in with_context.warnings

    def test_existing_titles(self, compliant_document):
        """Test the title uniqueness warning against published titles."""
        pipeline = ValidationPipeline()
        pipeline.validate(compliant_document)
        calls = pipeline.detector.analyzer_calls

        result = pipeline.validate(
            compliant_document,
            existing_titles=["Coffee Brewing Basics for Beginners", "Mountain Bike Repair"],
        )

        assert result.warnings == (
            "Title may not be unique: 100.0% similar to 'Coffee Brewing Basics for Beginners'",
        )
        assert pipeline.detector.analyzer_calls == calls
        assert pipeline.validate(compliant_document).warnings == ()

    def test_similarity_threshold_from_config(self, compliant_document):
        """Test that title_similarity_threshold decides what counts as similar."""
        strict = ValidationPipeline(OptimizerConfig(title_similarity_threshold=1.0))

        result = strict.validate(
            compliant_document, existing_titles=["Coffee Brewing Basics for Experts"]
        )

        assert result.warnings == ()
