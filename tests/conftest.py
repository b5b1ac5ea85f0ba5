"""
Pytest fixtures and configuration for SEO Compliance Optimizer tests.
"""

from typing import Any, Callable, Optional, Union

import pytest

from seo_compliance_optimizer.error_handler import ErrorHandler
from seo_compliance_optimizer.errors import CorrectionServiceError
from seo_compliance_optimizer.models import Document


COMPLIANT_BODY = (
    "<h2>Choosing Your Beans</h2>"
    "<p>Fresh beans make a noticeable difference in every cup you prepare at home. "
    "However, many people buy stale beans from large supermarkets. "
    "Good coffee brewing starts with a local roaster you trust.</p>"
    "<h2>Grinding at Home</h2>"
    "<p>A burr grinder gives you an even grind and better flavor. "
    "For example, a medium grind suits most drip machines. "
    "Finally, grind only what you need right before you start.</p>"
    '<img src="brew.jpg" alt="Pour over coffee brewing setup on a wooden table">'
    "<p>Patience and practice will improve your results over time. "
    "Small adjustments to water temperature also change the taste noticeably.</p>"
)

COMPLIANT_META = (
    "Learn the coffee brewing basics every beginner needs, from choosing fresh beans "
    "to grinding at home, for a better cup each morning."
)


@pytest.fixture
def compliant_document() -> Document:
    """A document that passes every check under the default configuration."""
    return Document(
        title="Coffee Brewing Basics for Beginners",
        body=COMPLIANT_BODY,
        meta_description=COMPLIANT_META,
        focus_keyword="coffee brewing",
    )


@pytest.fixture
def short_meta_document(compliant_document: Document) -> Document:
    """Compliant document whose meta description is only 'Short'."""
    return compliant_document.with_changes(meta_description="Short")


@pytest.fixture
def error_handler() -> ErrorHandler:
    """Error handler that records backoff delays instead of sleeping."""
    delays: list[float] = []
    handler = ErrorHandler(sleep=delays.append)
    handler.delays = delays
    return handler


Response = Union[Document, Exception, Callable[[Document, str], Document]]


class ScriptedCorrector:
    """
    Text corrector driven by a script of responses.

    Each call consumes the next scripted entry: a Document is returned as is,
    an exception is raised and a callable is invoked with the input document
    and prompt text. Once the script runs out the ``default`` entry is used.
    """

    def __init__(self, name: str = "scripted", script: Optional[list[Response]] = None,
                 default: Optional[Response] = None):
        self.name = name
        self.script = list(script or [])
        self.default = default
        self.calls: list[dict[str, Any]] = []

    def correct(self, document: Document, prompt_text: str,
                context: Optional[dict[str, Any]] = None) -> Document:
        self.calls.append({"document": document, "prompt": prompt_text, "context": context})
        response = self.script.pop(0) if self.script else self.default
        if response is None:
            return document
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(document, prompt_text)
        return response


@pytest.fixture
def make_corrector() -> Callable[..., ScriptedCorrector]:
    """Factory for scripted correctors."""
    return ScriptedCorrector


def fix_meta(document: Document, prompt_text: str) -> Document:
    """Correction that restores a compliant meta description."""
    return document.with_changes(meta_description=COMPLIANT_META)


def provider_down(message: str = "Provider temporarily unavailable") -> CorrectionServiceError:
    return CorrectionServiceError(message)
