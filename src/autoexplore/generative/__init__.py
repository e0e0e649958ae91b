"""Prompt building for external test synthesis."""

from autoexplore.generative.prompts import (
    JourneyTestPlanner,
    PromptBuilder,
    TestCaseDraft,
    TestSynthesizer,
    sanitize_name,
)

__all__ = [
    "JourneyTestPlanner",
    "PromptBuilder",
    "TestCaseDraft",
    "TestSynthesizer",
    "sanitize_name",
]
