"""
Classifier Rules
================

Term lists for the triage classifier and the synonym table used when a
query finds nothing. Built-in defaults apply unless the rules YAML file
overrides a section.
"""

from typing import List

from pydantic import BaseModel, Field, field_validator


DEFAULT_HARD_SYSTEM_TERMS = [
    "500", "502", "503", "504", "404",
    "timeout", "failed to fetch", "unable to connect",
    "network error", "connection refused", "dns error",
]

DEFAULT_SOFT_SYSTEM_TERMS = [
    "stuck", "spin", "spinning", "loading forever", "never finishes",
    "hang", "hanging", "blank page", "white screen", "frozen", "unresponsive",
]

DEFAULT_BUG_TERMS = [
    "error", "broken", "doesn't work", "doesnt work", "crash", "crashed",
    "failed", "upload failed", "payment failed", "checkout failed",
    "processing loop", "bug", "glitch",
]

DEFAULT_FEATURE_TERMS = [
    "feature request", "please add", "can you add", "would be nice",
    "suggestion", "enhancement", "wish list", "wishlist",
]


class SynonymRule(BaseModel):
    """A replacement query used when any of `phrases` appears in a zero-hit query."""
    phrases: List[str] = Field(min_length=1, description="Trigger phrases (substring match)")
    query: str = Field(min_length=1, description="Replacement search query")

    @field_validator("phrases")
    @classmethod
    def lowercase_phrases(cls, v: List[str]) -> List[str]:
        return [p.strip().lower() for p in v if p and p.strip()]


DEFAULT_SYNONYMS = [
    SynonymRule(
        phrases=["callbacks", "not getting interviews", "no interviews", "no callbacks"],
        query="ATS resume rejected applicant tracking",
    ),
    SynonymRule(
        phrases=["score 45", "is that bad", "is my score bad", "low score"],
        query="resume score meaning results",
    ),
    SynonymRule(
        phrases=["reset link", "password link", "link valid", "link expired"],
        query="reset password forgot",
    ),
]


def _normalize_terms(values: List[str]) -> List[str]:
    return [v.strip().lower() for v in values if v and v.strip()]


class RulesConfig(BaseModel):
    """
    Rules loaded from YAML.

    An omitted or empty section keeps its built-in default; the table order
    of `synonyms` is significant (first match wins).
    """
    hard_system_terms: List[str] = Field(default_factory=lambda: list(DEFAULT_HARD_SYSTEM_TERMS))
    soft_system_terms: List[str] = Field(default_factory=lambda: list(DEFAULT_SOFT_SYSTEM_TERMS))
    bug_terms: List[str] = Field(default_factory=lambda: list(DEFAULT_BUG_TERMS))
    feature_terms: List[str] = Field(default_factory=lambda: list(DEFAULT_FEATURE_TERMS))
    synonyms: List[SynonymRule] = Field(default_factory=lambda: list(DEFAULT_SYNONYMS))

    @field_validator(
        "hard_system_terms", "soft_system_terms", "bug_terms", "feature_terms", "synonyms",
        mode="before"
    )
    @classmethod
    def empty_section_as_list(cls, v):
        # `bug_terms:` with no items parses as None
        return [] if v is None else v

    @field_validator("hard_system_terms")
    @classmethod
    def validate_hard_terms(cls, v: List[str]) -> List[str]:
        return _normalize_terms(v) or list(DEFAULT_HARD_SYSTEM_TERMS)

    @field_validator("soft_system_terms")
    @classmethod
    def validate_soft_terms(cls, v: List[str]) -> List[str]:
        return _normalize_terms(v) or list(DEFAULT_SOFT_SYSTEM_TERMS)

    @field_validator("bug_terms")
    @classmethod
    def validate_bug_terms(cls, v: List[str]) -> List[str]:
        return _normalize_terms(v) or list(DEFAULT_BUG_TERMS)

    @field_validator("feature_terms")
    @classmethod
    def validate_feature_terms(cls, v: List[str]) -> List[str]:
        return _normalize_terms(v) or list(DEFAULT_FEATURE_TERMS)

    @field_validator("synonyms")
    @classmethod
    def validate_synonyms(cls, v: List[SynonymRule]) -> List[SynonymRule]:
        return [rule for rule in v if rule.phrases] or list(DEFAULT_SYNONYMS)
