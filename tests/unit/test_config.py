"""Tests for configuration helpers."""
import pytest

from docqa.config import GenerationOptions


def test_generation_option_defaults():
    assert GenerationOptions.from_dict(None) == GenerationOptions(
        temperature=0.5, top_p=0.9, max_tokens=None
    )


def test_partial_generation_options():
    options = GenerationOptions.from_dict({"temperature": 0.1})

    assert options.temperature == 0.1
    assert options.max_tokens is None


def test_unknown_generation_options_are_rejected():
    with pytest.raises(ValueError, match="seed"):
        GenerationOptions.from_dict({"temperature": 0.1, "seed": 7})
