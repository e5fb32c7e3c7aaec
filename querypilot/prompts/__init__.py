"""Prompt templates and builders."""

from querypilot.prompts.builder import PromptBuilder, cap_history, schema_to_json
from querypilot.prompts.loader import PromptLoader

__all__ = ["PromptBuilder", "PromptLoader", "cap_history", "schema_to_json"]
