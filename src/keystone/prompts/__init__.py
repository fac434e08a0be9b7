"""
Prompt templates and structured response models for OpenAI calls.
"""

from .classify_thread import (
    SYSTEM_PROMPT,
    ThreadClassification,
    build_classification_prompt,
)

__all__ = [
    'SYSTEM_PROMPT',
    'ThreadClassification',
    'build_classification_prompt',
]
