"""
Prompt templates for location analysis.
"""

from .location_prompts import (
    GROUNDED_SYSTEM_INSTRUCTION,
    SCHEMA_SYSTEM_INSTRUCTION,
    GROUNDED_USER_INSTRUCTION,
    SCHEMA_USER_INSTRUCTION,
    RESPONSE_FIELDS,
    REQUIRED_FIELDS,
    get_system_instruction,
    get_user_instruction,
    describe_contract,
)

__all__ = [
    "GROUNDED_SYSTEM_INSTRUCTION",
    "SCHEMA_SYSTEM_INSTRUCTION",
    "GROUNDED_USER_INSTRUCTION",
    "SCHEMA_USER_INSTRUCTION",
    "RESPONSE_FIELDS",
    "REQUIRED_FIELDS",
    "get_system_instruction",
    "get_user_instruction",
    "describe_contract",
]
