"""Prompt templates for the generative backends.

This module is the SINGLE SOURCE of prompts sent to generative models, both
the on-device model and Gemini. Every template asks for the same JSON shape
so one parser serves both backends.

Example:
    >>> template = prompt_for_mode(AnalysisMode.DEEP)
    >>> system, user = template.render(**prepare_content_variables(content, AnalysisMode.DEEP))
"""

from __future__ import annotations

import json
import textwrap
from dataclasses import dataclass, field
from string import Template
from typing import Any

from chalamandra.core.models import AnalysisMode, Content


# =============================================================================
# System Instructions
# =============================================================================


ANALYST_SYSTEM = textwrap.dedent(
    """
    You are a communication analyst. You assess short workplace messages for
    tone, sarcasm, power dynamics, trust and friction risk. Be calibrated:
    report a low confidence when the message is ambiguous. Placeholders such
    as [EMAIL], [PHONE] and [CARD] stand for removed personal details; do not
    speculate about them.
    """
).strip()


ANALYSIS_SCHEMA: dict[str, Any] = {
    "strategic": {"power_dynamics": "high | balanced | low", "agenda": "string"},
    "emotional": {"tone": "positive | neutral | negative | sarcastic", "subtext": "string"},
    "relational": {"trust_score": "0-100", "collaboration_score": "0-100"},
    "overall_risk": "integer 0-100",
    "sarcasm_score": "integer 0-100",
    "confidence": "number between 0 and 1",
    "recommendations": ["string"],
    "detected_patterns": ["string"],
}


# =============================================================================
# Data Structures
# =============================================================================


@dataclass
class PromptTemplate:
    """A system instruction plus a user prompt with $placeholders.

    Attributes:
        id: Unique identifier (e.g., "communication_analysis_v1").
        version: Version string for tracking changes.
        system_instruction: Role and behavior instructions.
        user_prompt_template: User prompt with $variables.
        output_schema: Expected JSON shape.
        required_variables: Variables that MUST be provided.
    """

    id: str
    version: str
    system_instruction: str
    user_prompt_template: str
    output_schema: dict[str, Any] | None = None
    required_variables: set[str] = field(default_factory=set)

    def render(self, **variables: Any) -> tuple[str, str]:
        """Render the template.

        Returns:
            Tuple of (system_instruction, rendered_user_prompt).

        Raises:
            ValueError: If required variables are missing.
        """
        missing = sorted(self.required_variables - set(variables))
        if missing:
            raise ValueError(f"Missing required variables for prompt '{self.id}': {missing}")
        if self.output_schema and "output_schema" not in variables:
            variables["output_schema"] = render_output_schema(self.output_schema)
        return self.system_instruction, Template(self.user_prompt_template).safe_substitute(variables)


def render_output_schema(schema: dict[str, Any]) -> str:
    return json.dumps(schema, indent=2)


# =============================================================================
# Templates
# =============================================================================


QUICK_ANALYSIS_PROMPT = PromptTemplate(
    id="quick_analysis_v1",
    version="1.0.0",
    system_instruction=ANALYST_SYSTEM,
    user_prompt_template=textwrap.dedent(
        """
        Assess this message.

        ## Message
        $text

        ## Output Schema
        $output_schema

        Respond with JSON only.
        """
    ).strip(),
    output_schema=ANALYSIS_SCHEMA,
    required_variables={"text"},
)

COMMUNICATION_ANALYSIS_PROMPT = PromptTemplate(
    id="communication_analysis_v1",
    version="1.0.0",
    system_instruction=ANALYST_SYSTEM,
    user_prompt_template=textwrap.dedent(
        """
        Assess this message in depth.

        ## Message
        $text

        ## Context
        $context

        ## Attached Images (alt text)
        $images

        ## Task
        1. Identify the power dynamics and any hidden agenda.
        2. Classify the tone and describe the subtext.
        3. Judge whether the message is sarcastic, and how strongly.
        4. Estimate how likely the message is to cause friction.
        5. Give up to five concrete recommendations for the reader.

        ## Output Schema
        $output_schema

        Respond with JSON only.
        """
    ).strip(),
    output_schema=ANALYSIS_SCHEMA,
    required_variables={"text", "context", "images"},
)

PROMPT_REGISTRY: dict[str, PromptTemplate] = {
    template.id: template for template in (QUICK_ANALYSIS_PROMPT, COMMUNICATION_ANALYSIS_PROMPT)
}


def get_prompt(prompt_id: str) -> PromptTemplate:
    """Retrieve a prompt template by ID.

    Raises:
        KeyError: If no prompt with the given ID exists.
    """
    if prompt_id not in PROMPT_REGISTRY:
        available = ", ".join(sorted(PROMPT_REGISTRY))
        raise KeyError(f"Prompt '{prompt_id}' not found. Available prompts: {available}")
    return PROMPT_REGISTRY[prompt_id]


def prompt_for_mode(mode: AnalysisMode) -> PromptTemplate:
    if mode == AnalysisMode.QUICK:
        return QUICK_ANALYSIS_PROMPT
    return COMMUNICATION_ANALYSIS_PROMPT


# =============================================================================
# Helper Functions
# =============================================================================


def prepare_content_variables(content: Content, mode: AnalysisMode) -> dict[str, str]:
    """Build template variables for content.

    Image alt text is only included in multimodal mode.
    """
    context = "\n".join(f"- {key}: {value}" for key, value in sorted(content.metadata.items()))
    images = "(none)"
    if mode == AnalysisMode.MULTIMODAL and content.images:
        images = "\n".join(f"- {image.alt_text or '(no alt text)'}" for image in content.images)
    return {
        "text": content.text,
        "context": context or "(none)",
        "images": images,
    }


def render_for(content: Content, mode: AnalysisMode) -> tuple[str, str]:
    """Render the right template for a mode."""
    return prompt_for_mode(mode).render(**prepare_content_variables(content, mode))
