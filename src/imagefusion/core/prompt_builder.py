"""Generation prompt assembly.

The final prompt sent to the image backend is built deterministically from
the resolved style and the outputs of the earlier stages.  There is no
randomness here; variation comes only from concept synthesis.

Template Structure (fusion styles)::

    create a creature based on concept: [Concept]. One unified creature,
    centered composition. [Style Directive]

Template Structure (all other styles)::

    create an image based on: [Description 1], [Description 2]. One unified
    image, creative fusion of both elements. [Style Directive]

Usage
-----
::

    prompt = build_prompt(resolve_style("toy"), "A red fox.", "A teapot.")
"""

from __future__ import annotations

from .catalog import StyleDefinition

_FUSION_TEMPLATE = (
    "create a creature based on concept: {concept}. "
    "One unified creature, centered composition."
)

_MERGE_TEMPLATE = (
    "create an image based on: {description1}, {description2}. "
    "One unified image, creative fusion of both elements."
)


def _sentence(text: str) -> str:
    # Templates append their own period.
    return text.strip().rstrip(".")


def build_prompt(
    style: StyleDefinition,
    description1: str,
    description2: str,
    concept: str | None = None,
) -> str:
    """Assemble the image generation prompt.

    Args:
        style: Resolved style definition.
        description1: Description of the first image.
        description2: Description of the second image.
        concept: Synthesized concept.  Required for fusion styles, ignored
            otherwise.

    Returns:
        The prompt: template body followed by the style directive.

    Raises:
        ValueError: If ``style`` is a fusion style and ``concept`` is empty.
    """
    if style.is_fusion:
        if not concept or not concept.strip():
            raise ValueError(f"Style '{style.key}' requires a creative concept")
        body = _FUSION_TEMPLATE.format(concept=_sentence(concept))
    else:
        body = _MERGE_TEMPLATE.format(
            description1=_sentence(description1),
            description2=_sentence(description2),
        )

    directive = style.directive.strip()
    if not directive:
        return body
    return f"{body} {directive}"
