"""Description and concept synthesis stages.

Description
-----------
Each input image is sent to the vision backend once with a fixed instruction
asking for a short description (salient features, colours, style, objects).
The two calls are independent; the orchestrator runs them concurrently.

Concept Synthesis
-----------------
Fusion styles do not paste the two descriptions into the image prompt.
Instead a text model invents a single new creature inspired by both inputs
and answers with one short sentence.  Sampling runs at a high temperature so
that merging the same pair twice yields different creatures.

The raw answer goes through :func:`parse_concept`, a typed parse step that
returns the cleaned concept or ``None``.  ``None`` fails the request: there
is no fallback to the raw descriptions.
"""

from __future__ import annotations

import logging

from .errors import BackendError
from .images import as_image_url
from .llm import ChatBackend

logger = logging.getLogger(__name__)

DESCRIPTION_INSTRUCTION = (
    "Describe this image in 2-3 concise sentences. "
    "Focus on the main features, colors, style and objects."
)

CONCEPT_SYSTEM_PROMPT = (
    "You are a creature designer. You receive descriptions of two images and "
    "invent ONE new creature or entity that is inspired by both of them.\n"
    "Rules:\n"
    "- Never describe a literal mashup such as 'a cat with the body of a car' "
    "or 'X with Y's head'.\n"
    "- Do not list or name the two source subjects; blend their essence, "
    "colours and mood into something new.\n"
    "- Answer with exactly one sentence of at most 15 words.\n"
    "- Answer with the sentence only, no preamble, no quotes."
)

CONCEPT_USER_TEMPLATE = "Image 1: {description1}\nImage 2: {description2}"

# Opening quote -> matching closing quote.
_QUOTE_PAIRS = {
    '"': '"',
    "'": "'",
    "“": "”",
    "„": "“",
    "«": "»",
}


async def describe_image(backend: ChatBackend, image: str, *, max_tokens: int = 150) -> str:
    """Obtain a short natural-language description of one image.

    Args:
        backend: Vision-capable chat backend.
        image: Client image payload (data URI, URL or bare base64).
        max_tokens: Output length cap for the description.

    Returns:
        The description, whitespace-trimmed.

    Raises:
        BackendError: If the backend fails or returns only whitespace.
    """
    description = await backend.describe_image(
        as_image_url(image), DESCRIPTION_INSTRUCTION, max_tokens
    )
    description = (description or "").strip()
    if not description:
        raise BackendError("Vision backend returned an empty description")
    return description


def parse_concept(raw: str | None) -> str | None:
    """Clean a raw concept answer.

    Trims whitespace and removes one layer of enclosing quotes when the first
    and last characters form a matching pair.

    Args:
        raw: Text returned by the concept model.

    Returns:
        The cleaned concept, or ``None`` if nothing usable remains.
    """
    if raw is None:
        return None

    concept = raw.strip()
    if len(concept) >= 2 and _QUOTE_PAIRS.get(concept[0]) == concept[-1]:
        concept = concept[1:-1].strip()

    return concept or None


async def synthesize_concept(
    backend: ChatBackend,
    description1: str,
    description2: str,
    *,
    max_tokens: int = 60,
    temperature: float = 1.2,
) -> str:
    """Compress two image descriptions into one creature concept.

    Args:
        backend: Text backend.
        description1: Description of the first image.
        description2: Description of the second image.
        max_tokens: Output length cap.
        temperature: Sampling temperature.

    Returns:
        A single short concept sentence.

    Raises:
        BackendError: If the backend fails or the answer is empty after
            cleaning.
    """
    raw = await backend.complete(
        CONCEPT_SYSTEM_PROMPT,
        CONCEPT_USER_TEMPLATE.format(description1=description1, description2=description2),
        max_tokens,
        temperature,
    )

    concept = parse_concept(raw)
    if concept is None:
        raise BackendError("Concept synthesis returned no usable concept")

    logger.info(f"Creative concept: {concept}")
    return concept
