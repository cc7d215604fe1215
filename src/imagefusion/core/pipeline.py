"""Merge pipeline orchestrator.

:class:`MergePipeline` runs one merge request through every stage in order::

    VALIDATING -> DESCRIBING -> (SYNTHESIZING_CONCEPT) -> ASSEMBLING_PROMPT
        -> GENERATING -> PERSISTING -> LOGGING -> DONE

``SYNTHESIZING_CONCEPT`` only runs for fusion styles.  Any failure moves the
run to ``FAILED`` and the error propagates to the caller as a
:class:`~imagefusion.core.errors.PipelineError`; nothing is retried and no
later stage runs.  In particular, a failure before ``PERSISTING`` writes no
session and a failure before ``LOGGING`` appends no log entry.

An image generated by a provider but not persisted (persistence failed) is
left at the provider; its hosted URL expires on the provider side.

Usage Example
-------------
::

    pipeline = MergePipeline.from_config(config)
    result = await pipeline.run(
        MergeInput(image1=data_uri_1, image2=data_uri_2, style_key="toy")
    )
    print(result.image_url)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum

from .activity_log import ActivityLog, build_log_entry
from .adapters import OpenAIImageGenerator, ReplicateImageGenerator
from .analysis import describe_image, synthesize_concept
from .catalog import ModelDefinition, StyleDefinition, resolve_model, resolve_style
from .config import FusionConfig
from .errors import BackendError, PipelineError, ValidationError
from .generators import GeneratorRegistry, ImageResult
from .llm import ChatBackend, OpenAIChatBackend
from .prompt_builder import build_prompt
from .session_store import SavedSession, SessionStore

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    """States of a single pipeline run."""

    VALIDATING = "validating"
    DESCRIBING = "describing"
    SYNTHESIZING_CONCEPT = "synthesizing_concept"
    ASSEMBLING_PROMPT = "assembling_prompt"
    GENERATING = "generating"
    PERSISTING = "persisting"
    LOGGING = "logging"
    DONE = "done"
    FAILED = "failed"


@dataclass
class MergeInput:
    """One merge request as seen by the pipeline."""

    image1: str | None
    image2: str | None
    style_key: str | None = None
    model_key: str | None = None
    client_address: str = "unknown"
    user_agent: str = ""


@dataclass
class PipelineState:
    """Values accumulated while a request moves through the stages.

    Owned by a single :meth:`MergePipeline.run` call and never shared.
    """

    stage: PipelineStage = PipelineStage.VALIDATING
    style: StyleDefinition | None = None
    model: ModelDefinition | None = None
    description1: str | None = None
    description2: str | None = None
    creative_concept: str | None = None
    prompt: str | None = None
    result: ImageResult | None = None
    session: SavedSession | None = None
    history: list[PipelineStage] = field(default_factory=list)

    def advance(self, stage: PipelineStage) -> None:
        self.history.append(self.stage)
        self.stage = stage
        logger.debug(f"Pipeline stage -> {stage.value}")


@dataclass
class MergeResult:
    """Outcome of a successful pipeline run.

    Attributes:
        image_url: Provider URL of the result, or the locally served path
            when the provider returned raw bytes.
        state: Final pipeline state (descriptions, concept, prompt, ...).
        session: The persisted session.
    """

    image_url: str
    state: PipelineState
    session: SavedSession


class MergePipeline:
    """Sequences the merge stages for one request at a time.

    Attributes:
        config: Service configuration (token caps, temperature, defaults).
        chat: Backend used for image descriptions and concept synthesis.
        generators: Provider registry for the generation stage.
        sessions: Session directory store.
        activity_log: Bounded activity log.
    """

    def __init__(
        self,
        config: FusionConfig,
        chat: ChatBackend,
        generators: GeneratorRegistry,
        sessions: SessionStore,
        activity_log: ActivityLog,
    ) -> None:
        self.config = config
        self.chat = chat
        self.generators = generators
        self.sessions = sessions
        self.activity_log = activity_log

    @classmethod
    def from_config(cls, config: FusionConfig) -> MergePipeline:
        """Build a pipeline with the production backends and stores.

        No network connection is made here; API clients are created on the
        first request.
        """
        chat = OpenAIChatBackend(
            config.openai_api_key,
            vision_model=config.vision_model,
            text_model=config.concept_model,
        )

        generators = GeneratorRegistry()
        generators.register(OpenAIImageGenerator(config))
        generators.register(ReplicateImageGenerator(config))

        return cls(
            config=config,
            chat=chat,
            generators=generators,
            sessions=SessionStore(config.uploads_dir, timeout=config.download_timeout),
            activity_log=ActivityLog(config.activity_log_path, config.log_max_entries),
        )

    async def run(self, request: MergeInput) -> MergeResult:
        """Run the full pipeline for one request.

        Args:
            request: The merge request.

        Returns:
            The :class:`MergeResult`.

        Raises:
            ValidationError: If either image is missing (no backend is
                called).
            BackendError: If a vision, text or image backend fails.
            PersistenceError: If the session or log entry cannot be written.
        """
        state = PipelineState()
        try:
            return await self._run(request, state)
        except PipelineError as e:
            failed_stage = state.stage
            state.advance(PipelineStage.FAILED)
            e.stage = e.stage or failed_stage.value
            if isinstance(e, ValidationError):
                logger.info(f"Rejected merge request: {e}")
            else:
                logger.error(f"Merge failed during {failed_stage.value}: {e}")
            raise
        except Exception as e:
            failed_stage = state.stage
            state.advance(PipelineStage.FAILED)
            logger.exception(f"Unexpected error during {failed_stage.value}")
            raise BackendError(str(e), stage=failed_stage.value) from e

    async def _run(self, request: MergeInput, state: PipelineState) -> MergeResult:
        # --- Validating ----------------------------------------------------
        image1 = (request.image1 or "").strip()
        image2 = (request.image2 or "").strip()
        if not image1 or not image2:
            raise ValidationError("Both images are required (image1 and image2)")

        state.style = resolve_style(request.style_key, self.config.default_style)
        state.model = resolve_model(request.model_key, self.config.default_model)
        logger.info(
            f"Merge request from {request.client_address}: "
            f"style={state.style.key}, model={state.model.key}"
        )

        # --- Describing ----------------------------------------------------
        state.advance(PipelineStage.DESCRIBING)
        max_tokens = self.config.description_max_tokens
        state.description1, state.description2 = await asyncio.gather(
            describe_image(self.chat, image1, max_tokens=max_tokens),
            describe_image(self.chat, image2, max_tokens=max_tokens),
        )
        logger.info(f"Image 1: {state.description1}")
        logger.info(f"Image 2: {state.description2}")

        # --- Synthesizing concept (fusion styles only) ---------------------
        if state.style.is_fusion:
            state.advance(PipelineStage.SYNTHESIZING_CONCEPT)
            state.creative_concept = await synthesize_concept(
                self.chat,
                state.description1,
                state.description2,
                max_tokens=self.config.concept_max_tokens,
                temperature=self.config.concept_temperature,
            )

        # --- Assembling prompt ---------------------------------------------
        state.advance(PipelineStage.ASSEMBLING_PROMPT)
        state.prompt = build_prompt(
            state.style,
            state.description1,
            state.description2,
            state.creative_concept,
        )
        logger.debug(f"Generation prompt: {state.prompt}")

        # --- Generating ----------------------------------------------------
        state.advance(PipelineStage.GENERATING)
        try:
            generator = self.generators.get(state.model.provider)
        except KeyError as e:
            raise BackendError(str(e)) from e
        state.result = await generator.generate(state.prompt, state.model)

        # --- Persisting ----------------------------------------------------
        state.advance(PipelineStage.PERSISTING)
        state.session = await self.sessions.save(
            client_address=request.client_address,
            style_key=state.style.key,
            image1=image1,
            image2=image2,
            result=state.result,
            metadata=self._session_metadata(request, state),
        )

        # --- Logging -------------------------------------------------------
        state.advance(PipelineStage.LOGGING)
        self.activity_log.append(
            build_log_entry(
                client_address=request.client_address,
                style_key=state.style.key,
                session_dir=state.session.directory_name,
                session_id=state.session.session_id,
            )
        )

        state.advance(PipelineStage.DONE)
        image_url = state.result.url or self.sessions.public_url(state.session.directory_name)
        logger.info(f"Merge complete: session {state.session.directory_name}")
        return MergeResult(image_url=image_url, state=state, session=state.session)

    @staticmethod
    def _session_metadata(request: MergeInput, state: PipelineState) -> dict:
        metadata = {
            "style": state.style.key,
            "model": state.model.key,
            "provider": state.model.provider.value,
            "description1": state.description1,
            "description2": state.description2,
            "prompt": state.prompt,
            "user_agent": request.user_agent,
            "image_url": state.result.url,
        }
        if state.creative_concept:
            metadata["creative_concept"] = state.creative_concept
        return metadata
