"""
Stage executor - runs one agent over one input text.

The input is chunked and each chunk is sent to the model in order, one call
at a time. The stage output is the plain concatenation of the responses.
A stage is all-or-nothing: if any chunk fails, earlier responses are
thrown away and a StageError is raised.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from docflow.chunk import DEFAULT_MAX_CHUNK_CHARS, split_into_chunks
from docflow.errors import ModelError, ModelErrorKind, StageError

from .agents import Agent
from .llm import GenerationRequest, ModelClient
from .state import CancellationToken

logger = logging.getLogger(__name__)


# Prepended to every chunk sent to a model
TASK_FRAMING_PREFIX = "Text to process:"

ChunkProgressCallback = Callable[[int, int], None]


@dataclass
class StageResult:
    """Outcome of a stage that did not fail."""

    output: str = ""
    cancelled: bool = False
    chunk_count: int = 0
    duration_ms: int = 0


def build_user_prompt(chunk: str) -> str:
    return f"{TASK_FRAMING_PREFIX}\n{chunk}"


async def run_stage(
    agent: Agent,
    input_text: str,
    client: ModelClient,
    *,
    max_chunk_chars: int = DEFAULT_MAX_CHUNK_CHARS,
    on_chunk_progress: ChunkProgressCallback | None = None,
    cancel_token: CancellationToken | None = None,
    stage_index: int | None = None,
) -> StageResult:
    """
    Run a single agent over input_text.

    Args:
        agent: The agent whose prompt and temperature are applied
        input_text: Text produced by the previous stage (or extraction)
        client: Model client for the run's target
        max_chunk_chars: Chunk size passed to the chunker
        on_chunk_progress: Called with (chunk_index, total_chunks) before each call
        cancel_token: Checked before every chunk call
        stage_index: Position of the stage, recorded on errors

    Returns:
        StageResult with the concatenated output, or cancelled=True

    Raises:
        StageError: If the model call for any chunk fails
    """
    start_time = time.monotonic()
    chunks = split_into_chunks(input_text, max_chunk_chars)
    total = len(chunks)
    outputs: list[str] = []

    logger.info("Stage '%s': %d chunk(s)", agent.name, total)

    for index, chunk in enumerate(chunks):
        if cancel_token is not None and cancel_token.cancelled:
            logger.info("Stage '%s' cancelled before chunk %d/%d", agent.name, index + 1, total)
            return StageResult(cancelled=True, chunk_count=total)

        if on_chunk_progress is not None:
            on_chunk_progress(index, total)

        logger.debug(
            "Stage '%s' chunk %d/%d: chars %d-%d, ~%d tokens",
            agent.name,
            index + 1,
            total,
            chunk.start_char,
            chunk.end_char,
            chunk.estimate_tokens(),
        )

        request = GenerationRequest(
            system_prompt=agent.prompt_template,
            user_prompt=build_user_prompt(chunk.text),
            temperature=agent.temperature,
        )

        try:
            outputs.append(await client.generate(request))
        except ModelError as e:
            raise StageError(
                e,
                agent_name=agent.name,
                stage_index=stage_index,
                chunk_index=index,
                total_chunks=total,
            ) from e
        except Exception as e:
            cause = ModelError(f"{type(e).__name__}: {e}", ModelErrorKind.UNKNOWN)
            raise StageError(
                cause,
                agent_name=agent.name,
                stage_index=stage_index,
                chunk_index=index,
                total_chunks=total,
            ) from e

        logger.debug("Stage '%s' chunk %d/%d done", agent.name, index + 1, total)

    return StageResult(
        output="".join(outputs),
        chunk_count=total,
        duration_ms=int((time.monotonic() - start_time) * 1000),
    )
