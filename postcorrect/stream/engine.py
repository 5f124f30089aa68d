"""
Composition and execution of concurrent token pipelines.

A stage is a coroutine function ``stage(inp, out)`` that reads tokens from
its input hand-off, writes tokens to its output hand-off and raises on
failure. The first stage of a pipeline has no input and the last one has
no output. Stages run as asyncio tasks connected by zero-capacity
hand-offs; the first error cancels every other stage and is re-raised by
:func:`pipe`.

Example:
    >>> await pipe(
    ...     tokenize(*dirs),
    ...     normalize(),
    ...     filter_short(4),
    ...     tee(stats),
    ...     train("ms", settings, model, nocr),
    ... )
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING, Any, Protocol

from postcorrect.exceptions import PipelineError, StageError
from postcorrect.stream.channel import HandOff

if TYPE_CHECKING:
    from postcorrect.models import Document, PayloadKind, Token

logger = logging.getLogger(__name__)


class Stage(Protocol):
    """A pipeline stage; see the module documentation."""

    async def __call__(self, inp: HandOff | None, out: HandOff | None) -> None: ...


# =============================================================================
# STAGE DECLARATION
# =============================================================================


def stage(
    name: str,
    *,
    consumes: PayloadKind | None = None,
    produces: PayloadKind | None = None,
) -> Callable[[Callable[..., Awaitable[None]]], Stage]:
    """
    Declare a pipeline stage.

    The decorated coroutine gets a name used in error messages. Any error
    escaping it is re-raised as :class:`StageError` naming the stage.
    ``consumes`` and ``produces`` declare the payload variant the stage
    expects on its input and attaches to its output; :func:`pipe` and
    :func:`combine` reject compositions where they disagree. Stages that
    pass payloads through unchanged declare neither.
    """

    def decorate(fn: Callable[..., Awaitable[None]]) -> Stage:
        @functools.wraps(fn)
        async def run(inp: HandOff | None, out: HandOff | None) -> None:
            try:
                await fn(inp, out)
            except StageError:
                raise
            except Exception as e:
                raise StageError(name, e) from e

        run.stage_name = name  # type: ignore[attr-defined]
        run.consumes = consumes  # type: ignore[attr-defined]
        run.produces = produces  # type: ignore[attr-defined]
        return run

    return decorate


def stage_name(st: Any) -> str:
    return getattr(st, "stage_name", getattr(st, "__name__", repr(st)))


def check_composition(stages: Sequence[Any]) -> None:
    """
    Check that every stage consumes the payload its predecessors produce.

    Raises:
        PipelineError: On the first mismatch.
    """
    current: PayloadKind | None = None
    producer = ""
    for st in stages:
        wanted = getattr(st, "consumes", None)
        if wanted is not None and current is not None and wanted is not current:
            raise PipelineError(
                f"{stage_name(st)} consumes {wanted.value} payloads "
                f"but {producer} produces {current.value}"
            )
        produced = getattr(st, "produces", None)
        if produced is not None:
            current = produced
            producer = stage_name(st)


# =============================================================================
# EXECUTION
# =============================================================================


async def _run_stage(
    st: Stage,
    inp: HandOff | None,
    out: HandOff | None,
    close_out: bool,
    failures: list[BaseException],
) -> None:
    try:
        await st(inp, out)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        failures.append(e)
        raise
    if close_out and out is not None:
        await out.close()


async def _run(stages: Sequence[Stage], inp: HandOff | None, out: HandOff | None) -> None:
    if not stages:
        return
    links = [HandOff() for _ in range(len(stages) - 1)]
    failures: list[BaseException] = []
    tasks = []
    for i, st in enumerate(stages):
        st_inp = links[i - 1] if i > 0 else inp
        st_out = links[i] if i < len(links) else out
        # the caller owns the outer hand-offs
        close_out = i < len(links)
        tasks.append(
            asyncio.create_task(
                _run_stage(st, st_inp, st_out, close_out, failures),
                name=stage_name(st),
            )
        )
    try:
        _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    for task in pending:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    if failures:
        logger.debug("Pipeline stopped: %s", failures[0])
        raise failures[0]


async def pipe(*stages: Stage) -> None:
    """
    Run ``stages`` as one pipeline and wait for all of them.

    Raises:
        PipelineError: If adjacent stages disagree on their payload kind.
        Exception: The first error raised by any stage, unchanged.
    """
    check_composition(stages)
    await _run(stages, None, None)


def combine(*stages: Stage) -> Stage:
    """
    Fuse ``stages`` into a single stage.

    The combined stage runs its stages as a sub-pipeline between the
    hand-offs it is given.

    Raises:
        PipelineError: If adjacent stages disagree on their payload kind.
    """
    check_composition(stages)
    consumes = produces = None
    for s in stages:
        if produces is None and consumes is None:
            consumes = getattr(s, "consumes", None)
        produces = getattr(s, "produces", None) or produces

    async def run(inp: HandOff | None, out: HandOff | None) -> None:
        await _run(stages, inp, out)

    name = "combine(" + ", ".join(stage_name(s) for s in stages) + ")"
    run.stage_name = name  # type: ignore[attr-defined]
    run.consumes = consumes  # type: ignore[attr-defined]
    run.produces = produces  # type: ignore[attr-defined]
    return run


def tee(*callbacks: Callable[[Token], None]) -> Stage:
    """
    Call every callback on each token and pass the token on.

    Without an output the tee acts as a sink.
    """

    @stage("tee")
    async def run(inp: HandOff | None, out: HandOff | None) -> None:
        async def fn(t: Token) -> None:
            for callback in callbacks:
                callback(t)
            if out is not None:
                await send_tokens(out, t)

        await each_token(inp, fn)

    return run


# =============================================================================
# QUEUE ACCESS
# =============================================================================


async def read_token(inp: HandOff | None) -> Token | None:
    """
    Read the next token, ``None`` at the end of the stream.

    Raises:
        PipelineError: If the stage has no input.
    """
    if inp is None:
        raise PipelineError("cannot read tokens in a source stage")
    return await inp.receive()


async def send_tokens(out: HandOff | None, *tokens: Token) -> None:
    """
    Send ``tokens`` downstream in order.

    Raises:
        PipelineError: If the stage has no output.
    """
    if out is None:
        raise PipelineError("cannot send tokens from a sink stage")
    for t in tokens:
        await out.send(t)


async def each_token(inp: HandOff | None, fn: Callable[[Token], Awaitable[None]]) -> None:
    """Await ``fn`` for every token until the stream ends."""
    while (t := await read_token(inp)) is not None:
        await fn(t)


async def each_token_in_document(
    inp: HandOff | None,
    fn: Callable[[Document | None, list[Token]], Awaitable[None]],
) -> None:
    """
    Await ``fn(document, tokens)`` for each run of tokens of one document.

    The tokens of a document are contiguous in the stream.
    """
    tokens: list[Token] = []
    document: Document | None = None
    while (t := await read_token(inp)) is not None:
        if tokens and t.document is not document:
            await fn(document, tokens)
            tokens = []
        document = t.document
        tokens.append(t)
    if tokens:
        await fn(document, tokens)


async def each_line(inp: HandOff | None, fn: Callable[[list[Token]], Awaitable[None]]) -> None:
    """
    Await ``fn(line)`` for each run of tokens up to an end-of-line token.

    Raises:
        PipelineError: If the stream ends inside a line.
    """
    line: list[Token] = []
    while (t := await read_token(inp)) is not None:
        line.append(t)
        if t.eol:
            await fn(line)
            line = []
    if line:
        raise PipelineError(f"missing end of line marker after token {line[-1].id or line[-1]}")
