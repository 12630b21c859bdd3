"""
LIFELINE Lanes — background execution of long simulations

A lane runs one blocking job in a worker thread and streams its messages to
an async consumer:

    progress* → exactly one of done | cancelled | error

Progress counts are strictly increasing and throttled to every
`PROGRESS_EVERY` runs; the last completed count is always reported before
the terminal message. Cancellation is cooperative: the job checks the lane's
token once per outer run.
"""

import asyncio
import logging
import threading
from typing import Any, AsyncIterator, Callable, Dict, List, Literal, Mapping, Optional, Sequence

from pydantic import BaseModel

from lifeline import config
from lifeline.influence import InfluenceMatrix
from lifeline.models import RunStatus, ScenarioSpec, SimulationSettings
from lifeline.multiverse import MultiverseConfig, run_multiverse
from lifeline.simulator import SimulationHooks, simulate

logger = logging.getLogger(__name__)

LaneMessageType = Literal["progress", "done", "cancelled", "error"]
TERMINAL_TYPES = ("done", "cancelled", "error")


class LaneMessage(BaseModel):
    type: LaneMessageType
    done: Optional[int] = None
    total: Optional[int] = None
    result: Optional[Dict[str, Any]] = None
    message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_TYPES

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class Lane:
    """
    One background job with progress and cancellation.

    Args:
        job: Blocking callable taking SimulationHooks and returning a pydantic result.
        total: Total number of outer runs the job will report against.
        name: Label used in logs.
        progress_every: Minimum run step between progress messages.
    """

    def __init__(
        self,
        job: Callable[[SimulationHooks], BaseModel],
        total: int,
        name: str = "lane",
        progress_every: int = config.PROGRESS_EVERY,
    ):
        self._job = job
        self.total = total
        self.name = name
        self.progress_every = max(1, progress_every)
        self._cancel = threading.Event()

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    async def messages(self) -> AsyncIterator[LaneMessage]:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        counts = {"seen": 0, "sent": 0}

        def on_progress(done: int, total: int) -> None:
            # Worker thread: hand messages to the loop, never touch the queue directly
            counts["seen"] = max(counts["seen"], done)
            if done > counts["sent"] and (done >= total or done - counts["sent"] >= self.progress_every):
                counts["sent"] = done
                msg = LaneMessage(type="progress", done=done, total=total)
                loop.call_soon_threadsafe(queue.put_nowait, msg)

        hooks = SimulationHooks(on_progress=on_progress, should_cancel=self._cancel.is_set)

        async def run() -> None:
            logger.info("lane %s started total=%d", self.name, self.total)
            try:
                result = await asyncio.to_thread(self._job, hooks)
            except Exception as exc:
                logger.exception("lane %s failed", self.name)
                queue.put_nowait(LaneMessage(type="error", message=str(exc) or type(exc).__name__))
                return

            if counts["seen"] > counts["sent"]:
                counts["sent"] = counts["seen"]
                queue.put_nowait(LaneMessage(type="progress", done=counts["seen"], total=self.total))
            if getattr(result, "status", None) == RunStatus.CANCELLED:
                logger.info("lane %s cancelled after %d runs", self.name, counts["seen"])
                queue.put_nowait(LaneMessage(type="cancelled"))
            else:
                logger.info("lane %s done", self.name)
                queue.put_nowait(LaneMessage(type="done", result=result.model_dump(mode="json")))

        task = asyncio.create_task(run())
        finished = False
        try:
            while True:
                msg = await queue.get()
                yield msg
                if msg.is_terminal:
                    finished = True
                    break
        finally:
            if not finished:
                self.cancel()
            await task


async def collect_messages(lane: Lane) -> List[LaneMessage]:
    return [msg async for msg in lane.messages()]


def simulation_lane(
    base: Mapping[str, float],
    history: Sequence[Mapping[str, float]],
    matrix: InfluenceMatrix,
    settings: SimulationSettings,
    scenario: Optional[ScenarioSpec] = None,
) -> Lane:
    def job(hooks: SimulationHooks):
        return simulate(base, history, matrix, settings, scenario, hooks)

    return Lane(job, total=int(settings.simulation_count), name=f"simulation:{settings.seed}")


def multiverse_lane(multiverse_config: MultiverseConfig) -> Lane:
    def job(hooks: SimulationHooks):
        return run_multiverse(multiverse_config, hooks)

    return Lane(job, total=int(multiverse_config.runs), name=f"multiverse:{multiverse_config.seed}")
