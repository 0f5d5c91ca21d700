"""Priority lanes backed by one worker pool per lane.

Lanes are drained in rounds. In every round each lane, scanned from urgent
to low, may hand over up to its quota of items; the round completes before
the next one starts. A lane with a quota of at least one therefore makes
progress in every round and cannot starve behind busier lanes.
"""

import contextvars
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Sequence, Tuple, TypeVar

from infrastructure.configuration.features import NotificationChannelSettings
from infrastructure.logging import get_module_logger
from modules.notifications.models import LANE_ORDER, Lane

logger = get_module_logger()

T = TypeVar("T")
R = TypeVar("R")


class LanePool:
    """Independent worker pools per lane with per-round quotas."""

    def __init__(self, settings: NotificationChannelSettings):
        self.quotas: Dict[Lane, int] = {
            lane: settings.lane_quotas.get(lane.value, 1) for lane in LANE_ORDER
        }
        self.workers: Dict[Lane, int] = {
            lane: settings.lane_workers.get(lane.value, 1) for lane in LANE_ORDER
        }
        self._executors: Dict[Lane, ThreadPoolExecutor] = {
            lane: ThreadPoolExecutor(
                max_workers=self.workers[lane],
                thread_name_prefix=f"lane-{lane.value}",
            )
            for lane in LANE_ORDER
        }

    def plan_rounds(
        self, items_by_lane: Dict[Lane, Sequence[T]]
    ) -> List[List[Tuple[Lane, T]]]:
        """Split per-lane queues into drain rounds, keeping lane order."""
        queues = {lane: list(items_by_lane.get(lane, ())) for lane in LANE_ORDER}
        rounds: List[List[Tuple[Lane, T]]] = []
        while any(queues.values()):
            current: List[Tuple[Lane, T]] = []
            for lane in LANE_ORDER:
                quota = self.quotas[lane]
                taken, queues[lane] = queues[lane][:quota], queues[lane][quota:]
                current.extend((lane, item) for item in taken)
            rounds.append(current)
        return rounds

    def drain(
        self,
        items_by_lane: Dict[Lane, Sequence[T]],
        handler: Callable[[T], R],
    ) -> List[R]:
        """Run ``handler`` for every item on its lane's pool.

        Results are returned in dispatch order. ``handler`` is expected to
        deal with its own per-item failures; anything it raises propagates.
        """
        results: List[R] = []
        rounds = self.plan_rounds(items_by_lane)
        for number, batch in enumerate(rounds, start=1):
            futures: List[Future] = []
            for lane, item in batch:
                ctx = contextvars.copy_context()
                futures.append(self._executors[lane].submit(ctx.run, handler, item))
            results.extend(future.result() for future in futures)
            logger.debug("lane_round_drained", round=number, items=len(batch))
        return results

    def shutdown(self) -> None:
        for executor in self._executors.values():
            executor.shutdown(wait=True)
