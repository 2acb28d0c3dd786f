"""
Event Dispatcher
Bounded worker pool that runs comment pipelines after the webhook has answered
"""
import asyncio
from typing import List, Optional
from comment_fixer.core.config import settings
from comment_fixer.models.github import InboundEvent
from comment_fixer.services.comment_processor import CommentProcessor
from comment_fixer.utils.logger import logger


class EventDispatcher:
    """
    Queue of accepted events drained by a fixed number of workers.
    At most `workers` pipelines run at the same time.
    """

    def __init__(self, processor: CommentProcessor = None, workers: int = None):
        self.processor = processor or CommentProcessor()
        self.workers = workers or settings.MAX_CONCURRENT_PIPELINES
        self._queue: Optional[asyncio.Queue] = None
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"pipeline-worker-{i}")
            for i in range(self.workers)
        ]
        logger.info(f"Dispatcher started with {self.workers} workers")

    def submit(self, event: InboundEvent) -> None:
        """Queue an event; returns immediately"""
        if not self.running:
            raise RuntimeError("Dispatcher is not running")
        self._queue.put_nowait(event)
        logger.info(f"Queued comment event ({self._queue.qsize()} pending)")

    async def join(self) -> None:
        """Wait until every queued event has been processed"""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        """Finish queued work, then stop the workers"""
        if not self.running:
            return
        await self.join()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Dispatcher stopped")

    async def _worker(self, worker_id: int) -> None:
        while True:
            event = await self._queue.get()
            try:
                outcome = await self.processor.process_comment(event)
                logger.info(f"[worker {worker_id}] Pipeline finished: {outcome.value}")
            except Exception as e:
                logger.error(f"[worker {worker_id}] Unhandled pipeline error: {e}", exc_info=True)
            finally:
                self._queue.task_done()


# Global instance
dispatcher = EventDispatcher()
