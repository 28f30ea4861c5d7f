"""
Background execution of watermarking tasks.

The :class:`TaskRunner` runs each submitted GIF on a bounded thread pool.
Every task owns its own pipeline instance, its input bytes and a snapshot of
the watermark specification, so tasks never share mutable state.

Example::

    with TaskRunner(max_concurrent_tasks=2) as runner:
        task = runner.submit(gif_bytes, TextWatermark(content="DRAFT"))
        task.wait()
        if task.status == TaskStatus.DONE:
            Path("out.gif").write_bytes(task.result)
"""

from __future__ import annotations

import logging
import queue
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterator

from ..config import settings
from ..errors import CancelledError
from ..frame import GifDocument
from ..watermark import WatermarkSpec
from .messages import (
    FINAL_MESSAGE_TYPES,
    CancelledMessage,
    ErrorMessage,
    ProgressMessage,
    ResultMessage,
    TaskMessage,
)
from .pipeline import PipelineConfig, WatermarkPipeline
from .progress import PROCESSING_ORDER, CancellationToken, ProgressEvent, TaskStatus

logger = logging.getLogger(__name__)

MessageCallback = Callable[[TaskMessage], None]


class ProcessingTask:
    """A single watermarking job and its observable state.

    :ivar id: Unique task id
    :ivar status: The current stage
    :ivar progress: Overall progress from 0.0 to 1.0
    :ivar source: The input GIF bytes. Released once the task finished unless
        the runner keeps sources.
    :ivar source_document: The decoded input, available after decoding and
        released like :attr:`source`
    :ivar spec: Snapshot of the watermark taken at submission
    :ivar result: The output GIF bytes, only set once DONE
    :ivar error: The error message, only set once FAILED
    :ivar messages: Queue receiving all messages of this task
    """

    def __init__(self, source: bytes, spec: WatermarkSpec):
        self.id = uuid.uuid4().hex
        self.status = TaskStatus.PENDING
        self.progress = 0.0
        self.source: bytes | None = bytes(source)
        self.source_document: GifDocument | None = None
        self.spec = spec.snapshot()
        self.result: bytes | None = None
        self.error: str | None = None
        self.messages: queue.Queue[TaskMessage] = queue.Queue()
        self.cancel_token = CancellationToken()
        self._lock = threading.Lock()
        self._finished = threading.Event()

    @property
    def is_done(self) -> bool:
        """Whether the task reached a terminal state."""
        return self.status.is_terminal

    def cancel(self) -> None:
        """Requests cancellation. Has no effect on finished tasks."""
        self.cancel_token.cancel()

    def wait(self, timeout: float | None = None) -> bool:
        """
        Blocks until the task finished.

        :param timeout: Maximum time to wait in seconds, None waits forever
        :return: True if the task finished
        """
        return self._finished.wait(timeout)

    def iter_messages(self, timeout: float | None = None) -> Iterator[TaskMessage]:
        """
        Yields the task's messages until its final message.

        Example::

            for message in task.iter_messages():
                if isinstance(message, ProgressMessage):
                    print(f"{message.fraction:.0%}")

        :param timeout: Maximum time to wait for each message in seconds
        :raise queue.Empty: If no message arrived within ``timeout``
        """
        while True:
            message = self.messages.get(timeout=timeout)
            yield message
            if isinstance(message, FINAL_MESSAGE_TYPES):
                return

    def _release_inputs(self) -> None:
        self.source = None
        self.source_document = None

    def _advance(self, status: TaskStatus) -> None:
        """
        Moves the task to a new status.

        Stages only move forward, FAILED and CANCELLED are reachable from any
        non-terminal state and terminal states never change.
        """
        with self._lock:
            if status == self.status:
                return
            if self.status.is_terminal:
                raise ValueError(
                    f"Task {self.id} is already {self.status.value}, can not become {status.value}"
                )
            if status not in (TaskStatus.FAILED, TaskStatus.CANCELLED):
                if PROCESSING_ORDER.index(status) < PROCESSING_ORDER.index(self.status):
                    raise ValueError(
                        f"Task {self.id} can not go back from {self.status.value} to {status.value}"
                    )
            self.status = status

    def __repr__(self):
        return f"ProcessingTask(id={self.id!r}, status={self.status.value}, progress={self.progress:.2f})"


class TaskRunner:
    """Runs watermarking tasks on a bounded pool of background threads.

    The runner only tracks unfinished tasks. Once a task finished it is
    forgotten and its input bytes and decoded frames are released, so only
    the caller's reference keeps the result alive.

    :param config: Pipeline options used for all tasks
    :param max_concurrent_tasks: Maximum number of tasks processed at the
        same time, defaults to the application settings
    :param keep_sources: Keep :attr:`ProcessingTask.source` and
        :attr:`ProcessingTask.source_document` of finished tasks, e.g. to
        watermark the decoded frames again with
        :meth:`WatermarkPipeline.run_document`
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        max_concurrent_tasks: int | None = None,
        keep_sources: bool = False,
    ):
        self.config = config if config is not None else PipelineConfig.from_settings()
        self.max_concurrent_tasks = max(1, max_concurrent_tasks or settings.MAX_CONCURRENT_TASKS)
        self.keep_sources = keep_sources
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_concurrent_tasks, thread_name_prefix="gifmark-task"
        )
        self._tasks: dict[str, ProcessingTask] = {}
        self._lock = threading.Lock()

    def submit(
        self,
        data: bytes,
        spec: WatermarkSpec,
        on_message: MessageCallback | None = None,
    ) -> ProcessingTask:
        """
        Queues a GIF for watermarking.

        :param data: The GIF file content
        :param spec: The watermark, copied at submission
        :param on_message: Optional callback receiving all task messages. It
            is called from the worker thread.
        :return: The new task
        """
        task = ProcessingTask(data, spec)
        with self._lock:
            self._tasks[task.id] = task
        self._executor.submit(self._run, task, on_message)
        logger.debug(f"Submitted task {task.id} ({len(data)} bytes)")
        return task

    @property
    def active_tasks(self) -> list[ProcessingTask]:
        """The submitted tasks which did not finish yet."""
        with self._lock:
            return list(self._tasks.values())

    def get(self, task_id: str) -> ProcessingTask | None:
        """Returns the unfinished task with the given id."""
        with self._lock:
            return self._tasks.get(task_id)

    def cancel(self, task_id: str) -> bool:
        """
        Requests the cancellation of a task.

        :param task_id: The task's id
        :return: True if the task exists and was not finished yet
        """
        task = self.get(task_id)
        if task is None or task.is_done:
            return False
        task.cancel()
        return True

    def shutdown(self, wait: bool = True, cancel_pending: bool = False) -> None:
        """
        Stops the runner.

        :param wait: Wait for running tasks to finish
        :param cancel_pending: Cancel all unfinished tasks first
        """
        if cancel_pending:
            for task in self.active_tasks:
                task.cancel()
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> TaskRunner:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True, cancel_pending=exc_type is not None)

    def _run(self, task: ProcessingTask, on_message: MessageCallback | None) -> None:
        """Processes a single task on a worker thread."""

        def post(message: TaskMessage) -> None:
            task.messages.put(message)
            if on_message is None:
                return
            try:
                on_message(message)
            except Exception:
                # receiver errors do not change the task outcome
                logger.exception(f"Message callback of task {task.id} failed")

        def on_progress(event: ProgressEvent) -> None:
            if event.stage != TaskStatus.DONE:
                task._advance(event.stage)
            task.progress = event.fraction
            post(ProgressMessage(task.id, event.stage, event.fraction, event.message))

        pipeline = WatermarkPipeline(self.config)
        try:
            task.cancel_token.raise_if_cancelled()
            task.source_document = pipeline.decode(task.source, on_progress, task.cancel_token)
            data = pipeline.run_document(
                task.source_document, task.spec, on_progress, task.cancel_token
            )
        except CancelledError:
            logger.info(f"Task {task.id} cancelled")
            task._advance(TaskStatus.CANCELLED)
            post(CancelledMessage(task.id))
        except Exception as e:
            logger.exception(f"Task {task.id} failed")
            task.error = str(e)
            task._advance(TaskStatus.FAILED)
            post(ErrorMessage(task.id, str(e)))
        else:
            task.result = data
            task._advance(TaskStatus.DONE)
            logger.info(f"Task {task.id} done, {len(data)} bytes")
            post(ResultMessage(task.id, data))
        finally:
            with self._lock:
                self._tasks.pop(task.id, None)
            if not self.keep_sources:
                task._release_inputs()
            task._finished.set()
