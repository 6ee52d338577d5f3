"""asyncio runtime that drives the reducer.

Messages are processed one at a time from a single queue, so all state
changes happen on the loop. Effects run concurrently in a thread pool and
post their one result message back onto the same queue.
"""

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, Optional, Set

from managers.credential_manager import CredentialStore
from utils.logger import get_logger

from .effects import Cancel, Command, Effect, Repeat, Timer
from .messages import AppErr
from .reducer import Reducer
from .state import AppState


class EffectRunner:
    def __init__(
        self,
        reducer: Reducer,
        state: AppState,
        store: CredentialStore,
        *,
        on_render: Optional[Callable[[AppState], None]] = None,
        clock: Callable[[], float] = time.time,
        max_workers: int = 4,
        logger: Optional[logging.Logger] = None,
    ):
        self.reducer = reducer
        self.state = state
        self.store = store
        self.on_render = on_render
        self.clock = clock
        self.max_workers = max_workers
        self.logger = logger or get_logger("runtime")

        self.queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._tasks: Set[asyncio.Task] = set()
        self._keyed: Dict[str, asyncio.Task] = {}
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def post(self, msg: Any) -> None:
        """Queue a message. Safe to call from any thread once the runner has started."""
        if self.queue is None or self._loop is None:
            raise RuntimeError("runner has not been started")
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self.queue.put_nowait(msg)
        else:
            self._loop.call_soon_threadsafe(self.queue.put_nowait, msg)

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self.queue = asyncio.Queue()
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="effect")
        self.dispatch(self.reducer.init(self.state))
        self._render()

    async def run(self) -> AppState:
        """Process messages until the state asks to quit, then stop."""
        if self.queue is None:
            await self.start()
        try:
            while not self.state.quitting:
                msg = await self.queue.get()
                self.step(msg)
        finally:
            await self.stop()
        return self.state

    def step(self, msg: Any) -> None:
        self.state, commands = self.reducer.update(self.state, msg)
        self.dispatch(commands)
        self._render()

    def dispatch(self, commands: Iterable[Command]) -> None:
        if self._stopped:
            return
        for command in commands:
            if isinstance(command, Effect):
                self._spawn(self._run_effect(command))
            elif isinstance(command, Timer):
                self._schedule(command.key, self._run_timer(command))
            elif isinstance(command, Repeat):
                self._schedule(command.key, self._run_repeat(command))
            elif isinstance(command, Cancel):
                self.cancel(command.key)
            else:
                raise TypeError(f"unknown command: {command!r}")

    def cancel(self, key: str) -> bool:
        task = self._keyed.pop(key, None)
        if task is None:
            return False
        task.cancel()
        self.logger.debug("cancelled %s", key)
        return True

    async def stop(self) -> None:
        """Cancel every task, release the pool and close the store. Idempotent."""
        if self._stopped:
            return
        self._stopped = True
        self._keyed.clear()
        tasks = [t for t in self._tasks if t is not asyncio.current_task()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
        self.store.close()
        self.logger.info("runtime stopped")

    def scheduled(self) -> Set[str]:
        return set(self._keyed)

    def _render(self) -> None:
        if self.on_render is not None:
            self.on_render(self.state)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _schedule(self, key: str, coro) -> None:
        # Re-scheduling a key replaces the earlier task.
        self.cancel(key)
        task = self._spawn(coro)
        self._keyed[key] = task
        task.add_done_callback(lambda t, k=key: self._forget(k, t))

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._keyed.get(key) is task:
            del self._keyed[key]

    def _call(self, effect: Effect) -> Any:
        try:
            return effect()
        except Exception as e:
            self.logger.exception("effect %s raised", effect.name)
            return AppErr(effect.name, str(e))

    async def _run_effect(self, effect: Effect) -> Any:
        self.logger.debug("running %s", effect.name)
        msg = await self._loop.run_in_executor(self._executor, self._call, effect)
        if msg is not None and not self._stopped:
            self.queue.put_nowait(msg)
        return msg

    async def _run_timer(self, timer: Timer) -> None:
        delay = max(timer.at - self.clock(), 0.0)
        self.logger.debug("%s fires in %.1fs", timer.key, delay)
        await asyncio.sleep(delay)
        await self._run_effect(timer.effect)

    async def _run_repeat(self, repeat: Repeat) -> None:
        while True:
            await asyncio.sleep(repeat.interval)
            msg = await self._run_effect(repeat.effect)
            if isinstance(msg, AppErr) and repeat.stop_on_error:
                self.logger.info("%s stopped after error: %s", repeat.key, msg)
                return
