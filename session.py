"""
session.py — interactive state for a preview front-end.

ParamStore keeps the current color theme, render options and source image and
tells subscribers about every change. RenderScheduler listens to a store and
coalesces bursts of changes into one render after a short quiet period; results
that were superseded while rendering are dropped instead of delivered.

Neither class touches pixels itself; rendering goes through generators.render.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import fields, replace
from typing import Any, Callable, List, Optional, Tuple

import numpy as np

from generators import render
from presets import OUTPUT_HEIGHT, OUTPUT_WIDTH, PRESETS, ColorParams, InputParams

log = logging.getLogger("buffgen.session")

DEFAULT_DEBOUNCE_S = 0.05


class ParamStore:
    def __init__(self, color: Optional[ColorParams] = None, inputs: Optional[InputParams] = None) -> None:
        self._lock = threading.Lock()
        self._color = color or PRESETS[0].color
        self._inputs = inputs or InputParams()
        self._subscribers: List[Callable[["ParamStore"], None]] = []

    @property
    def color(self) -> ColorParams:
        return self._color

    @property
    def inputs(self) -> InputParams:
        return self._inputs

    def snapshot(self) -> Tuple[ColorParams, InputParams]:
        with self._lock:
            return self._color, self._inputs

    def subscribe(self, callback: Callable[["ParamStore"], None]) -> Callable[[], None]:
        """Register a change callback; returns a function that removes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)
        return unsubscribe

    def _notify(self) -> None:
        with self._lock:
            subs = list(self._subscribers)
        for cb in subs:
            cb(self)

    # -------- mutations --------
    def load_preset(self, index: int) -> None:
        if not 0 <= index < len(PRESETS):
            log.warning("Invalid preset index: %s", index)
            return
        with self._lock:
            self._color = PRESETS[index].color
            self._inputs = replace(self._inputs, color_preset_index=index)
        self._notify()

    def update_input(self, **changes: Any) -> None:
        names = {f.name for f in fields(InputParams)}
        unknown = sorted(k for k in changes if k not in names)
        if unknown:
            raise KeyError(f"Unknown input parameter(s): {', '.join(unknown)}")
        with self._lock:
            self._inputs = replace(self._inputs, **changes)
        self._notify()

    def update_color(self, **changes: Any) -> None:
        with self._lock:
            color, unknown = self._color.with_overrides(**changes)
            if unknown:
                raise KeyError(f"Unknown color parameter(s): {', '.join(unknown)}")
            self._color = color
        self._notify()

    def set_source_image(self, image: Optional[Any]) -> None:
        self.update_input(fg_image=image)

    def toggle_ring(self) -> None:
        with self._lock:
            self._inputs = replace(self._inputs, ring=not self._inputs.ring)
        self._notify()


class RenderScheduler:
    """
    Debounced re-rendering for a ParamStore.

    Every change restarts a single-shot timer; when it fires the latest
    snapshot is rendered on the timer thread. Renders never overlap and are
    never interrupted; a result whose request was superseded is discarded.
    """

    def __init__(
        self,
        store: ParamStore,
        on_result: Callable[[np.ndarray], None],
        *,
        width: int = OUTPUT_WIDTH,
        height: int = OUTPUT_HEIGHT,
        delay: float = DEFAULT_DEBOUNCE_S,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self.store = store
        self.on_result = on_result
        self.on_error = on_error
        self.width = width
        self.height = height
        self.delay = max(0.0, float(delay))

        self._lock = threading.Lock()
        self._render_lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._generation = 0
        self._closed = False
        self._idle = threading.Event()
        self._idle.set()
        self.renders = 0
        self._unsubscribe = store.subscribe(lambda _store: self.request())

    def request(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
            self._idle.clear()
            self._timer = threading.Timer(self.delay, self._fire, args=(self._generation,))
            self._timer.daemon = True
            self._timer.start()

    def _current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation and not self._closed

    def _settle(self, generation: int) -> None:
        with self._lock:
            if generation == self._generation or self._closed:
                self._idle.set()

    def _fire(self, generation: int) -> None:
        with self._render_lock:
            if not self._current(generation):
                return
            color, inputs = self.store.snapshot()
            try:
                pixels = render(self.width, self.height, color, inputs)
            except Exception as e:
                log.exception("Render failed: %s", e)
                if self.on_error is not None:
                    self.on_error(e)
                self._settle(generation)
                return
            self.renders += 1
            if not self._current(generation):
                log.debug("Dropping stale render (request %d)", generation)
                return
            self.on_result(pixels)
            self._settle(generation)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until no render is pending; False on timeout."""
        return self._idle.wait(timeout)

    def close(self) -> None:
        self._unsubscribe()
        with self._lock:
            self._closed = True
            if self._timer is not None:
                self._timer.cancel()
            self._idle.set()

    def __enter__(self) -> "RenderScheduler":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
