# docscan/host/client.py
"""
Caller side of the background detection host.

The host owns one worker (thread or spawned process) per camera session. Every call returns
a concurrent.futures.Future that always completes with a response value: Found, FoundLive
or Failed. Requests are tagged with an id and resolved by id; a reply whose id is no longer
pending (timed out, cancelled, previous session) is dropped.
"""

from __future__ import annotations
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Union
import itertools
import logging
import multiprocessing
import queue
import threading
import numpy as np

from docscan.core.config import merge_cfg
from docscan.core.contracts import Corners, Frame
from docscan.core.errors import FailureReason, InvalidFrameError
from docscan.core.messages import (CropWithCorners, Detect, DetectLive, Error, Failed, Ready)
from docscan.host.worker import load_runtime, serve
from docscan.io.ingest import as_frame, validate_frame

log = logging.getLogger(__name__)


class HostState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass
class _Pending:
    future: Future
    timer: threading.Timer
    live: bool = False

    def resolve(self, resp) -> None:
        self.timer.cancel()
        if not self.future.done():
            self.future.set_result(resp)


def _resolved(resp) -> Future:
    fut: Future = Future()
    fut.set_result(resp)
    return fut


class DetectionHost:
    """
    Background execution host.

    States: UNLOADED → LOADING → READY (idle or busy) ; LOADING → ERROR when the runtime
    fails to load, which is permanent until stop()/start(). stop() always returns to UNLOADED.
    """

    def __init__(self, cfg: Optional[Dict] = None, *, mode: Optional[str] = None,
                 loader: Optional[Callable] = None, target: Optional[Callable] = None):
        self.cfg = merge_cfg(cfg)
        hcfg = self.cfg["host"]
        self.mode = mode or hcfg.get("mode", "thread")
        if self.mode not in ("thread", "process"):
            raise ValueError(f"unknown host mode: {self.mode!r}")
        self.timeout_s = float(hcfg.get("timeout_s", 5.0))
        self.load_timeout_s = float(hcfg.get("load_timeout_s", 30.0))
        self.join_timeout_s = float(hcfg.get("join_timeout_s", 2.0))
        self._loader = loader or load_runtime
        self._target = target or serve

        self._lock = threading.RLock()
        self._state = HostState.UNLOADED
        self._error: Optional[str] = None
        self._ready_evt = threading.Event()
        self._pending: Dict[int, _Pending] = {}
        self._live_rid: Optional[int] = None
        self._ids = itertools.count(1)
        self._session = 0

        self._inbox = None
        self._outbox = None
        self._worker = None
        self._reader: Optional[threading.Thread] = None
        self._reader_stop: Optional[threading.Event] = None

    # ------------------------------------------------------------------ state

    @property
    def state(self) -> HostState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state is HostState.READY

    @property
    def busy(self) -> bool:
        with self._lock:
            return bool(self._pending)

    @property
    def live_in_flight(self) -> bool:
        with self._lock:
            return self._live_rid is not None

    @property
    def error(self) -> Optional[str]:
        return self._error

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the runtime is READY or has failed; True only when READY."""
        self._ready_evt.wait(self.load_timeout_s if timeout is None else timeout)
        return self.ready

    # -------------------------------------------------------------- lifecycle

    def start(self) -> "DetectionHost":
        with self._lock:
            if self._state is not HostState.UNLOADED:
                return self
            self._session += 1
            session = self._session
            self._state = HostState.LOADING
            self._error = None
            self._ready_evt.clear()

            if self.mode == "process":
                ctx = multiprocessing.get_context("spawn")
                inbox, outbox = ctx.Queue(), ctx.Queue()
                worker = ctx.Process(target=self._target,
                                     args=(inbox, outbox, self.cfg, self._loader),
                                     name="docscan-host", daemon=True)
            else:
                inbox, outbox = queue.Queue(), queue.Queue()
                worker = threading.Thread(target=self._target,
                                          args=(inbox, outbox, self.cfg, self._loader),
                                          name="docscan-host", daemon=True)
            stop_evt = threading.Event()
            reader = threading.Thread(target=self._read_loop, args=(outbox, session, stop_evt),
                                      name="docscan-host-reader", daemon=True)
            self._inbox, self._outbox, self._worker = inbox, outbox, worker
            self._reader, self._reader_stop = reader, stop_evt
            worker.start()
            reader.start()
        log.info("[host] session %d starting (%s mode)", session, self.mode)
        return self

    def stop(self) -> None:
        """
        Tear the session down unconditionally: every pending future resolves as CANCELLED,
        the worker is told to exit and its runtime state is dropped.
        """
        with self._lock:
            if self._state is HostState.UNLOADED:
                return
            self._session += 1
            pending = list(self._pending.values())
            self._pending.clear()
            self._live_rid = None
            inbox, outbox, worker = self._inbox, self._outbox, self._worker
            reader, reader_stop = self._reader, self._reader_stop
            self._inbox = self._outbox = self._worker = None
            self._reader = self._reader_stop = None
            self._state = HostState.UNLOADED
            self._ready_evt.set()

        for p in pending:
            p.resolve(Failed(FailureReason.CANCELLED, "session ended"))

        _drain(inbox)
        inbox.put(None)
        reader_stop.set()
        # futures resolve on the reader thread, so a done-callback may be the one stopping us
        here = threading.current_thread()
        if reader is not here:
            reader.join(self.join_timeout_s)
        if worker is not here:
            worker.join(self.join_timeout_s)
        if self.mode == "process":
            if worker.is_alive():
                log.warning("[host] worker did not exit in %.1fs, terminating", self.join_timeout_s)
                worker.terminate()
                worker.join(self.join_timeout_s)
            for q in (inbox, outbox):
                q.close()
                q.cancel_join_thread()
        elif worker.is_alive():
            log.warning("[host] worker still finishing a request; its reply will be ignored")
        log.info("[host] session stopped (%d pending cancelled)", len(pending))

    def __enter__(self) -> "DetectionHost":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.stop()

    # --------------------------------------------------------------- requests

    def detect(self, image: Union[np.ndarray, Frame]) -> Future:
        """One-shot detect-and-crop on a full-resolution frame. Resolves to Found or Failed."""
        return self._submit(image, lambda f, rid: Detect(frame=f, request_id=rid))

    def detect_live(self, image: Union[np.ndarray, Frame]) -> Future:
        """Corner detection for the overlay. Dropped (BUSY) while another live request is out."""
        return self._submit(image, lambda f, rid: DetectLive(frame=f, request_id=rid), live=True)

    def crop_with_corners(self, image: Union[np.ndarray, Frame], corners: Corners) -> Future:
        if not isinstance(corners, Corners):
            corners = Corners(pts=corners)
        return self._submit(image, lambda f, rid: CropWithCorners(frame=f, corners=corners,
                                                                  request_id=rid))

    def _submit(self, image, build, live: bool = False) -> Future:
        try:
            frame = validate_frame(as_frame(image))
        except InvalidFrameError as e:
            return _resolved(Failed(FailureReason.INVALID_FRAME, str(e)))

        with self._lock:
            if self._state is HostState.ERROR:
                return _resolved(Failed(FailureReason.RUNTIME_UNAVAILABLE, self._error or ""))
            if self._state is not HostState.READY:
                return _resolved(Failed(FailureReason.NOT_READY, f"host {self._state.value}"))
            if live and self._live_rid is not None:
                return _resolved(Failed(FailureReason.BUSY, "live request in flight"))

            rid = next(self._ids)
            if self.mode == "thread":
                frame = frame.detached()
            fut: Future = Future()
            timer = threading.Timer(self.timeout_s, self._expire, args=(rid,))
            timer.daemon = True
            self._pending[rid] = _Pending(future=fut, timer=timer, live=live)
            if live:
                self._live_rid = rid
            self._inbox.put(build(frame, rid))
            timer.start()
        return fut

    # ---------------------------------------------------------------- replies

    def _expire(self, rid: int) -> None:
        with self._lock:
            p = self._pending.pop(rid, None)
            if p is None:
                return
            if self._live_rid == rid:
                self._live_rid = None
        log.warning("[host] request %d timed out after %.1fs", rid, self.timeout_s)
        p.resolve(Failed(FailureReason.TIMEOUT, f"timeout ({self.timeout_s:g}s)", rid))

    def _read_loop(self, outbox, session: int, stop_evt: threading.Event) -> None:
        while not stop_evt.is_set():
            try:
                msg = outbox.get(timeout=0.1)
            except queue.Empty:
                continue
            except (EOFError, OSError, ValueError):
                break
            self._on_message(msg, session)

    def _on_message(self, msg, session: int) -> None:
        with self._lock:
            if session != self._session:
                return
            if isinstance(msg, Ready):
                self._state = HostState.READY
                self._ready_evt.set()
                log.info("[host] runtime ready")
                return
            if isinstance(msg, Error):
                self._state = HostState.ERROR
                self._error = msg.message
                failed = list(self._pending.values())
                self._pending.clear()
                self._live_rid = None
                self._ready_evt.set()
            else:
                failed = None
                rid = getattr(msg, "request_id", None)
                p = self._pending.pop(rid, None)
                if p is not None and self._live_rid == rid:
                    self._live_rid = None

        if failed is not None:
            log.error("[host] runtime unavailable: %s", msg.message)
            for f in failed:
                f.resolve(Failed(FailureReason.RUNTIME_UNAVAILABLE, msg.message))
            return
        if p is None:
            log.debug("[host] dropping late reply for request %s", rid)
            return
        p.resolve(msg)


def _drain(q) -> None:
    while True:
        try:
            q.get_nowait()
        except queue.Empty:
            return
        except (EOFError, OSError, ValueError):
            return
