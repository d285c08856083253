"""
Named timers with streaming statistics.

A `Timing` registry is created by whoever owns the process (or the test) and handed to the code that
wants to time itself. Nothing here is a hidden global.

    timing = Timing()
    with Timer(timing, 'evaluate'):
        ...
    print(timing.print())
"""
import collections
import contextlib
import math
import threading
import time
from typing import Deque, Dict, List, Optional, Union

import attr
import pandas as pd

HandleOrTag = Union[int, str]

ROLLING_WINDOW_SIZE = 50


class TimerError(RuntimeError):
    pass


@attr.define
class _Accumulator:
    """ Online count / sum / mean / variance / min / max, plus a rolling mean for rates. """
    count: int = 0
    total: float = 0.0
    mean: float = 0.0
    m2: float = 0.0
    min: float = math.inf
    max: float = -math.inf
    window: Deque[float] = attr.Factory(lambda: collections.deque(maxlen=ROLLING_WINDOW_SIZE))

    def add(self, x: float):
        # Welford
        self.count += 1
        self.total += x
        delta = x - self.mean
        self.mean += delta / self.count
        self.m2 += delta * (x - self.mean)
        self.min = min(self.min, x)
        self.max = max(self.max, x)
        self.window.append(x)

    @property
    def variance(self) -> float:
        """ population variance """
        return self.m2 / self.count if self.count > 0 else math.nan

    @property
    def rolling_mean(self) -> float:
        return sum(self.window) / len(self.window) if self.window else math.nan


class Timing:
    def __init__(self):
        self._tag_map: Dict[str, int] = {}
        self._timers: List[_Accumulator] = []
        self._max_tag_length = 0
        self._running: Dict[int, float] = {}
        self._add_new_handle_lock = threading.Lock()

    def get_handle(self, tag: str) -> int:
        handle = self._tag_map.get(tag)
        if handle is not None:
            return handle

        with self._add_new_handle_lock:
            # somebody could have registered it while we waited
            if tag not in self._tag_map:
                self._timers.append(_Accumulator())
                self._tag_map[tag] = len(self._timers) - 1
                self._max_tag_length = max(self._max_tag_length, len(tag))
            return self._tag_map[tag]

    def get_tag(self, handle: int) -> str:
        for tag, h in self._tag_map.items():
            if h == handle:
                return tag
        raise TimerError(f"Unable to find the tag associated with handle {handle}")

    def _resolve(self, handle_or_tag: HandleOrTag) -> int:
        if isinstance(handle_or_tag, str):
            return self.get_handle(handle_or_tag)
        if not 0 <= handle_or_tag < len(self._timers):
            raise TimerError(f"Handle is out of range: {handle_or_tag}, number of timers: {len(self._timers)}")
        return handle_or_tag

    def start(self, handle_or_tag: HandleOrTag):
        """ Start the registry-owned stopwatch of this handle. """
        handle = self._resolve(handle_or_tag)
        if handle in self._running:
            raise TimerError(f"The timer {self.get_tag(handle)} is already running")
        self._running[handle] = time.perf_counter()

    def stop(self, handle_or_tag: HandleOrTag) -> float:
        handle = self._resolve(handle_or_tag)
        if handle not in self._running:
            raise TimerError(f"The timer {self.get_tag(handle)} is not running")
        elapsed = time.perf_counter() - self._running.pop(handle)
        self.add_time(handle, elapsed)
        return elapsed

    def is_running(self, handle_or_tag: HandleOrTag) -> bool:
        return self._resolve(handle_or_tag) in self._running

    def add_time(self, handle_or_tag: HandleOrTag, seconds: float):
        self._timers[self._resolve(handle_or_tag)].add(seconds)

    def get_num_samples(self, handle_or_tag: HandleOrTag) -> int:
        return self._timers[self._resolve(handle_or_tag)].count

    def get_total_seconds(self, handle_or_tag: HandleOrTag) -> float:
        return self._timers[self._resolve(handle_or_tag)].total

    def get_mean_seconds(self, handle_or_tag: HandleOrTag) -> float:
        acc = self._timers[self._resolve(handle_or_tag)]
        return acc.mean if acc.count > 0 else math.nan

    def get_variance_seconds(self, handle_or_tag: HandleOrTag) -> float:
        return self._timers[self._resolve(handle_or_tag)].variance

    def get_min_seconds(self, handle_or_tag: HandleOrTag) -> float:
        acc = self._timers[self._resolve(handle_or_tag)]
        return acc.min if acc.count > 0 else math.nan

    def get_max_seconds(self, handle_or_tag: HandleOrTag) -> float:
        acc = self._timers[self._resolve(handle_or_tag)]
        return acc.max if acc.count > 0 else math.nan

    def get_hz(self, handle_or_tag: HandleOrTag) -> float:
        """ 1 / mean of the last ROLLING_WINDOW_SIZE samples, inf if they all took no time """
        rolling_mean = self._timers[self._resolve(handle_or_tag)].rolling_mean
        if rolling_mean == 0.:
            return math.inf
        return 1.0 / rolling_mean

    def reset(self, handle_or_tag: HandleOrTag):
        self._timers[self._resolve(handle_or_tag)] = _Accumulator()

    @staticmethod
    def seconds_to_time_string(seconds: float) -> str:
        """ e.g. 3723.5 -> 01:02:03.500000 """
        secs = math.fmod(seconds, 60)
        minutes = int(seconds / 60)
        hours = int(seconds / 3600)
        minutes = minutes - hours * 60
        return f"{hours:02d}:{minutes:02d}:{secs:09.6f}"

    def print(self) -> str:
        lines = ["SM Timing", "-----------"]

        for tag in sorted(self._tag_map):
            handle = self._tag_map[tag]
            num_samples = self.get_num_samples(handle)
            line = f"{tag:<{self._max_tag_length}}\t{num_samples:>7}\t"
            if num_samples > 0:
                to_str = self.seconds_to_time_string
                line += (
                    f"{to_str(self.get_total_seconds(handle))}\t"
                    f"({to_str(self.get_mean_seconds(handle))} +- "
                    f"{to_str(math.sqrt(self.get_variance_seconds(handle)))})\t"
                    f"[{to_str(self.get_min_seconds(handle))},{to_str(self.get_max_seconds(handle))}]"
                )
            lines.append(line)

        return "\n".join(lines) + "\n"

    def to_df(self) -> pd.DataFrame:
        return pd.DataFrame([
            {
                'tag': tag,
                'num_samples': self.get_num_samples(handle),
                'total_s': self.get_total_seconds(handle),
                'mean_s': self.get_mean_seconds(handle),
                'std_s': math.sqrt(self.get_variance_seconds(handle)) if self.get_num_samples(handle) > 0 else math.nan,
                'min_s': self.get_min_seconds(handle),
                'max_s': self.get_max_seconds(handle),
            }
            for tag, handle in sorted(self._tag_map.items())
        ], columns=['tag', 'num_samples', 'total_s', 'mean_s', 'std_s', 'min_s', 'max_s']).set_index('tag')


class Timer:
    """ Measures wall time between start and stop and files it under its handle. Not thread safe,
    use one Timer per thread; the registry behind it can be shared. """

    def __init__(self, timing: Timing, handle_or_tag: HandleOrTag, construct_stopped: bool = False):
        self._timing = timing
        self._handle = timing._resolve(handle_or_tag)
        self._is_timing = False
        self._start_time = 0.0

        if not construct_stopped:
            self.start()

    @property
    def handle(self) -> int:
        return self._handle

    def start(self):
        if self._is_timing:
            raise TimerError(f"The timer {self._timing.get_tag(self._handle)} is already running")
        self._is_timing = True
        self._start_time = time.perf_counter()

    def stop(self) -> float:
        if not self._is_timing:
            raise TimerError(f"The timer {self._timing.get_tag(self._handle)} is not running")
        elapsed = time.perf_counter() - self._start_time
        self._timing.add_time(self._handle, elapsed)
        self._is_timing = False
        return elapsed

    def is_timing(self) -> bool:
        return self._is_timing

    def discard_timing(self):
        self._is_timing = False

    def __enter__(self) -> 'Timer':
        if not self._is_timing:
            self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._is_timing:
            self.stop()


_JUST_TIME_IT_DEPTH = 0


@contextlib.contextmanager
def just_time(what='timer', verbose=True, timing: Optional[Timing] = None):
    global _JUST_TIME_IT_DEPTH
    depth = _JUST_TIME_IT_DEPTH
    _JUST_TIME_IT_DEPTH += 1
    resu_state = {}
    if verbose:
        print(f'{" " * 4 * depth}Entering: {what} ...')
    start_time = time.perf_counter()
    try:
        yield resu_state
    finally:
        _JUST_TIME_IT_DEPTH -= 1
        elapsed = time.perf_counter() - start_time
        resu_state['elapsed'] = elapsed
        if timing is not None:
            timing.add_time(what, elapsed)
        if verbose:
            print(f'{" " * 4 * depth}... Elapsed {elapsed:.4g}s in: {what}')
