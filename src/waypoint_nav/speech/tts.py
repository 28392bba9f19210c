# tts.py
# Offline text-to-speech for navigation announcements.
# Each utterance runs pyttsx3 in a short-lived subprocess so a running
# utterance can be interrupted by terminating the process.

import importlib.util
import logging
import queue
import subprocess
import sys
import threading
from concurrent.futures import Future
from typing import Callable, Optional

from ..errors import SpeechFailed

logger = logging.getLogger(__name__)

PRIORITY_LOW = "low"
PRIORITY_HIGH = "high"

_SCRIPT = (
    "import pyttsx3\n"
    "engine = pyttsx3.init()\n"
    "engine.setProperty('rate', {rate})\n"
    "engine.setProperty('volume', {volume})\n"
    "for v in engine.getProperty('voices'):\n"
    "    langs = [str(l) for l in (getattr(v, 'languages', None) or [])]\n"
    "    if any({language!r} in l for l in langs):\n"
    "        engine.setProperty('voice', v.id)\n"
    "        break\n"
    "engine.say({text!r})\n"
    "engine.runAndWait()"
)


class SpeechService:
    """Interface consumed by the announcement scheduler."""

    def speak(self, text: str, priority: str = PRIORITY_LOW) -> Future:
        raise NotImplementedError

    def cancel(self) -> None:
        raise NotImplementedError


def _done_future() -> Future:
    fut: Future = Future()
    fut.set_result(None)
    return fut


class Pyttsx3Speech(SpeechService):
    """
    Queued pyttsx3 speaker.

    A 'high' utterance drops queued 'low' ones and interrupts a 'low' one that
    is currently speaking.

    Args:
        rate:     Words per minute.
        volume:   0.0 to 1.0.
        language: Preferred voice language, e.g. "en-AU".
        popen:    Process factory, subprocess.Popen by default.
    """

    def __init__(
        self,
        rate: int = 165,
        volume: float = 1.0,
        language: str = "en-AU",
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ) -> None:
        self.rate = rate
        self.volume = volume
        self.language = language
        self._popen = popen

        self._queue: "queue.Queue" = queue.Queue()
        self._lock = threading.Lock()
        self._current: Optional[subprocess.Popen] = None
        self._current_priority: Optional[str] = None
        self._interrupted = False
        self._generation = 0
        self._low_generation = 0

        self._thread = threading.Thread(target=self._worker, name="tts-worker", daemon=True)
        self._thread.start()

    @staticmethod
    def is_supported() -> bool:
        return importlib.util.find_spec("pyttsx3") is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def speak(self, text: str, priority: str = PRIORITY_LOW) -> Future:
        text = (text or "").strip()
        if not text:
            return _done_future()

        if priority == PRIORITY_HIGH:
            self._drop_queued(only_low=True)

        fut: Future = Future()
        with self._lock:
            if priority == PRIORITY_HIGH:
                # voids any low utterance taken off the queue but not yet started
                self._low_generation += 1
                if self._current_priority == PRIORITY_LOW:
                    self._terminate_current()
            self._queue.put((text, priority, fut, self._generation, self._low_generation))
        return fut

    def cancel(self) -> None:
        """Stop the current utterance and forget everything queued."""
        self._drop_queued(only_low=False)
        with self._lock:
            self._generation += 1
            self._terminate_current()

    def close(self, timeout: float = 5.0) -> None:
        """Finish what is queued, then stop the worker. Call cancel() first to cut it short."""
        self._queue.put(None)
        self._thread.join(timeout=timeout)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _terminate_current(self) -> None:
        # caller holds self._lock
        if self._current is not None and self._current.poll() is None:
            self._interrupted = True
            self._current.terminate()

    def _drop_queued(self, only_low: bool) -> None:
        kept = []
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            self._queue.task_done()
            if item is None or (only_low and item[1] != PRIORITY_LOW):
                kept.append(item)
            else:
                item[2].cancel()
        for item in kept:
            self._queue.put(item)

    def _is_stale(self, priority: str, generation: int, low_generation: int) -> bool:
        # caller holds self._lock
        if generation != self._generation:
            return True
        return priority == PRIORITY_LOW and low_generation != self._low_generation

    def _worker(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                self._queue.task_done()
                break
            text, priority, fut, generation, low_generation = item
            try:
                if fut.set_running_or_notify_cancel():
                    self._say(text, priority, fut, generation, low_generation)
            finally:
                self._queue.task_done()

    def _say(self, text: str, priority: str, fut: Future, generation: int, low_generation: int) -> None:
        script = _SCRIPT.format(
            rate=int(self.rate),
            volume=float(self.volume),
            language=self.language,
            text=text,
        )
        try:
            with self._lock:
                if self._is_stale(priority, generation, low_generation):
                    logger.debug(f"Skipping superseded utterance: {text!r}")
                    fut.set_result(None)
                    return
                self._interrupted = False
                proc = self._popen([sys.executable, "-c", script])
                self._current = proc
                self._current_priority = priority
            returncode = proc.wait()
        except OSError as e:
            logger.error(f"TTS process could not start: {e}")
            fut.set_exception(SpeechFailed(str(e)))
            return
        finally:
            with self._lock:
                interrupted = self._interrupted
                self._current = None
                self._current_priority = None

        if returncode != 0 and not interrupted:
            fut.set_exception(SpeechFailed(f"TTS exited with code {returncode}"))
        else:
            fut.set_result(None)
