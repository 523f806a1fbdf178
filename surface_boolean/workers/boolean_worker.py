"""
Surface Boolean Worker

Runs compute_splits / apply_merge off the caller's process and talks to it
through plain-dict messages.

Main -> worker:
    {type: "computeSplits", payload: {surfaceA, surfaceB}}
    {type: "mergeSplits", payload: {splits, config}}
Worker -> main:
    {type: "progress", percent, message}
    {type: "result", data}
    {type: "error", message}

handle_message() is the dispatcher; SurfaceBooleanWorker hosts it in a
spawned process so large meshes do not block the caller.
"""

import logging
import multiprocessing as mp
import queue
import sys
from typing import Callable, Iterator, Optional

from surface_boolean.core.boolean_ops import apply_merge, compute_splits

logger = logging.getLogger(__name__)

Post = Callable[[dict], None]

# Sentinel telling the worker loop to exit
_STOP = None


def _progress_poster(post: Post) -> Callable[[int, str], None]:
    def _progress(percent: int, message: str) -> None:
        post({'type': 'progress', 'percent': int(percent), 'message': message})
    return _progress


def handle_message(message: dict, post: Post) -> None:
    """
    Run one request and post progress, then a result or an error.

    Args:
        message: {type, payload}
        post: callable receiving each outgoing message
    """
    msg_type = message.get('type') if isinstance(message, dict) else None
    payload = (message.get('payload') if isinstance(message, dict) else None) or {}
    progress = _progress_poster(post)

    try:
        if msg_type == 'computeSplits':
            result = compute_splits(payload.get('surfaceA'), payload.get('surfaceB'), progress_callback=progress)
            post({'type': 'result', 'data': result.to_dict() if result is not None else None})
        elif msg_type == 'mergeSplits':
            result = apply_merge(payload.get('splits'), payload.get('config'), progress_callback=progress)
            post({'type': 'result', 'data': result.to_dict() if result is not None else None})
        else:
            post({'type': 'error', 'message': f"Unknown message type: {msg_type}"})
    except Exception as e:
        logger.exception(f"Worker task {msg_type} failed: {e}")
        post({'type': 'error', 'message': str(e)})


def _worker_main(inbox, outbox) -> None:
    """Process entry point: serve messages until the stop sentinel arrives."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )
    logging.getLogger('trimesh').setLevel(logging.WARNING)

    while True:
        message = inbox.get()
        if message is _STOP:
            break
        handle_message(message, outbox.put)


class SurfaceBooleanWorker:
    """
    Background process running the boolean engine.

    Messages are copied across the process boundary; there is no shared
    state. A running task cannot be cancelled, only terminated.
    """

    def __init__(self):
        ctx = mp.get_context('spawn')
        self._inbox = ctx.Queue()
        self._outbox = ctx.Queue()
        self._process = ctx.Process(target=_worker_main, args=(self._inbox, self._outbox), daemon=True)
        self._process.start()
        logger.debug(f"Surface boolean worker started (pid {self._process.pid})")

    @property
    def is_alive(self) -> bool:
        return self._process is not None and self._process.is_alive()

    def post(self, message: dict) -> None:
        """Send a request to the worker."""
        self._inbox.put(message)

    def receive(self, timeout: Optional[float] = None) -> Optional[dict]:
        """Next outgoing message, or None on timeout."""
        try:
            return self._outbox.get(timeout=timeout)
        except queue.Empty:
            return None

    def results(self, timeout: Optional[float] = None) -> Iterator[dict]:
        """Yield messages up to and including the next result or error."""
        while True:
            message = self.receive(timeout)
            if message is None:
                raise TimeoutError("Surface boolean worker did not respond")
            yield message
            if message.get('type') in ('result', 'error'):
                return

    def run(self, message: dict, progress_callback: Optional[Callable[[int, str], None]] = None,
            timeout: Optional[float] = None) -> dict:
        """Post a request and wait for its final result or error message."""
        self.post(message)
        final = {}
        for reply in self.results(timeout):
            if reply.get('type') == 'progress':
                if progress_callback:
                    progress_callback(reply['percent'], reply['message'])
            else:
                final = reply
        return final

    def close(self, timeout: float = 5.0) -> None:
        """Ask the worker to exit, terminating it if it does not."""
        if self._process is None:
            return
        if self._process.is_alive():
            self._inbox.put(_STOP)
            self._process.join(timeout)
        if self._process.is_alive():
            self.terminate()
        self._process = None

    def terminate(self) -> None:
        if self._process is not None and self._process.is_alive():
            self._process.terminate()
            self._process.join()
            logger.debug("Surface boolean worker terminated")

    def __enter__(self) -> 'SurfaceBooleanWorker':
        return self

    def __exit__(self, exc_type, exc_value, exc_tb) -> None:
        self.close()
