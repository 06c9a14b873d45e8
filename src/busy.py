"""
Busy detection for the runner and the bounded wait for it to go idle.

Detection samples rather than subscribes: the runner offers no job signal we
can hook into, so we combine the service state, the presence of a
Runner.Worker process (one is spawned per job) and a short CPU sample of the
runner's process tree.
"""

import logging
import time
from typing import List

import psutil

from models import BusySignal, Installation, ServiceState, WaitOutcome
from service import ServiceController

logger = logging.getLogger(__name__)

WORKER_PROCESS_NAME = "Runner.Worker"
LISTENER_PROCESS_NAME = "Runner.Listener"

# sample_busy() is polled; one sample must stay short.
MAX_CPU_SAMPLE_SECONDS = 3.0


class BusyDetector:
    """Takes point-in-time samples of whether the runner is mid-job."""

    def __init__(
        self,
        installation: Installation,
        service: ServiceController,
        cpu_threshold: float = 25.0,
        cpu_sample_seconds: float = 1.0,
    ):
        self.installation = installation
        self.service = service
        self.cpu_threshold = cpu_threshold
        self.cpu_sample_seconds = max(0.0, min(cpu_sample_seconds, MAX_CPU_SAMPLE_SECONDS))

    def sample_busy(self) -> BusySignal:
        """
        Take a single synchronous busy sample.

        Returns:
            BusySignal for this instant
        """
        state = self.service.status(self.installation)
        worker_present = False
        cpu = 0.0

        if state == ServiceState.RUNNING:
            worker_present = bool(self._find_processes({WORKER_PROCESS_NAME}))
            if not worker_present:
                cpu = self._sample_cpu()

        signal = BusySignal(
            service_state=state,
            worker_process_present=worker_present,
            cpu_utilization_percent=cpu,
            cpu_threshold=self.cpu_threshold,
        )
        logger.debug(
            f"Busy sample: service={state.value}, worker={worker_present}, "
            f"cpu={cpu:.1f}% -> busy={signal.busy}"
        )
        return signal

    def _find_processes(self, names) -> List[psutil.Process]:
        found = []
        for proc in psutil.process_iter(["name"]):
            try:
                if proc.info.get("name") in names:
                    found.append(proc)
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        return found

    def _sample_cpu(self) -> float:
        """CPU percent of the runner process tree over the sample interval."""
        procs: List[psutil.Process] = []
        for root in self._find_processes({LISTENER_PROCESS_NAME, WORKER_PROCESS_NAME}):
            procs.append(root)
            try:
                procs.extend(root.children(recursive=True))
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        if not procs:
            return 0.0

        # First call primes the per-process counters.
        for proc in procs:
            try:
                proc.cpu_percent(None)
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                pass
        time.sleep(self.cpu_sample_seconds)

        total = 0.0
        for proc in procs:
            try:
                total += proc.cpu_percent(None)
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        return total


class IdleWaiter:
    """Polls a BusyDetector until the runner is idle or a deadline passes."""

    def __init__(self, detector: BusyDetector, poll_interval: float = 5):
        self.detector = detector
        self.poll_interval = poll_interval

    def wait_until_idle(self, max_wait_minutes: float) -> WaitOutcome:
        """
        Wait for the runner to go idle.

        Args:
            max_wait_minutes: Upper bound on the wait; 0 samples exactly once

        Returns:
            WaitOutcome.IDLE, or WaitOutcome.TIMED_OUT once the deadline passes
        """
        start = time.monotonic()
        deadline = start + max(0.0, max_wait_minutes) * 60

        logger.info(f"Waiting for runner to go idle (max {max_wait_minutes} min)...")

        while True:
            signal = self.detector.sample_busy()
            elapsed = time.monotonic() - start
            if not signal.busy:
                logger.info(f"Runner is idle after {elapsed:.0f}s")
                return WaitOutcome.IDLE

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning(f"Runner still busy after {elapsed:.0f}s")
                return WaitOutcome.TIMED_OUT

            logger.info(
                f"  runner busy (worker={signal.worker_process_present}, "
                f"cpu={signal.cpu_utilization_percent:.1f}%), {elapsed:.0f}s elapsed"
            )
            time.sleep(min(self.poll_interval, remaining))
