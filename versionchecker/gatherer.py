"""
Data gatherer - pairs every pod container with a version verdict

Pods are listed with one synchronous call, then each distinct image is
checked on a bounded thread pool. Results are collected into slots indexed
by enumeration order, so the output order is pod order then container order
no matter which check finishes first.
"""

import json
import logging
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .config import Config
from .errors import FetchCancelled, RegistryError, VersionCheckerError
from .factory import RegistryClientFactory
from .image import parse_image
from .resolver import Result, VersionResolver
from .scanner import Workload, WorkloadScanner, container_images

logger = logging.getLogger(__name__)

# How often a running fetch checks for cancellation, in seconds
CANCEL_POLL_INTERVAL = 0.1


@dataclass
class ResultRecord:
    """
    One container of one pod with its verdict

    Attributes:
        pod: The pod document exactly as listed
        image: The container's image string
        result: Version verdict; for failed checks only current version and URL are set
        error: The error that stopped the check, if any
    """
    pod: Workload
    image: str
    result: Result
    error: Optional[VersionCheckerError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'Pod': self.pod,
            'Result': self.result.to_dict(),
        }
        if self.error is not None:
            error = {
                'Kind': type(self.error).__name__,
                'Message': str(self.error),
            }
            if isinstance(self.error.__cause__, VersionCheckerError):
                error['Cause'] = type(self.error.__cause__).__name__
            data['Error'] = error
        return data


Outcome = Tuple[Result, Optional[VersionCheckerError]]


def dumps(records: List[ResultRecord]) -> str:
    """Serialize fetch output as indented JSON"""
    return json.dumps([record.to_dict() for record in records], indent=2, default=str)


class DataGatherer:
    """Scans pods and checks each container image against its registry"""

    def __init__(self, config: Config, scanner: Optional[WorkloadScanner] = None,
                 factory: Optional[RegistryClientFactory] = None):
        """
        Initialize gatherer

        Registry clients and the cluster client are built here, so bad
        configuration fails before any fetch.

        Args:
            config: Loaded configuration
            scanner: Workload scanner (default: built from config)
            factory: Registry client factory (default: built from config)

        Raises:
            ClientConstructionError: invalid kubeconfig or registry params
        """
        self.config = config
        self.max_workers = config.max_workers
        self.factory = factory or RegistryClientFactory(config.registries, config.timeout)
        self.scanner = scanner or WorkloadScanner(config.cluster, config.timeout)

    def check_image(self, image: str) -> Outcome:
        """
        Check a single image string

        Errors scoped to this image are returned with a partial result rather
        than raised.
        """
        try:
            ref = parse_image(image)
        except VersionCheckerError as e:
            logger.warning("Skipping image %r: %s", image, e)
            return Result('', '', False, ''), e

        try:
            try:
                client = self.factory.resolve(ref.host)
                return VersionResolver(client).resolve(ref), None
            except VersionCheckerError:
                raise
            except Exception as e:
                # Malformed registry data must not take the other images down
                raise RegistryError(
                    f"unexpected failure checking {ref.url}: {type(e).__name__}: {e}", ref.host, ref.repository
                ) from e
        except VersionCheckerError as e:
            cause = e.__cause__
            kind = f"{type(e).__name__}/{type(cause).__name__}" if cause is not None else type(e).__name__
            logger.warning("Version check failed for %s: %s: %s", image, kind, e)
            return Result(ref.tag or ref.digest or '', '', False, ref.url), e

    def fetch(self, cancel: Optional[threading.Event] = None) -> List[ResultRecord]:
        """
        Scan the cluster and check every container image

        Args:
            cancel: Event that aborts the fetch when set

        Returns:
            One ResultRecord per container, in pod then container order

        Raises:
            ClusterScanError: pods could not be listed
            FetchCancelled: cancel was set before the fetch completed
        """
        workloads = self.scanner.list()

        slots = []
        for workload in workloads:
            for image in container_images(workload):
                slots.append((workload, image))

        # Identical image strings are checked once
        images = list(dict.fromkeys(image for _, image in slots))
        outcomes: List[Optional[Outcome]] = [None] * len(images)
        logger.info("Checking %d images across %d containers", len(images), len(slots))

        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix='versionchecker')
        try:
            futures = {executor.submit(self.check_image, image): index for index, image in enumerate(images)}
            pending = set(futures)

            while pending:
                if cancel is not None and cancel.is_set():
                    raise FetchCancelled('fetch cancelled')
                done, pending = wait(pending, timeout=CANCEL_POLL_INTERVAL, return_when=FIRST_COMPLETED)
                for future in done:
                    outcomes[futures[future]] = future.result()

            if cancel is not None and cancel.is_set():
                raise FetchCancelled('fetch cancelled')
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        by_image = dict(zip(images, outcomes))
        return [ResultRecord(workload, image, *by_image[image]) for workload, image in slots]
