"""
Observation Collector - fans out to every road observation source.

Sources are fetched concurrently and all are awaited before results are
returned, since cross-referencing needs the complete set. A failing or
slow source only means fewer observations.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from core.exceptions import SourceFailure
from core.models import Observation

log = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT = 60


class ObservationSource:
    """A named provider adapter that yields normalized observations."""

    name = "Unknown"

    def fetch_observations(self, location: Optional[str] = None) -> List[Observation]:
        raise NotImplementedError


class CallableSource(ObservationSource):
    """Wrap a plain function as an observation source."""

    def __init__(self, name: str, fetch: Callable[[Optional[str]], List[Observation]]):
        self.name = name
        self._fetch = fetch

    def fetch_observations(self, location: Optional[str] = None) -> List[Observation]:
        return list(self._fetch(location))


@dataclass
class CollectionResult:
    """Observations in source declaration order, plus per-source failures."""
    observations: List[Observation] = field(default_factory=list)
    failures: List[SourceFailure] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)

    @property
    def succeeded(self) -> List[str]:
        return list(self.counts)

    @property
    def exhausted(self) -> bool:
        """True when no source returned anything at all."""
        return not self.counts


class ObservationCollector:
    """
    Fetch every configured source concurrently.

    Usage:
        collector = ObservationCollector([rwis_source, tomtom_source])
        result = collector.collect()
        pipeline.run(result.observations)
    """

    def __init__(
        self,
        sources: Sequence[ObservationSource],
        max_workers: int = 6,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
    ):
        self.sources = list(sources)
        self.max_workers = max_workers
        self.timeout = timeout

    def collect(self, location: Optional[str] = None) -> CollectionResult:
        result = CollectionResult()
        if not self.sources:
            return result

        batches: Dict[int, List[Observation]] = {}
        executor = ThreadPoolExecutor(max_workers=self.max_workers)
        futures = {
            executor.submit(source.fetch_observations, location): index
            for index, source in enumerate(self.sources)
        }
        timed_out = False
        try:
            for future in as_completed(futures, timeout=self.timeout):
                index = futures[future]
                source = self.sources[index]
                try:
                    batches[index] = future.result()
                except Exception as e:
                    log.error(f"Error fetching {source.name}: {e}")
                    result.failures.append(
                        e if isinstance(e, SourceFailure) else SourceFailure(source.name, str(e))
                    )
        except FuturesTimeout:
            timed_out = True
            for future, index in futures.items():
                if not future.done():
                    name = self.sources[index].name
                    log.error(f"Timed out fetching {name}")
                    result.failures.append(SourceFailure(name, "timed out"))
        finally:
            # Hung sources are abandoned, not joined
            executor.shutdown(wait=not timed_out, cancel_futures=timed_out)

        for index in sorted(batches):
            source = self.sources[index]
            result.observations.extend(batches[index])
            result.counts[source.name] = len(batches[index])

        log.info(
            f"Collected {len(result.observations)} observations from "
            f"{len(result.counts)}/{len(self.sources)} sources"
        )
        return result
