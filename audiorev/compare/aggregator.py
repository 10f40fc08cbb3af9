"""Thread-safe fold of block results into the run report."""

from __future__ import annotations

import threading
from collections import Counter
from typing import Dict, Optional

from audiorev.compare.types import BlockDifference, DifferenceReport, ReportTotals, SyncResult
from audiorev.errors import InvalidArgument


class ResultAggregator:
    """Collects one BlockDifference per block index, in any order, exactly once.

    `build()` seals the aggregator; later `add()` calls raise RuntimeError.
    """

    def __init__(self, profile_name: str = "", reference_name: str = "", comparison_name: str = ""):
        self.profile_name = profile_name
        self.reference_name = reference_name
        self.comparison_name = comparison_name
        self._blocks: Dict[int, BlockDifference] = {}
        self._counts: Counter = Counter()
        self._lock = threading.Lock()
        self._report: Optional[DifferenceReport] = None

    def add(self, diff: BlockDifference) -> None:
        with self._lock:
            if self._report is not None:
                raise RuntimeError("report already built")
            if diff.block_index in self._blocks:
                raise InvalidArgument(f"block {diff.block_index} added twice")
            self._blocks[diff.block_index] = diff
            c = self._counts
            c["compared_blocks"] += 1
            c["differing_blocks"] += int(diff.has_differences)
            c["compared_frequencies"] += diff.compared_frequencies
            c["missing"] += len(diff.missing)
            c["extra"] += len(diff.extra)
            c["amplitude"] += len(diff.amplitude)
            c["hi_missing"] += sum(1 for d in diff.missing if d.hi_diff)
            c["hi_extra"] += sum(1 for d in diff.extra if d.hi_diff)
            c["hi_amplitude"] += sum(1 for d in diff.amplitude if d.hi_diff)
            c["watermark_failures"] += int(diff.watermark_failed)

    def __len__(self) -> int:
        return len(self._blocks)

    def build(
        self,
        *,
        reference_sync: Optional[SyncResult] = None,
        comparison_sync: Optional[SyncResult] = None,
        noise_floor_db: Optional[float] = None,
    ) -> DifferenceReport:
        with self._lock:
            if self._report is not None:
                return self._report
            ordered = tuple(self._blocks[i] for i in sorted(self._blocks))
            totals = ReportTotals(**{k: int(v) for k, v in self._counts.items()})
            self._report = DifferenceReport(
                blocks=ordered,
                totals=totals,
                profile_name=self.profile_name,
                reference_name=self.reference_name,
                comparison_name=self.comparison_name,
                reference_sync=reference_sync,
                comparison_sync=comparison_sync,
                noise_floor_db=noise_floor_db,
            )
            return self._report
