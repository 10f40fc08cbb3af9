"""Per-run comparison pipeline: sync, block placement, analysis, classification."""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import List, Optional, Tuple

from audiorev.compare.aggregator import ResultAggregator
from audiorev.compare.classifier import DifferenceClassifier
from audiorev.compare.timeline import place_blocks
from audiorev.compare.types import (
    Block,
    BlockDifference,
    BlockKind,
    BlockTypeCatalog,
    DifferenceReport,
    Signal,
    SyncResult,
)
from audiorev.config import RunConfig
from audiorev.dsp.fft import SpectralAnalyzer
from audiorev.dsp.noise_estimation import silence_noise_floor_db
from audiorev.dsp.sync import Synchronizer
from audiorev.dsp.windowing import WindowCache
from audiorev.errors import EmptyCatalog, NoBlocks, SignalTruncated
from audiorev.util.logging import get_logger

logger = get_logger(__name__)

BlockPair = Tuple[Block, Block]


class ComparisonEngine:
    """Runs one reference/comparison pair against a catalog.

    A WindowCache may be shared between engines; analyzers and their transform
    plans live for a single `run()`.
    """

    def __init__(self, config: RunConfig, catalog: BlockTypeCatalog, *, windows: Optional[WindowCache] = None):
        self.config = config
        self.catalog = catalog
        self.windows = windows if windows is not None else WindowCache()

    def validate_catalog(self) -> None:
        if not self.catalog.block_types:
            raise EmptyCatalog(f"profile '{self.catalog.name}' defines no block types")
        if self.catalog.comparable_blocks == 0:
            raise NoBlocks(f"profile '{self.catalog.name}' defines no comparable blocks")

    def run(self, reference: Signal, comparison: Signal) -> DifferenceReport:
        self.validate_catalog()
        cfg = self.config
        if cfg.reverse_compare:
            # each recording keeps its own sync format
            reference, comparison = comparison, reference
            cfg = replace(cfg, reference_format=cfg.comparison_format, comparison_format=cfg.reference_format)
        started = time.monotonic()
        logger.info(
            "comparing '%s' against '%s' with profile '%s' (%d blocks)",
            comparison.name,
            reference.name,
            self.catalog.name,
            self.catalog.total_blocks,
        )

        with SpectralAnalyzer(cfg, self.windows) as analyzer:
            synchronizer = Synchronizer(cfg, self.catalog, analyzer)
            ref_sync, cmp_sync = synchronizer.synchronize_pair(reference, comparison)

            ref_blocks = self._place(synchronizer, ref_sync, reference, "reference")
            cmp_blocks = self._place(synchronizer, cmp_sync, comparison, "comparison")
            noise_floor = self._noise_floor(analyzer, reference, ref_blocks)

            classifier = DifferenceClassifier(cfg, self.catalog)
            aggregator = ResultAggregator(self.catalog.name, reference.name, comparison.name)
            pairs: List[BlockPair] = [
                (r, c) for r, c in zip(ref_blocks, cmp_blocks) if r.block_type.comparable
            ]

            def compare_pair(pair: BlockPair) -> BlockDifference:
                ref_block, cmp_block = pair
                ref_spectrum = analyzer.analyze(reference, ref_block, noise_floor_db=noise_floor)
                cmp_spectrum = analyzer.analyze(comparison, cmp_block, noise_floor_db=noise_floor)
                return classifier.classify(ref_spectrum, cmp_spectrum, ref_block)

            with ThreadPoolExecutor(max_workers=cfg.workers) as pool:
                for diff in pool.map(compare_pair, pairs):
                    aggregator.add(diff)
                    logger.debug(
                        "block %d %s: %d missing, %d extra, %d amplitude%s",
                        diff.block_index,
                        diff.block_name,
                        len(diff.missing),
                        len(diff.extra),
                        len(diff.amplitude),
                        " watermark failed" if diff.watermark_failed else "",
                        extra={"block_index": diff.block_index},
                    )

            report = aggregator.build(
                reference_sync=ref_sync,
                comparison_sync=cmp_sync,
                noise_floor_db=noise_floor,
            )

        totals = report.totals
        logger.info(
            "compared %d blocks, %d with differences (%d missing, %d extra, %d amplitude)",
            totals.compared_blocks,
            totals.differing_blocks,
            totals.missing,
            totals.extra,
            totals.amplitude,
            extra={"duration_ms": int((time.monotonic() - started) * 1000)},
        )
        return report

    def _place(self, synchronizer: Synchronizer, sync: SyncResult, signal: Signal, role: str) -> List[Block]:
        blocks = place_blocks(synchronizer.timeline, sync)
        for block in blocks:
            if block.start < 0 or block.end > signal.frames:
                raise SignalTruncated(role, block.index, block.start, block.end, signal.frames)
        return blocks

    def _noise_floor(self, analyzer: SpectralAnalyzer, reference: Signal, blocks: List[Block]) -> Optional[float]:
        if self.config.ignore_floor:
            return None
        silence = next((b for b in blocks if b.kind is BlockKind.SILENCE), None)
        if silence is None:
            return None
        floor = silence_noise_floor_db(analyzer.analyze(reference, silence))
        if floor is not None:
            logger.info("reference noise floor %.2f dBFS (block %d)", floor, silence.index)
        return floor


def compare_signals(
    reference: Signal,
    comparison: Signal,
    catalog: BlockTypeCatalog,
    config: Optional[RunConfig] = None,
) -> DifferenceReport:
    return ComparisonEngine(config or RunConfig(), catalog).run(reference, comparison)
