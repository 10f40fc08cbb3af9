"""Expand a catalog into its block timeline and place it inside a recording."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from audiorev.compare.types import Block, BlockKind, BlockType, BlockTypeCatalog, SyncResult


@dataclass(frozen=True)
class TimelineEntry:
    """One block of the nominal timeline; positions are in frames from the catalog start."""

    index: int
    block_type: BlockType
    sequence: int
    position_frames: float


def expand_catalog(catalog: BlockTypeCatalog) -> List[TimelineEntry]:
    entries: List[TimelineEntry] = []
    position = 0.0
    for block_type in catalog.block_types:
        for sequence in range(block_type.count):
            entries.append(TimelineEntry(len(entries), block_type, sequence, position))
            position += block_type.frames + block_type.skip_frames
    return entries


def sync_entries(entries: List[TimelineEntry]) -> List[TimelineEntry]:
    return [e for e in entries if e.block_type.kind is BlockKind.SYNC]


def place_blocks(entries: List[TimelineEntry], sync: SyncResult) -> List[Block]:
    """Blocks of one recording, scaled by its drift ratio and shifted by its offset."""
    samples_per_frame = sync.samples_per_frame / sync.drift_ratio
    blocks: List[Block] = []
    for entry in entries:
        blocks.append(
            Block(
                index=entry.index,
                block_type=entry.block_type,
                sequence=entry.sequence,
                start=sync.offset + int(round(entry.position_frames * samples_per_frame)),
                length=int(round(entry.block_type.frames * samples_per_frame)),
                drift_ratio=sync.drift_ratio,
            )
        )
    return blocks
