"""Concurrent dispatch of translatable units to the backoff translator."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Tuple

import yaml
from tqdm.asyncio import tqdm

from mdx_translator.collector import TranslatableUnit, UnitKind
from mdx_translator.translator import BackoffTranslator

logger = logging.getLogger(__name__)


@dataclass
class DispatchReport:
    total: int = 0
    changed: int = 0
    unchanged: int = 0


def finalize_front_matter(units: List[TranslatableUnit]) -> int:
    """
    Re-serialize every front-matter block whose values were translated.

    Key order is preserved and non-ASCII text is written as-is. Blocks where
    no value changed keep their original source text.

    Returns:
        int: The number of blocks rewritten.
    """
    blocks: Dict[int, TranslatableUnit] = {}
    changed_blocks = set()
    for unit in units:
        if unit.kind is not UnitKind.FRONT_MATTER:
            continue
        blocks.setdefault(id(unit.target), unit)
        if unit.data.get(unit.key) != unit.original:
            changed_blocks.add(id(unit.target))

    for block_id in changed_blocks:
        unit = blocks[block_id]
        unit.target.value = yaml.safe_dump(
            unit.data, sort_keys=False, allow_unicode=True, width=float('inf')
        ).rstrip('\n')
    return len(changed_blocks)


async def dispatch_translations(
        units: List[TranslatableUnit],
        translator: BackoffTranslator,
        *,
        stagger_seconds: float = 0.02,
        batch_size: int = 0,
        description: str = "Translating",
        show_progress: bool = True,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
) -> DispatchReport:
    """
    Translate every unit and write the results back into the tree.

    In staggered mode (``batch_size == 0``) all requests are scheduled at once
    and request ``i`` waits ``i * stagger_seconds`` before starting. In batched
    mode units are sent ``batch_size`` at a time, each batch finishing before
    the next one starts. Concurrency and rate limits are applied by the
    translator to each request attempt. Nothing is written back until all
    requests are done.

    Args:
        units: Units from the collector, in document order.
        translator: Translates one string; never raises.
        stagger_seconds: Per-index start delay in staggered mode.
        batch_size: Units per batch; 0 selects staggered mode.
        description: Progress bar label.
        show_progress: Whether to draw the progress bar.
        sleep: Awaitable used for stagger delays.

    Returns:
        DispatchReport: How many units changed and how many kept their text.
    """

    async def _translate_unit(index: int, unit: TranslatableUnit, delay: float) -> Tuple[int, str]:
        if delay > 0:
            await sleep(delay)
        return index, await translator.translate(unit.original)

    results: List[Tuple[int, str]] = []
    if batch_size > 0:
        with tqdm(total=len(units), desc=description, unit="translation", disable=not show_progress) as progress:
            for start in range(0, len(units), batch_size):
                batch = [
                    _translate_unit(index, units[index], 0)
                    for index in range(start, min(start + batch_size, len(units)))
                ]
                results.extend(await asyncio.gather(*batch))
                progress.update(len(batch))
    else:
        tasks = [
            _translate_unit(index, unit, index * stagger_seconds)
            for index, unit in enumerate(units)
        ]
        for coro in tqdm.as_completed(tasks, total=len(tasks), desc=description, unit="translation",
                                      disable=not show_progress):
            results.append(await coro)

    report = DispatchReport(total=len(units))
    for index, translated in sorted(results, key=lambda x: x[0]):
        unit = units[index]
        unit.apply(translated)
        if translated != unit.original:
            report.changed += 1
        else:
            report.unchanged += 1

    rewritten = finalize_front_matter(units)
    if rewritten:
        logger.debug(f"Re-serialized {rewritten} front-matter block(s).")
    logger.info(f"Translated {report.changed} of {report.total} items ({report.unchanged} kept their original text).")
    return report
