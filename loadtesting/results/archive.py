"""Raw sample archive written as JSON Lines."""

import json
import logging
from pathlib import Path
from typing import List, Sequence, Union

import aiofiles

from ..core.models import RequestSample

logger = logging.getLogger(__name__)


async def export_samples(samples: Sequence[RequestSample], path: Union[str, Path]) -> Path:
    """Write one JSON object per sample; parent directories are created."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    async with aiofiles.open(target, "w", encoding="utf-8") as f:
        for sample in samples:
            await f.write(json.dumps(sample.to_dict(), sort_keys=True) + "\n")

    logger.info(f"Archived {len(samples)} samples to {target}")
    return target


async def load_samples(path: Union[str, Path]) -> List[RequestSample]:
    """Read samples back from an archive."""
    samples = []
    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        async for line in f:
            line = line.strip()
            if line:
                samples.append(RequestSample(**json.loads(line)))
    return samples
