"""Issue code batches against the code store."""
import asyncio
import dataclasses
import logging
import secrets
from datetime import datetime
from typing import List, Optional, Tuple

from storage.database import CodeDatabase
from utils.code_generator import GeneratorOptions, generate_codes
from utils.errors import CodeGenerationError

logger = logging.getLogger(__name__)


def new_batch_id() -> str:
    """Batch IDs sort by creation time, e.g. "20250114_093012_a1b2c3"."""
    return f"{datetime.now().strftime('%Y%m%d_%H%M%S')}_{secrets.token_hex(3)}"


async def issue_codes(
    database: CodeDatabase,
    template: str,
    quantity: int,
    options: Optional[GeneratorOptions] = None
) -> Tuple[str, List[str]]:
    """
    Generate a batch that avoids every code already stored for the template.

    Args:
        database: Code store, read for existing codes and written with the batch
        template: Code template
        quantity: Number of codes to issue
        options: Generator options (its existing_codes_loader is replaced)

    Returns:
        Tuple of (batch_id, codes)

    Raises:
        CodeGenerationError: If the generator cannot produce the batch, or
            another writer stored some of its codes first
    """
    async with database.issue_lock:
        existing = await database.get_codes(template)
        options = dataclasses.replace(
            options or GeneratorOptions(),
            existing_codes_loader=lambda _template: existing
        )

        # Generation is CPU bound, keep the event loop free
        codes = await asyncio.to_thread(generate_codes, template, quantity, options)

        batch_id = new_batch_id()
        saved = await database.save_codes(template, codes, batch_id)
        if saved != len(codes):
            # Only a writer outside this process can get here; never hand out its codes
            if saved:
                await database.delete_batch(batch_id)
            raise CodeGenerationError(
                f"{len(codes) - saved} of {len(codes)} code(s) for template {template!r} "
                f"were stored by another writer, retry the batch"
            )

    logger.info("Issued batch %s: %d code(s) for template %r", batch_id, saved, template)
    return batch_id, codes
