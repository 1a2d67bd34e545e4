"""ASIN → scrape → rewrite → validate → persist.

One call runs one sequential pipeline. Any stage error propagates unchanged
and nothing is persisted; validation warnings are logged and returned but
never stop the run.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from listing_optimizer.libs.asin import Region, parse_region, validate_asin
from listing_optimizer.libs.database import create_optimization
from listing_optimizer.libs.errors import StorageError
from listing_optimizer.libs.llm import optimize_listing
from listing_optimizer.libs.models import OptimizationRecord, RawListing, RewriteResult, ValidationReport
from listing_optimizer.libs.scraper import scrape_product
from listing_optimizer.libs.validation import validate_optimized_content

logger = logging.getLogger(__name__)


@dataclass
class OptimizationOutcome:
    id: int
    asin: str
    region: Region
    listing: RawListing
    result: RewriteResult
    validation: ValidationReport


async def run_optimization(asin_value: Any, region_value: Optional[str] = None, stream: bool = False) -> OptimizationOutcome:
    asin = validate_asin(asin_value)
    region = parse_region(region_value)

    logger.info("Fetching product from Amazon %s - ASIN: %s", region.value, asin)
    listing = await scrape_product(asin, region)

    logger.info("Optimizing listing for ASIN %s", asin)
    result = await optimize_listing(listing, stream=stream)

    validation = validate_optimized_content(result)
    if not validation.valid:
        logger.warning("Validation warnings for ASIN %s: %s", asin, validation.errors)

    record = OptimizationRecord.from_pipeline(listing, result)
    try:
        optimization_id = await create_optimization(record)
    except Exception as e:
        raise StorageError(f"Failed to save optimization for ASIN {asin}: {e}") from e

    return OptimizationOutcome(
        id=optimization_id,
        asin=asin,
        region=region,
        listing=listing,
        result=result,
        validation=validation,
    )
