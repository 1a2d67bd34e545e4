from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class RawListing:
    """Listing text as extracted from the product page."""
    asin: str
    title: str
    bullets: Tuple[str, ...]
    description: str


@dataclass(frozen=True)
class RewriteResult:
    """Optimized listing returned by the completion service."""
    optimized_title: str
    optimized_bullets: Tuple[str, ...]
    optimized_description: str
    suggested_keywords: Tuple[str, ...]


@dataclass
class ValidationReport:
    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class OptimizationRecord:
    asin: str
    original_title: str
    original_bullets: List[str]
    original_description: str
    optimized_title: str
    optimized_bullets: List[str]
    optimized_description: str
    suggested_keywords: List[str]
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_pipeline(cls, listing: RawListing, result: RewriteResult) -> "OptimizationRecord":
        return cls(
            asin=listing.asin,
            original_title=listing.title,
            original_bullets=list(listing.bullets),
            original_description=listing.description,
            optimized_title=result.optimized_title,
            optimized_bullets=list(result.optimized_bullets),
            optimized_description=result.optimized_description,
            suggested_keywords=list(result.suggested_keywords),
        )


@dataclass
class HistoryItem:
    id: int
    asin: str
    optimized_title: str
    optimized_bullets: List[str]
    optimized_description: str
    suggested_keywords: List[str]
    created_at: Optional[datetime] = None


@dataclass
class ChangeRecord:
    """One field that differs between the original and optimized listing."""
    asin: str
    optimization_id: int
    field_name: str
    old_value: str
    new_value: str
    id: Optional[int] = None
    changed_at: Optional[datetime] = None
