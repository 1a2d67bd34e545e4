from listing_optimizer.libs.models import RewriteResult, ValidationReport

TITLE_MIN_LENGTH = 50
TITLE_MAX_LENGTH = 250
MIN_BULLETS = 3
DESCRIPTION_MIN_LENGTH = 200
MIN_KEYWORDS = 3


def validate_optimized_content(optimized: RewriteResult) -> ValidationReport:
    """Check the rewrite against content-quality bounds.

    Advisory only: the report lists human-readable warnings and never blocks
    persistence.
    """
    errors: list[str] = []
    title = optimized.optimized_title or ""

    if len(title) < TITLE_MIN_LENGTH:
        errors.append(f"Optimized title too short (minimum {TITLE_MIN_LENGTH} characters)")

    if len(title) > TITLE_MAX_LENGTH:
        errors.append(f"Optimized title too long (maximum {TITLE_MAX_LENGTH} characters)")

    if len(optimized.optimized_bullets or ()) < MIN_BULLETS:
        errors.append(f"Need at least {MIN_BULLETS} bullet points")

    if len(optimized.optimized_description or "") < DESCRIPTION_MIN_LENGTH:
        errors.append(f"Description too short (minimum {DESCRIPTION_MIN_LENGTH} characters)")

    if len(optimized.suggested_keywords or ()) < MIN_KEYWORDS:
        errors.append(f"Need at least {MIN_KEYWORDS} keywords")

    return ValidationReport(valid=not errors, errors=errors)
