"""Validation and pricing of AI-proposed parts lists.

Each part is resolved independently against a pricing authority; the lookups
run concurrently and are joined before results are returned, so validation
takes about as long as the slowest single lookup.

Resolution Policy
-----------------
==============================  ==================  =====================
Outcome                         availability        real_price
==============================  ==================  =====================
exact match, in stock           Available           authority price
exact match, limited stock      Rare                authority price
no match, substitute accepted   Check Alternatives  substitute price
no match, no substitute         Check Alternatives  AI estimate
lookup failed                   Check Alternatives  AI estimate
==============================  ==================  =====================

A failed lookup only ever affects its own part.  Output order and length
always match the input, and ``quantity`` / ``piece_name`` are passed through
unchanged.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from .config import BrickworksConfig
from .models import Availability, Part, ValidatedPart
from .pricing import (
    CatalogEntry,
    PricingAuthority,
    StockLevel,
    SubstitutePolicy,
    build_pricing_authority,
    same_category_substitute,
)

logger = logging.getLogger(__name__)

RARE_NOTE = "Limited stock at the supplier; expect a longer wait or a higher price."
NO_MATCH_NOTE = "No catalog match found. Price is the AI estimate, not a verified price."
LOOKUP_FAILED_NOTE = "Price lookup failed. Price is the AI estimate, not a verified price."


def _part_fields(part: Part) -> dict:
    return part.model_dump(include=set(Part.model_fields))


class PartsValidator:
    """Resolves parts against a pricing authority.

    Args:
        authority: Source of prices and stock signals.
        catalog_url_template: Lookup reference template; ``{piece_id}`` is
            substituted with the resolved part's identifier.
        substitute_policy: Chooses a substitute among the authority's
            candidates, or ``None`` to reject them all.
    """

    def __init__(
        self,
        authority: PricingAuthority,
        catalog_url_template: str,
        substitute_policy: SubstitutePolicy | None = None,
    ) -> None:
        self.authority = authority
        self.catalog_url_template = catalog_url_template
        self.substitute_policy = substitute_policy or same_category_substitute()

    def catalog_url(self, piece_id: str) -> str:
        return self.catalog_url_template.format(piece_id=piece_id)

    async def validate(self, parts: list[Part] | tuple[Part, ...]) -> list[ValidatedPart]:
        """Validate and price every part.

        Never raises because of a pricing failure; failed parts degrade to
        estimated entries.
        """
        parts = list(parts)
        if not parts:
            return []

        logger.info(f"Validating {len(parts)} part lines")
        results = await asyncio.gather(
            *(self._resolve(part) for part in parts), return_exceptions=True
        )

        validated: list[ValidatedPart] = []
        for part, result in zip(parts, results):
            if isinstance(result, BaseException):
                logger.warning(
                    f"Pricing lookup failed for {part.piece_id} ({part.color}): {result}"
                )
                validated.append(self._estimated(part, LOOKUP_FAILED_NOTE))
            else:
                validated.append(result)

        degraded = sum(1 for v in validated if v.availability != Availability.AVAILABLE)
        logger.info(
            f"Validation complete: {len(validated) - degraded} available, {degraded} flagged"
        )
        return validated

    async def _resolve(self, part: Part) -> ValidatedPart:
        entry = await self.authority.lookup(part.piece_id, part.color)
        if entry is not None and entry.in_stock:
            return self._matched(part, entry)

        candidates = await self.authority.substitutes(part.piece_id, part.color)
        substitute = self.substitute_policy(part, candidates) if candidates else None
        if substitute is not None:
            return self._substituted(part, substitute)

        return self._estimated(part, NO_MATCH_NOTE)

    def _matched(self, part: Part, entry: CatalogEntry) -> ValidatedPart:
        rare = entry.stock == StockLevel.LIMITED
        return ValidatedPart(
            **_part_fields(part),
            real_price=entry.price,
            availability=Availability.RARE if rare else Availability.AVAILABLE,
            catalog_url=self.catalog_url(entry.piece_id),
            notes=RARE_NOTE if rare else None,
        )

    def _substituted(self, part: Part, substitute: CatalogEntry) -> ValidatedPart:
        label = " ".join(filter(None, (substitute.piece_id, substitute.name)))
        logger.info(
            f"Substituting {part.piece_id} ({part.color}) "
            f"with {substitute.piece_id} ({substitute.color})"
        )
        return ValidatedPart(
            **_part_fields(part),
            real_price=substitute.price,
            availability=Availability.CHECK_ALTERNATIVES,
            catalog_url=self.catalog_url(substitute.piece_id),
            is_alternative=True,
            notes=(
                f"Substituted with {label} ({substitute.color}) "
                f"because {part.piece_id} is unavailable. This is an approximation."
            ),
        )

    def _estimated(self, part: Part, note: str) -> ValidatedPart:
        return ValidatedPart(
            **_part_fields(part),
            real_price=part.estimated_price,
            availability=Availability.CHECK_ALTERNATIVES,
            catalog_url=self.catalog_url(part.piece_id),
            notes=note,
        )


def build_parts_validator(
    config: BrickworksConfig, client: httpx.AsyncClient | None = None
) -> PartsValidator:
    """Create a validator wired to the pricing authority the config describes."""
    return PartsValidator(
        authority=build_pricing_authority(config, client),
        catalog_url_template=config.catalog_url_template,
        substitute_policy=same_category_substitute(config.allow_color_substitutes),
    )
