"""Pricing and availability authorities.

A pricing authority answers two questions about a ``(piece_id, color)``
pair: what is the exact catalog entry, and which entries could stand in for
it.  Authorities are best-effort; any failure is raised as
:class:`PricingLookupError` and the parts validator degrades that single part.

Authorities
-----------
CatalogPricingAuthority
    In-memory catalog.  Ships with a small default catalog of common parts and
    is used whenever no pricing service is configured.
HttpPricingAuthority
    JSON-over-HTTP pricing service reached with ``httpx``::

        GET {base_url}/items/{piece_id}?color=Red
        -> {"pieceId": "3001", "name": "Brick 2 x 4", "color": "Red",
            "price": 0.14, "stock": "in_stock", "category": "brick-2x4"}

        GET {base_url}/substitutes/{piece_id}?color=Red
        -> {"items": [ ...same shape... ]}

    ``404`` on the item route means "not in the catalog".

Substitute Policies
-------------------
Which candidate counts as an acceptable substitute is a policy, passed to the
validator as a callable.  :func:`same_category_substitute` is the default.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from .config import BrickworksConfig
from .errors import PricingLookupError
from .models import Part

logger = logging.getLogger(__name__)


class StockLevel(str, Enum):
    IN_STOCK = "in_stock"
    LIMITED = "limited"
    OUT_OF_STOCK = "out_of_stock"


@dataclass(frozen=True)
class CatalogEntry:
    """One priced part at the pricing authority.

    Attributes:
        piece_id: Catalog identifier.
        color: Color name as the authority spells it.
        price: Unit price in USD.
        stock: Stock signal.
        name: Catalog part name.
        category: Nominal size/shape category used to find substitutes
            (for example ``"brick-2x4"``).
    """

    piece_id: str
    color: str
    price: float
    stock: StockLevel = StockLevel.IN_STOCK
    name: str = ""
    category: str = ""

    def __post_init__(self) -> None:
        if self.price < 0:
            raise ValueError(f"Catalog price must be non-negative, got {self.price}")

    @property
    def in_stock(self) -> bool:
        return self.stock != StockLevel.OUT_OF_STOCK


class PricingAuthority(Protocol):
    """Source of authoritative prices and stock signals."""

    async def lookup(self, piece_id: str, color: str) -> CatalogEntry | None: ...

    async def substitutes(self, piece_id: str, color: str) -> list[CatalogEntry]: ...


SubstitutePolicy = Callable[[Part, list[CatalogEntry]], "CatalogEntry | None"]


def normalize_color(color: str) -> str:
    return " ".join(color.lower().replace("_", " ").split())


def same_category_substitute(allow_color_change: bool = False) -> SubstitutePolicy:
    """Build the default substitute policy.

    The cheapest in-stock candidate in the requested color wins.  When
    ``allow_color_change`` is set and no candidate matches the color, the
    cheapest in-stock candidate of any color is used instead.
    """

    def policy(part: Part, candidates: list[CatalogEntry]) -> CatalogEntry | None:
        in_stock = [c for c in candidates if c.in_stock]
        wanted = normalize_color(part.color)
        same_color = [c for c in in_stock if normalize_color(c.color) == wanted]
        pool = same_color or (in_stock if allow_color_change else [])
        if not pool:
            return None
        return min(pool, key=lambda c: c.price)

    return policy


# ---------------------------------------------------------------------------
# In-memory catalog.
# ---------------------------------------------------------------------------


def _entries(
    piece_id: str, name: str, category: str, prices: dict[str, tuple[float, StockLevel]]
) -> list[CatalogEntry]:
    return [
        CatalogEntry(piece_id, color, price, stock, name, category)
        for color, (price, stock) in prices.items()
    ]


_IN = StockLevel.IN_STOCK
_LIMITED = StockLevel.LIMITED
_OUT = StockLevel.OUT_OF_STOCK

DEFAULT_CATALOG: list[CatalogEntry] = [
    *_entries("3001", "Brick 2 x 4", "brick-2x4", {
        "Red": (0.14, _IN), "Blue": (0.15, _IN), "Yellow": (0.15, _IN),
        "White": (0.12, _IN), "Black": (0.13, _IN), "Tan": (0.19, _LIMITED),
    }),
    *_entries("3002", "Brick 2 x 3", "brick-2x3", {
        "Red": (0.11, _IN), "Blue": (0.12, _IN), "White": (0.10, _IN), "Black": (0.11, _IN),
    }),
    *_entries("3003", "Brick 2 x 2", "brick-2x2", {
        "Red": (0.08, _IN), "Blue": (0.08, _IN), "Yellow": (0.09, _IN),
        "White": (0.07, _IN), "Black": (0.08, _IN), "Dark Orange": (0.35, _LIMITED),
    }),
    *_entries("3004", "Brick 1 x 2", "brick-1x2", {
        "Red": (0.05, _IN), "White": (0.04, _IN), "Black": (0.05, _IN), "Tan": (0.06, _IN),
    }),
    *_entries("3005", "Brick 1 x 1", "brick-1x1", {
        "Red": (0.04, _IN), "White": (0.03, _IN), "Trans-Clear": (0.09, _IN),
    }),
    *_entries("3010", "Brick 1 x 4", "brick-1x4", {
        "Red": (0.09, _IN), "White": (0.08, _IN), "Reddish Brown": (0.12, _IN),
    }),
    *_entries("3020", "Plate 2 x 4", "plate-2x4", {
        "Green": (0.09, _IN), "Dark Bluish Gray": (0.08, _IN), "White": (0.08, _IN),
    }),
    *_entries("3022", "Plate 2 x 2", "plate-2x2", {
        "Green": (0.05, _IN), "Light Bluish Gray": (0.05, _IN), "Black": (0.05, _IN),
    }),
    *_entries("3023", "Plate 1 x 2", "plate-1x2", {
        "Black": (0.03, _IN), "White": (0.03, _IN), "Sand Green": (0.22, _LIMITED),
    }),
    *_entries("3024", "Plate 1 x 1", "plate-1x1", {
        "Black": (0.02, _IN), "Trans-Clear": (0.04, _IN), "Pearl Gold": (0.31, _LIMITED),
    }),
    *_entries("3069b", "Tile 1 x 2", "tile-1x2", {
        "Black": (0.05, _IN), "White": (0.05, _IN), "Light Bluish Gray": (0.05, _IN),
    }),
    *_entries("3039", "Slope 45 2 x 2", "slope-45-2x2", {
        "Red": (0.10, _IN), "Dark Bluish Gray": (0.10, _IN), "Sand Blue": (0.45, _OUT),
    }),
    *_entries("3040", "Slope 45 2 x 1", "slope-45-2x2", {
        "Red": (0.07, _IN), "Sand Blue": (0.28, _LIMITED),
    }),
    *_entries("3062b", "Brick Round 1 x 1", "brick-round-1x1", {
        "Trans-Clear": (0.06, _IN), "Yellow": (0.06, _IN),
    }),
    *_entries("60592", "Window 1 x 2 x 2", "window-1x2x2", {
        "White": (0.18, _IN),
    }),
    *_entries("3001old", "Brick 2 x 4 (old mold)", "brick-2x4", {
        "Red": (0.22, _LIMITED),
    }),
]


class CatalogPricingAuthority:
    """Pricing authority backed by an in-memory list of catalog entries."""

    def __init__(self, entries: Iterable[CatalogEntry] | None = None) -> None:
        self._entries: list[CatalogEntry] = list(DEFAULT_CATALOG if entries is None else entries)
        self._by_key: dict[tuple[str, str], CatalogEntry] = {
            (e.piece_id.lower(), normalize_color(e.color)): e for e in self._entries
        }
        logger.info(f"Initialized CatalogPricingAuthority with {len(self._entries)} entries")

    def __len__(self) -> int:
        return len(self._entries)

    async def lookup(self, piece_id: str, color: str) -> CatalogEntry | None:
        return self._by_key.get((piece_id.strip().lower(), normalize_color(color)))

    async def substitutes(self, piece_id: str, color: str) -> list[CatalogEntry]:
        key_id = piece_id.strip().lower()
        categories = {
            e.category for e in self._entries if e.piece_id.lower() == key_id and e.category
        }
        if not categories:
            return []
        wanted = normalize_color(color)
        return [
            e
            for e in self._entries
            if e.category in categories
            and not (e.piece_id.lower() == key_id and normalize_color(e.color) == wanted)
        ]


# ---------------------------------------------------------------------------
# HTTP pricing service.
# ---------------------------------------------------------------------------


def _entry_from_json(item: Any) -> CatalogEntry:
    if not isinstance(item, dict):
        raise PricingLookupError(f"Unexpected pricing payload: {item!r}")
    try:
        return CatalogEntry(
            piece_id=str(item.get("pieceId") or item["piece_id"]),
            color=str(item["color"]),
            price=float(item["price"]),
            stock=StockLevel(item.get("stock", StockLevel.IN_STOCK.value)),
            name=str(item.get("name", "")),
            category=str(item.get("category", "")),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise PricingLookupError(f"Malformed pricing entry: {e}") from e


class HttpPricingAuthority:
    """Pricing authority reached over HTTP.

    The caller owns the ``httpx.AsyncClient`` and closes it.
    """

    def __init__(self, base_url: str, client: httpx.AsyncClient) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client

    async def _get(self, path: str, color: str) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            return await self._client.get(url, params={"color": color})
        except httpx.TimeoutException as e:
            raise PricingLookupError(f"Pricing lookup timed out: {url}") from e
        except httpx.RequestError as e:
            raise PricingLookupError(f"Pricing service unreachable: {e}") from e

    async def lookup(self, piece_id: str, color: str) -> CatalogEntry | None:
        response = await self._get(f"/items/{quote(piece_id, safe='')}", color)
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise PricingLookupError(
                f"Pricing lookup for {piece_id} failed with HTTP {response.status_code}"
            )
        return _entry_from_json(response.json())

    async def substitutes(self, piece_id: str, color: str) -> list[CatalogEntry]:
        response = await self._get(f"/substitutes/{quote(piece_id, safe='')}", color)
        if response.status_code == 404:
            return []
        if response.status_code >= 400:
            raise PricingLookupError(
                f"Substitute lookup for {piece_id} failed with HTTP {response.status_code}"
            )
        payload = response.json()
        items = payload.get("items", []) if isinstance(payload, dict) else payload
        return [_entry_from_json(item) for item in items or []]


def build_pricing_authority(
    config: BrickworksConfig, client: httpx.AsyncClient | None = None
) -> CatalogPricingAuthority | HttpPricingAuthority:
    """Pick the pricing authority described by the configuration.

    Args:
        config: Application configuration.
        client: HTTP client to use when a pricing service is configured.  One
            is created with ``config.pricing_timeout`` when omitted.
    """
    if config.pricing_base_url:
        if client is None:
            client = httpx.AsyncClient(timeout=config.pricing_timeout)
        logger.info(f"Using HTTP pricing authority at {config.pricing_base_url}")
        return HttpPricingAuthority(config.pricing_base_url, client)
    logger.info("No pricing service configured, using bundled catalog")
    return CatalogPricingAuthority()
