"""
Market Metadata for the Meme Stock Universe

This module holds the compiled-in tables the engine runs on: the symbol
universe, default prices, per-symbol static metadata (volatility tier, hard
floor, price cap, flags) and the volatility tier ranges.

The tables are intentionally not part of the runtime settings. A deployment
that wants a different universe ships a different `meta.json`; the engine
validates it through `SymbolMeta` and falls back to these defaults.
"""
from __future__ import annotations

from typing import Dict, Literal, Optional

from loguru import logger
from pydantic import BaseModel, Field, ValidationError, model_validator

VolatilityTier = Literal["low", "medium", "high", "extreme"]

# Reserved key of the "last event" display slot inside a price-state document.
LAST_EVENT_KEY = "lastEvent"

GLOBAL_FLOOR = 0.01
DEFAULT_MAX_PRICE = 1000.0

# Half-width of the uniform draw per tier (low = +-8%, ...).
VOLATILITY_RANGES: Dict[str, float] = {
    "low": 0.08,
    "medium": 0.15,
    "high": 0.25,
    "extreme": 0.45,
}

SYMBOLS = (
    "SKIBI", "SUS", "SAHUR", "LABUB", "OHIO", "RIZZL", "GYATT", "FRIED",
    "SIGMA", "TRALA", "CROCO", "FANUM", "CAPPU", "BANANI", "LARILA",
)

DEFAULT_PRICES: Dict[str, float] = {
    "SKIBI": 0.75,
    "SUS": 0.20,
    "SAHUR": 1.10,
    "LABUB": 4.50,
    "OHIO": 1.25,
    "RIZZL": 0.35,
    "GYATT": 0.15,
    "FRIED": 0.10,
    "SIGMA": 5.00,
    "TRALA": 0.65,
    "CROCO": 0.45,
    "FANUM": 0.30,
    "CAPPU": 2.75,
    "BANANI": 0.40,
    "LARILA": 3.25,
}

LAUNCH_EVENT_TEXT = "🚀 Italian Meme Stock Exchange launched! 15 premium brainrot stocks now trading!"


class SymbolMeta(BaseModel):
    """Static per-symbol metadata (the `meta.json` shape)."""
    volatility: VolatilityTier = "medium"
    italian: bool = True
    core_italian: bool = Field(False, alias="coreItalian")
    name: Optional[str] = None
    italian_name: Optional[str] = Field(None, alias="italianName")
    special_power: Optional[str] = Field(None, alias="specialPower")
    description: Optional[str] = None
    minimum_price: Optional[float] = Field(None, alias="minimumPrice", gt=0)
    max_price: float = Field(DEFAULT_MAX_PRICE, alias="maxPrice", gt=0)

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def floor_below_cap(self):
        if self.minimum_price is not None and self.minimum_price >= self.max_price:
            raise ValueError(f"minimumPrice {self.minimum_price} must be below maxPrice {self.max_price}")
        return self

    @property
    def floor(self) -> float:
        return max(GLOBAL_FLOOR, self.minimum_price or 0.0)


_RAW_META: Dict[str, Dict] = {
    "SKIBI": {"volatility": "extreme", "name": "Skibidi Toilet", "italianName": "Gabibbi Toiletto",
              "specialPower": "pasta_hours", "description": "Gains +30% during pasta-eating hours", "maxPrice": 750},
    "SUS": {"volatility": "high", "name": "Among Us", "italianName": "Tra-I-Nostri",
            "specialPower": "imposter_panic", "description": "Imposter reports cause -20% panic dumps", "maxPrice": 350},
    "SAHUR": {"volatility": "extreme", "name": "Tun Tun Sahur", "italianName": "Tamburello Mistico",
              "specialPower": "pizza_emoji", "description": "+15% when pizza emojis appear", "maxPrice": 200},
    "LABUB": {"volatility": "low", "name": "Labubu", "italianName": "Mostriciattolo",
              "specialPower": "sunday_immunity", "description": "Immune to market crashes on Sundays", "maxPrice": 600},
    "OHIO": {"volatility": "high", "name": "Ohio Final Boss", "italianName": "Caporetto Finale",
             "specialPower": "random_steal", "description": "Randomly steals 5% from other stocks", "maxPrice": 800},
    "RIZZL": {"volatility": "medium", "name": "Rizzler", "italianName": "Casanova",
              "specialPower": "romance_boost", "description": "+25% when romance novels are mentioned", "maxPrice": 400},
    "GYATT": {"volatility": "extreme", "name": "Gyatt", "italianName": "Culone",
              "specialPower": "beach_hours", "description": "Volatility doubles during beach hours", "maxPrice": 150},
    "FRIED": {"volatility": "high", "name": "Deep Fryer", "italianName": "Friggitrice",
              "specialPower": "oil_shortage", "description": "+40% during olive oil shortage events", "maxPrice": 100},
    "SIGMA": {"volatility": "low", "name": "Sigma Male", "italianName": "Machio",
              "specialPower": "bear_flex", "description": "Flexes on bears during market dips", "maxPrice": 900},
    "TRALA": {"volatility": "medium", "name": "Tralalero Tralala", "italianName": "Tralalero Tralala",
              "specialPower": "sharknado", "description": "3-legged shark in Nike sneakers, +50% during sharknado events",
              "coreItalian": True, "maxPrice": 180},
    "CROCO": {"volatility": "extreme", "name": "Bombardiro Crocodilo", "italianName": "Bombardiro Crocodilo",
              "specialPower": "random_nuke", "description": "Explosive reptile, randomly nukes another stock (-100%)",
              "coreItalian": True, "maxPrice": 220},
    "FANUM": {"volatility": "medium", "name": "Fanum Tax", "italianName": "Tassa Nonna",
              "specialPower": "weekly_tax", "description": "Steals 10% from portfolios weekly", "maxPrice": 300},
    "CAPPU": {"volatility": "medium", "name": "Ballerina Cappuccina", "italianName": "Ballerina Cappuccina",
              "specialPower": "espresso_shortage", "description": "Coffee-headed dancer, +20% during espresso shortages",
              "coreItalian": True, "maxPrice": 450},
    "BANANI": {"volatility": "low", "name": "Chimpanzini Bananini", "italianName": "Chimpanzini Bananini",
               "specialPower": "price_floor", "description": "Invincible ape, cannot drop below $0.20",
               "coreItalian": True, "minimumPrice": 0.20, "maxPrice": 65},
    "LARILA": {"volatility": "high", "name": "Lirili Larila", "italianName": "Lirili Larila",
               "specialPower": "time_freeze", "description": "Time-controlling cactus-elephant, freezes other stocks hourly",
               "coreItalian": True, "maxPrice": 550},
}


def default_meta() -> Dict[str, SymbolMeta]:
    return {sym: SymbolMeta.model_validate(raw) for sym, raw in _RAW_META.items()}


def default_market() -> Dict[str, object]:
    """Fresh price-state document with launch prices and the launch text."""
    doc: Dict[str, object] = {
        sym: {"price": px, "lastChange": 0.0, "high24h": px, "low24h": px, "volume": 0}
        for sym, px in DEFAULT_PRICES.items()
    }
    doc[LAST_EVENT_KEY] = LAUNCH_EVENT_TEXT
    return doc


def parse_meta(doc: Dict[str, Dict]) -> Dict[str, SymbolMeta]:
    """Validate a raw meta document; invalid entries fall back to the default meta
    for that symbol (or a medium-tier default for unknown symbols)."""
    defaults = default_meta()
    out: Dict[str, SymbolMeta] = {}
    for sym, raw in (doc or {}).items():
        try:
            out[sym] = SymbolMeta.model_validate(raw)
        except ValidationError as e:
            logger.warning("[meta] invalid meta for {} ({} errors); using default", sym, len(e.errors()))
            out[sym] = defaults.get(sym, SymbolMeta())
    for sym, m in defaults.items():
        out.setdefault(sym, m)
    return out


def volatility_for(tier: str) -> float:
    return VOLATILITY_RANGES.get(tier, VOLATILITY_RANGES["medium"])


__all__ = [
    "VolatilityTier", "LAST_EVENT_KEY", "GLOBAL_FLOOR", "DEFAULT_MAX_PRICE", "VOLATILITY_RANGES",
    "SYMBOLS", "DEFAULT_PRICES", "LAUNCH_EVENT_TEXT", "SymbolMeta", "default_meta", "default_market",
    "parse_meta", "volatility_for",
]
