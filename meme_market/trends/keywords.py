from __future__ import annotations

from typing import Dict, List

# Search terms per symbol; the first entry is the primary term.
SYMBOL_KEYWORDS: Dict[str, List[str]] = {
    "SKIBI": ["skibidi toilet", "skibidi", "toilet meme", "gen alpha"],
    "SUS": ["among us", "sus", "imposter", "crewmate", "emergency meeting"],
    "SAHUR": ["tun tun sahur", "sahur", "tamburello", "drumming meme"],
    "LABUB": ["labubu", "pop mart", "labubu doll", "cute monster"],
    "OHIO": ["ohio meme", "ohio final boss", "only in ohio", "ohio skibidi"],
    "RIZZL": ["rizzler", "rizz", "charisma", "ohio rizzler"],
    "GYATT": ["gyatt", "gyat meme", "thick", "kai cenat gyatt"],
    "FRIED": ["deep fryer meme", "fried", "cooking", "deep fried"],
    "SIGMA": ["sigma male", "sigma grindset", "alpha male", "patrick bateman"],
    "TRALA": ["tralalero tralala", "shark nike", "three legged shark", "italian meme"],
    "CROCO": ["bombardiro crocodilo", "crocodile meme", "croco", "italian crocodile"],
    "FANUM": ["fanum tax", "fanum", "kai cenat", "fanum meme"],
    "CAPPU": ["ballerina cappuccina", "coffee dance", "cappuccino", "italian coffee"],
    "BANANI": ["chimpanzini bananini", "monkey banana", "ape meme", "banana ape"],
    "LARILA": ["lirili larila", "cactus elephant", "time control", "italian sound"],
}

# Baseline popularity used by the search-interest fallback.
TRENDING_NOW: Dict[str, float] = {
    "skibidi": 0.02,
    "toilet": 0.015,
    "sigma": 0.018,
    "rizz": 0.025,
    "ohio": 0.02,
    "gyatt": 0.03,
    "among us": 0.01,
    "sus": 0.012,
    "labubu": 0.008,
    "fanum": 0.015,
}


def search_terms(symbol: str) -> List[str]:
    return SYMBOL_KEYWORDS.get(symbol.upper(), [symbol.lower()])


def keyword_popularity(keyword: str) -> float:
    """Sum of baseline popularity of every trending term overlapping the keyword."""
    kw = keyword.lower()
    return sum(score for trend, score in TRENDING_NOW.items() if trend in kw or kw in trend)
