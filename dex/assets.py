"""Asset identifier helpers shared by pools and the registry."""

import hashlib

from dex.errors import IdenticalAssets, InvalidInput


def normalize_asset(asset: str) -> str:
    """Normalize an asset identifier.

    Hex identifiers (``0x...``) are lower-cased so differently-cased
    addresses name the same asset; symbols are kept as given.

    Raises:
        InvalidInput: If asset is not a non-empty string
    """
    if not isinstance(asset, str) or not asset.strip():
        raise InvalidInput(f"Asset identifier must be a non-empty string: {asset!r}")
    asset = asset.strip()
    if asset[:2].lower() == "0x":
        return asset.lower()
    return asset


def sort_assets(asset_a: str, asset_b: str) -> tuple[str, str]:
    """Return the pair in canonical (lexicographic) order.

    Raises:
        IdenticalAssets: If both identifiers normalize to the same asset
    """
    a = normalize_asset(asset_a)
    b = normalize_asset(asset_b)
    if a == b:
        raise IdenticalAssets(f"Pair needs two distinct assets, got {a} twice")
    return (a, b) if a < b else (b, a)


def pair_id(asset_a: str, asset_b: str) -> str:
    """Deterministic pool id for an unordered pair.

    The id is ``0x`` + the first 40 hex chars of SHA-256 over the canonical
    pair, so it can be computed without a registry lookup.
    """
    first, second = sort_assets(asset_a, asset_b)
    digest = hashlib.sha256(f"dex-pair:{first}:{second}".encode()).hexdigest()
    return "0x" + digest[:40]


__all__ = ["normalize_asset", "sort_assets", "pair_id"]
