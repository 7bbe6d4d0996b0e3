"""Load catalog cards and store packs from JSON definitions."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Sequence, TYPE_CHECKING

from ..domain.cards import Attack, Battlegear, Card, CardType, Creature, Location, Mugic, Rarity
from ..domain.economy import Currency
from ..domain.packs import PackDefinition, PriceOption

if TYPE_CHECKING:
    from ..app import LedgerApp


_TRIBE_FIELDS = {"location": "tribes", "mugic": "tribes", "battlegear": "allowedTribes"}


@dataclass(slots=True)
class CatalogDefinition:
    cards: Sequence[Card]
    packs: Sequence[PackDefinition]


def load_catalog_from_json(app: "LedgerApp", path: str | Path) -> CatalogDefinition:
    """Load cards and packs from a JSON file and register them on the app."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    definition = parse_catalog_dict(data)
    app.catalog.extend(cards=definition.cards, packs=definition.packs)
    return definition


def parse_catalog_dict(data: dict[str, Any]) -> CatalogDefinition:
    """Parse a JSON dict (already decoded) into domain objects."""
    errors = validate_catalog_dict(data)
    if errors:
        raise ValueError(_format_errors("Catalog validation failed", errors))
    cards = tuple(parse_card(entry) for entry in data.get("cards", []))
    packs = tuple(parse_pack(entry) for entry in data.get("packs", []))
    return CatalogDefinition(cards=cards, packs=packs)


def parse_card(entry: dict[str, Any]) -> Card:
    card_type = CardType(entry["type"])
    common = {
        "card_id": entry["id"],
        "name": entry["name"],
        "rarity": Rarity(entry["rarity"]),
        "image_ref": entry.get("imageRef"),
    }
    if card_type is CardType.CREATURE:
        return Creature(tribe=entry.get("tribe"), **common)
    if card_type is CardType.LOCATION:
        return Location(tribes=tuple(entry.get("tribes", ())), **common)
    if card_type is CardType.MUGIC:
        return Mugic(tribes=tuple(entry.get("tribes", ())), **common)
    if card_type is CardType.BATTLEGEAR:
        return Battlegear(allowed_tribes=tuple(entry.get("allowedTribes", ())), **common)
    return Attack(**common)


def parse_pack(entry: dict[str, Any]) -> PackDefinition:
    options = tuple(
        PriceOption(Currency(option["currency"]), int(option["price"]))
        for option in entry.get("priceOptions", ())
    )
    currency = Currency(entry["currency"]) if "currency" in entry else options[0].currency
    price = int(entry["price"]) if "price" in entry else options[0].price
    guaranteed = entry.get("guaranteedMinRarity")
    return PackDefinition(
        pack_id=entry["id"],
        name=entry.get("name", entry["id"]),
        description=entry.get("description", ""),
        currency=currency,
        price=price,
        cards_count=int(entry["cardsCount"]),
        card_types=frozenset(CardType(value) for value in entry["cardTypes"]),
        rarity_weights={Rarity(k): int(v) for k, v in entry.get("rarityWeights", {}).items()},
        tribe_filter=entry.get("tribeFilter"),
        guaranteed_min_rarity=Rarity(guaranteed) if guaranteed else None,
        guaranteed_count=int(entry.get("guaranteedCount", 0)),
        daily_limit=entry.get("dailyLimit"),
        weekly_limit=entry.get("weeklyLimit"),
        price_options=options,
        allowed_tribes=tuple(entry.get("allowedTribes", ())),
        tribe_weights={str(k): int(v) for k, v in entry.get("tribeWeights", {}).items()},
        image_ref=entry.get("imageRef"),
    )


def validate_catalog_file(path: str | Path) -> list[str]:
    """Validate catalog JSON file and return a list of errors."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return validate_catalog_dict(data)


def validate_catalog_dict(data: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    card_types = {item.value for item in CardType}
    rarities = {item.value for item in Rarity}
    currencies = {item.value for item in Currency}

    cards_raw = data.get("cards")
    if not isinstance(cards_raw, list) or not cards_raw:
        errors.append("Catalog must contain non-empty 'cards' array.")
    else:
        seen: set[tuple[str, str]] = set()
        for idx, entry in enumerate(cards_raw, start=1):
            if not isinstance(entry, dict):
                errors.append(f"Card #{idx} must be an object.")
                continue
            card_id = entry.get("id")
            if not isinstance(card_id, str) or not card_id.strip():
                errors.append(f"Card #{idx} must define non-empty 'id'.")
                continue
            card_type = entry.get("type")
            if card_type not in card_types:
                errors.append(f"Card '{card_id}' has invalid type '{card_type}'.")
                continue
            if (card_type, card_id) in seen:
                errors.append(f"Card '{card_type}:{card_id}' defined multiple times.")
            seen.add((card_type, card_id))

            name = entry.get("name")
            if not isinstance(name, str) or not name.strip():
                errors.append(f"Card '{card_id}' must define non-empty 'name'.")
            if entry.get("rarity") not in rarities:
                errors.append(f"Card '{card_id}' has invalid rarity '{entry.get('rarity')}'.")

            tribe_field = _TRIBE_FIELDS.get(card_type)
            if card_type == "creature":
                tribe = entry.get("tribe")
                if tribe is not None and (not isinstance(tribe, str) or not tribe.strip()):
                    errors.append(f"Card '{card_id}' 'tribe' must be a non-empty string.")
            elif tribe_field and not _is_str_list(entry.get(tribe_field, [])):
                errors.append(f"Card '{card_id}' '{tribe_field}' must be an array of strings.")

            image_ref = entry.get("imageRef")
            if image_ref is not None and (not isinstance(image_ref, str) or not image_ref.strip()):
                errors.append(f"Card '{card_id}' imageRef must be a non-empty string.")

    packs_raw = data.get("packs", [])
    if not isinstance(packs_raw, list):
        errors.append("Catalog 'packs' must be an array.")
        return errors

    pack_ids: set[str] = set()
    for idx, entry in enumerate(packs_raw, start=1):
        if not isinstance(entry, dict):
            errors.append(f"Pack #{idx} must be an object.")
            continue
        pack_id = entry.get("id")
        if not isinstance(pack_id, str) or not pack_id.strip():
            errors.append(f"Pack #{idx} must define non-empty 'id'.")
            continue
        if pack_id in pack_ids:
            errors.append(f"Pack id '{pack_id}' defined multiple times.")
        pack_ids.add(pack_id)

        options = entry.get("priceOptions")
        if options is not None:
            if not isinstance(options, list) or not options:
                errors.append(f"Pack '{pack_id}' has invalid 'priceOptions' definition.")
            else:
                for option in options:
                    if not isinstance(option, dict) or option.get("currency") not in currencies:
                        errors.append(f"Pack '{pack_id}' priceOptions entry has invalid currency.")
                    elif not _is_positive_int(option.get("price")):
                        errors.append(f"Pack '{pack_id}' priceOptions price must be positive integer.")
        if options is None or "currency" in entry or "price" in entry:
            if entry.get("currency") not in currencies:
                errors.append(f"Pack '{pack_id}' has invalid currency '{entry.get('currency')}'.")
            if not _is_positive_int(entry.get("price")):
                errors.append(f"Pack '{pack_id}' must define positive integer 'price'.")

        if not _is_positive_int(entry.get("cardsCount")):
            errors.append(f"Pack '{pack_id}' must define positive integer 'cardsCount'.")

        types_raw = entry.get("cardTypes")
        if not isinstance(types_raw, list) or not types_raw:
            errors.append(f"Pack '{pack_id}' must define non-empty 'cardTypes' array.")
        else:
            for value in types_raw:
                if value not in card_types:
                    errors.append(f"Pack '{pack_id}' cardTypes contains invalid type '{value}'.")

        weights = entry.get("rarityWeights")
        if not isinstance(weights, dict) or not weights:
            errors.append(f"Pack '{pack_id}' must define non-empty 'rarityWeights' object.")
        else:
            for rarity_code, weight in weights.items():
                if rarity_code not in rarities:
                    errors.append(
                        f"Pack '{pack_id}' rarityWeights contains invalid rarity '{rarity_code}'."
                    )
                if not isinstance(weight, int) or isinstance(weight, bool) or weight < 0:
                    errors.append(
                        f"Pack '{pack_id}' rarityWeights for '{rarity_code}' must be non-negative integer."
                    )

        guaranteed = entry.get("guaranteedMinRarity")
        if guaranteed is not None and guaranteed not in rarities:
            errors.append(f"Pack '{pack_id}' has invalid guaranteedMinRarity '{guaranteed}'.")
        count = entry.get("guaranteedCount", 0)
        if not isinstance(count, int) or isinstance(count, bool) or count < 0:
            errors.append(f"Pack '{pack_id}' guaranteedCount must be non-negative integer.")
        elif _is_positive_int(entry.get("cardsCount")) and count > entry["cardsCount"]:
            errors.append(f"Pack '{pack_id}' guaranteedCount cannot exceed cardsCount.")

        for limit_key in ("dailyLimit", "weeklyLimit"):
            limit = entry.get(limit_key)
            if limit is not None and not _is_positive_int(limit):
                errors.append(f"Pack '{pack_id}' {limit_key} must be positive integer.")

        tribe_weights = entry.get("tribeWeights")
        if tribe_weights is not None and not isinstance(tribe_weights, dict):
            errors.append(f"Pack '{pack_id}' tribeWeights must be an object.")
        if not _is_str_list(entry.get("allowedTribes", [])):
            errors.append(f"Pack '{pack_id}' allowedTribes must be an array of strings.")

    return errors


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) and item for item in value)


def _format_errors(prefix: str, errors: Iterable[str]) -> str:
    formatted = "\n".join(f"- {err}" for err in errors)
    return f"{prefix}:\n{formatted}"
