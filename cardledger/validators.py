"""Validation utilities for cardledger applications."""

from __future__ import annotations

from .app import LedgerApp


def validate_app(app: LedgerApp) -> list[str]:
    """Return list of validation errors discovered in configured app."""
    errors: list[str] = []

    for card in app.catalog.cards.iter_cards():
        label = f"{card.card_type.value}:{card.card_id}"
        if not card.card_id.strip():
            errors.append("Card with empty id registered.")
        if not card.name.strip():
            errors.append(f"Card '{label}' has empty name.")

    packs = list(app.catalog.packs.iter_packs())
    if not packs:
        errors.append("No store packs registered in application.")

    for pack in packs:
        if not pack.prices():
            errors.append(f"Pack '{pack.pack_id}' has no positive price.")
        if pack.cards_count <= 0:
            errors.append(f"Pack '{pack.pack_id}' has non-positive cardsCount '{pack.cards_count}'.")
        if not pack.card_types:
            errors.append(f"Pack '{pack.pack_id}' does not allow any card type.")

        for rarity, weight in pack.rarity_weights.items():
            if weight < 0:
                errors.append(
                    f"Pack '{pack.pack_id}' rarityWeight for '{rarity.value}' cannot be negative."
                )

        if pack.guaranteed_count < 0:
            errors.append(f"Pack '{pack.pack_id}' has negative guaranteedCount.")
        if pack.guaranteed_count > pack.cards_count:
            errors.append(
                f"Pack '{pack.pack_id}' guarantees {pack.guaranteed_count} cards "
                f"but only holds {pack.cards_count}."
            )
        if pack.guaranteed_count and pack.guaranteed_min_rarity is None:
            errors.append(f"Pack '{pack.pack_id}' has guaranteedCount without guaranteedMinRarity.")

        for name, limit in (("dailyLimit", pack.daily_limit), ("weeklyLimit", pack.weekly_limit)):
            if limit is not None and limit <= 0:
                errors.append(f"Pack '{pack.pack_id}' has non-positive {name} '{limit}'.")

        tribes = set(pack.resolved_tribes())
        for tribe in pack.tribe_weights:
            if tribe not in tribes:
                errors.append(f"Pack '{pack.pack_id}' tribeWeights references unknown tribe '{tribe}'.")

    ledger = app.config.ledger
    if ledger.recent_events_limit <= 0:
        errors.append("Ledger configuration 'recent_events_limit' must be positive.")
    for name in ("storage_timeout_seconds", "lock_timeout_seconds"):
        value = getattr(ledger, name)
        if value is not None and value <= 0:
            errors.append(f"Ledger configuration '{name}' must be positive when set.")

    return errors


__all__ = ["validate_app"]
