"""Automated checks on whether each pack can actually be filled."""

from __future__ import annotations

from dataclasses import dataclass

from ..app import LedgerApp
from ..domain.cards import CatalogSummary


@dataclass(slots=True)
class ChecklistIssue:
    severity: str
    message: str


def run_checklist(app: LedgerApp) -> list[ChecklistIssue]:
    issues: list[ChecklistIssue] = []
    packs = list(app.catalog.packs.iter_packs())
    if not packs:
        issues.append(ChecklistIssue("error", "Nenhum pacote registrado."))
    if not list(app.catalog.cards.iter_cards()):
        issues.append(ChecklistIssue("error", "Nenhuma carta registrada no catálogo."))

    for pack in packs:
        pool = app.catalog.cards.pool_for(pack)
        if not pool:
            issues.append(
                ChecklistIssue("error", f"Pacote {pack.pack_id} não tem cartas elegíveis.")
            )
            continue

        summary = CatalogSummary.of(pool)
        minimum = pack.guaranteed_min_rarity
        if minimum is not None and pack.guaranteed_count and not summary.at_least(minimum):
            issues.append(
                ChecklistIssue(
                    "error",
                    f"Pacote {pack.pack_id} garante {minimum.value}, mas o pool não tem cartas "
                    "dessa raridade ou superior.",
                )
            )

        if len(pool) < pack.cards_count:
            issues.append(
                ChecklistIssue(
                    "warning",
                    f"Pacote {pack.pack_id} sorteia {pack.cards_count} cartas com apenas "
                    f"{len(pool)} no pool; haverá repetições no mesmo pacote.",
                )
            )

        missing = [
            rarity.value
            for rarity, weight in pack.rarity_weights.items()
            if weight > 0 and not summary.by_rarity.get(rarity)
        ]
        if missing:
            issues.append(
                ChecklistIssue(
                    "warning",
                    f"Pacote {pack.pack_id} tem peso para {', '.join(sorted(missing))} "
                    "sem cartas correspondentes.",
                )
            )

    return issues
