"""Command line helpers for cardledger."""

from __future__ import annotations

import argparse
import importlib
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from .app import LedgerApp
from .config import CardLedgerConfig
from .diagnostics.checklist import run_checklist as checklist_run
from .diagnostics.economy_simulator import DrawSimulator
from .loaders import validate_catalog_file
from .validators import validate_app

console = Console()


def run_simulator() -> None:
    parser = argparse.ArgumentParser(description="cardledger pack draw simulator")
    parser.add_argument("pack_id", help="Pack identifier to simulate")
    parser.add_argument("--module", help="Python module with register(app) function")
    parser.add_argument("--draws", type=int, default=1000, help="Quantidade de pacotes a simular")
    args = parser.parse_args()

    app = _build_app(args.module)
    result = DrawSimulator(app).simulate(args.pack_id, draws=args.draws)

    table = Table(title=f"{result.draws} pacotes {args.pack_id}")
    table.add_column("Raridade")
    table.add_column("Cartas", justify="right")
    for rarity, count in sorted(result.by_rarity.items(), key=lambda item: item[0].rank):
        table.add_row(rarity.value, str(count))
    console.print(table)
    console.print(f"XP total: {result.experience}")
    console.print(f"Valor de venda total: {result.sell_value}")
    console.print(f"Cartas novas: {result.uniques}, repetidas: {result.duplicates}")
    if result.failures:
        console.print(f"[red]Sorteios que falharam: {result.failures}[/red]")


def run_checklist() -> None:
    parser = argparse.ArgumentParser(description="cardledger pack sanity checks")
    parser.add_argument("--module", help="Python module with register(app) function")
    args = parser.parse_args()

    app = _build_app(args.module)
    issues = checklist_run(app)
    if not issues:
        console.print("Nenhum problema encontrado ✅")
        return
    for issue in issues:
        style = "red" if issue.severity == "error" else "yellow"
        console.print(f"[{style}][{issue.severity.upper()}][/{style}] {issue.message}")
    sys.exit(1)


def run_validate() -> None:
    parser = argparse.ArgumentParser(description="cardledger validator")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument(
        "--catalog",
        help="Path to catalog JSON file for validation",
    )
    group.add_argument(
        "--module",
        help="Python module with register(app) function to validate",
    )
    args = parser.parse_args()

    if args.catalog:
        errors = validate_catalog_file(Path(args.catalog))
        if errors:
            console.print("Erros no catálogo:")
            for err in errors:
                console.print(f"- {err}")
            sys.exit(1)
        console.print("Catálogo válido ✅")
        return

    app = _build_app(args.module)
    issues = validate_app(app)
    if issues:
        console.print("Erros de configuração encontrados:")
        for issue in issues:
            console.print(f"- {issue}")
        sys.exit(1)
    console.print("Configuração válida ✅")


def _build_app(module: str | None) -> LedgerApp:
    app = LedgerApp(CardLedgerConfig.from_env())
    if module:
        _load_module(module, app)
    return app


def _load_module(path: str, app: LedgerApp) -> None:
    cwd = str(Path.cwd())
    if cwd not in sys.path:
        sys.path.insert(0, cwd)
    module = importlib.import_module(path)
    if hasattr(module, "register"):
        module.register(app)
    else:
        raise RuntimeError(f"Módulo {path} não possui a função register(app).")
