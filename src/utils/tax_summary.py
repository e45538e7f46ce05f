from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from domain.tax_calculator import TaxSummary
from domain.tax_event import TaxEvent

from .formatting import format_currency, format_quantity


def render_tax_events(events: Iterable[TaxEvent], *, currency: str = "") -> None:
    events_list = list(events)
    label = f" ({currency})" if currency else ""
    print(f"Disposals{label}:")
    if not events_list:
        print("  (no taxable disposals)")
        return

    rows = [
        (
            event.disposed_at.date().isoformat(),
            event.asset,
            format_quantity(event.quantity_sold),
            format_currency(event.cost_basis),
            format_currency(event.proceeds),
            format_currency(event.gain_loss),
            str(event.holding_period_days),
            "long" if event.is_long_term else "short",
        )
        for event in events_list
    ]
    headers = ("Date", "Asset", "Quantity", "Cost basis", "Proceeds", "Gain/loss", "Days", "Term")
    widths = [max(len(header), max(len(row[idx]) for row in rows)) for idx, header in enumerate(headers)]

    header = " ".join(
        f"{text:<{width}}" if idx < 2 else f"{text:>{width}}" for idx, (text, width) in enumerate(zip(headers, widths))
    )
    lines = [header, "-" * len(header)]
    for row in rows:
        lines.append(
            " ".join(
                f"{text:<{width}}" if idx < 2 else f"{text:>{width}}" for idx, (text, width) in enumerate(zip(row, widths))
            )
        )
    print("\n".join(lines))


def render_tax_summary(summary: TaxSummary) -> None:
    currency = summary.currency or ""
    print(f"Tax year {summary.tax_year} ({summary.jurisdiction}), {summary.event_count} disposal(s):")
    rows: list[tuple[str, str]] = [
        ("Total gains", _money(summary.total_gains, currency)),
        ("Total losses", _money(summary.total_losses, currency)),
        ("Net gain/loss", _money(summary.net_gain_loss, currency)),
        ("Short-term gains", _money(summary.short_term_gains, currency)),
        ("Short-term losses", _money(summary.short_term_losses, currency)),
        ("Long-term gains", _money(summary.long_term_gains, currency)),
        ("Long-term losses", _money(summary.long_term_losses, currency)),
    ]
    if summary.estimated_tax is not None:
        rows += [
            ("Allowance", _money(summary.allowance or Decimal(0), currency)),
            ("Taxable gains", _money(summary.taxable_gains or Decimal(0), currency)),
            ("Estimated tax", _money(summary.estimated_tax, currency)),
            ("Rate source", summary.rate_source or ""),
        ]
    else:
        rows.append(("Estimated tax", "unknown (no rate schedule)"))

    label_width = max(len(label) for label, _ in rows)
    for label, value in rows:
        print(f"  {label:<{label_width}}  {value}")

    if summary.diagnostics:
        print(f"Diagnostics ({len(summary.diagnostics)}):")
        for diagnostic in summary.diagnostics:
            print(f"  [{diagnostic.kind}] {diagnostic.message}")


def _money(value: Decimal, currency: str) -> str:
    amount = format_currency(value)
    return f"{amount} {currency}" if currency else amount
