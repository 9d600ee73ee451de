import json
from pathlib import Path

import click

from printapp.services.conversion import (
    convert_orders,
    list_conversion_candidates,
    route_failures_to_pending,
)
from printapp.services.master_data import master_data_summary, overwrite_master_data
from printapp.services.operations import renumber_order_operations


def _read_text(path):
    if path is None:
        return None
    return Path(path).read_text(encoding="utf-8-sig")


def register_cli(app):
    @app.cli.command("master-data-summary")
    def show_master_data_summary() -> None:
        """Print row counts for the master data tables."""
        click.echo(json.dumps(master_data_summary(), indent=2, sort_keys=True))

    @app.cli.command("import-master-data")
    @click.option("--item-routes", type=click.Path(exists=True, dir_okay=False))
    @click.option("--route-operations", type=click.Path(exists=True, dir_okay=False))
    @click.option("--operation-times", type=click.Path(exists=True, dir_okay=False))
    def import_master_data(item_routes, route_operations, operation_times) -> None:
        """Overwrite master data tables from CSV exports."""
        result = overwrite_master_data(
            item_routes_csv=_read_text(item_routes),
            route_operations_csv=_read_text(route_operations),
            operation_times_csv=_read_text(operation_times),
        )
        for table, count in sorted(result.replaced.items()):
            click.echo(f"{table}: {count} rows loaded")

    @app.cli.command("renumber-operations")
    @click.argument("order_id", type=int)
    def renumber_operations(order_id: int) -> None:
        """Rewrite an order's operation sequences to 10, 20, 30..."""
        changed = renumber_order_operations(order_id)
        click.echo(f"Order {order_id}: {changed} operations renumbered.")

    @app.cli.command("convert-pending")
    @click.option(
        "--route-failures/--keep-failures",
        default=False,
        help="Move orders that cannot be converted to the correction queue.",
    )
    def convert_pending(route_failures: bool) -> None:
        """Convert every order waiting in the conversion queue."""
        order_ids = [order.id for order in list_conversion_candidates()]
        if not order_ids:
            click.echo("No orders waiting for conversion.")
            return
        result = convert_orders(order_ids)
        summary = result.as_dict()
        click.echo(
            f"Converted {summary['converted']} orders into {summary['operations']} operations; "
            f"{len(summary['failed'])} failed, {len(summary['conflicts'])} busy."
        )
        for failure in summary["failed"]:
            click.echo(f"  {failure['order_number']}: {failure['reason']}")
        if route_failures and result.plan.failed:
            moved = route_failures_to_pending(result.plan.failed)
            click.echo(f"Moved {moved} orders to the correction queue.")
