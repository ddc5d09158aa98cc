"""``flask`` sub-commands for setting up and maintaining a floor database.

Usage::

    flask --app app init-db --sample
    flask --app app cleanup-queue --dry-run
    flask --app app export-labels 12
"""

import os

import click
from flask import current_app

from . import db
from .barcode import make_prefix
from .errors import OrderNotFound
from .labels import save_item_label
from .models import BarcodeScanner, Order, OrderItem, Worker
from .services import get_services
from .workflow import Station

SAMPLE_WORKERS = [
    ("Rajesh Kumar", "RK001", "Office", Station.OFFICE),
    ("Priya Sharma", "PS002", "Cutting", Station.CUTTING),
    ("Amit Singh", "AS003", "Sewing", Station.SEWING),
    ("Sunita Devi", "SD004", "Foam", Station.FOAM_CUTTING),
    ("Vikram Yadav", "VY005", "Stuffing", Station.STUFFING),
    ("Meena Patel", "MP006", "Packaging", Station.PACKAGING),
]


def seed_sample_data():
    """Workers with one scanner each at their station, and one pending order."""
    if Worker.query.count():
        return False
    for number, (name, token, dept, station) in enumerate(SAMPLE_WORKERS, start=1):
        w = Worker(name=name, token_id=token, department=dept)
        db.session.add(w); db.session.flush()
        db.session.add(BarcodeScanner(prefix=make_prefix(station, number), worker_id=w.id, station=station))

    order = Order(order_number="SO1001", customer_name="Demo Customer", contact_email="orders@example.com")
    db.session.add(order); db.session.flush()
    for i in range(1, 4):
        db.session.add(OrderItem(order_id=order.id, product_number=f"SO1001{i:02d}", description=f"Cushion {i}"))
    db.session.commit()
    return True


def register_commands(app):
    @app.cli.command("init-db")
    @click.option("--drop", is_flag=True, help="Drop existing tables first.")
    @click.option("--sample", is_flag=True, help="Seed sample workers, scanners and an order.")
    def init_db(drop, sample):
        """Create all tables."""
        if drop:
            db.drop_all()
        db.create_all()
        click.echo("Database initialized.")
        if sample:
            click.echo("Sample data created." if seed_sample_data() else "Data exists, skipped seeding.")

    @app.cli.command("cleanup-queue")
    @click.option("--days", type=int, default=None, help="Retention for printed entries.")
    @click.option("--dry-run", is_flag=True)
    def cleanup_queue(days, dry_run):
        """Remove old printed and orphaned print queue entries."""
        result = get_services().queue.cleanup(retention_days=days, dry_run=dry_run)
        verb = "Would remove" if dry_run else "Removed"
        click.echo(f"{verb} {result.old_printed} printed and {result.orphaned} orphaned entries.")

    @app.cli.command("export-labels")
    @click.argument("order_id", type=int)
    @click.option("--out", "out_dir", default=None, help="Directory for the SVG files.")
    def export_labels(order_id, out_dir):
        """Write a QR label for every item of an order."""
        order = db.session.get(Order, order_id)
        if order is None:
            raise click.ClickException(OrderNotFound(order_id).message)
        out_dir = out_dir or current_app.config.get("LABEL_DIR") or os.path.join(current_app.instance_path, "labels")
        for item in order.items:
            click.echo(save_item_label(out_dir, item))
