# /// script
# dependencies = [
#     "conduit-db",
#     "rich",
# ]
# ///

import os
from typing import Annotated

import sqlalchemy as sa
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax

import conduit
from conduit import ConduitField, Model

console = Console()


def show_step(title: str, code: str):
    """Utility to display a code snippet and its title."""
    console.print(f"\n[bold blue]>>> {title}[/bold blue]")
    syntax = Syntax(code, "python", theme="monokai", line_numbers=False)
    console.print(Panel(syntax, expand=False, border_style="dim"))


class Category(Model):
    id: Annotated[int | None, ConduitField(primary_key=True)] = None
    name: Annotated[str, ConduitField(unique=True)]


class Product(Model):
    id: Annotated[int | None, ConduitField(primary_key=True)] = None
    name: Annotated[str, ConduitField(index=True)]
    price: float
    category_id: int
    in_stock: bool = True


def run_demo():
    # Use a file-based SQLite DB for demo stability
    db_file = "demo.db"
    if os.path.exists(db_file):
        os.remove(db_file)

    console.print(
        Panel.fit(
            "[bold green]Conduit Connection Routing Demo[/bold green]",
            border_style="bold green",
        )
    )

    console.print(f"Connecting to {db_file}...")
    engine = conduit.connect(f"sqlite:///{db_file}")
    conduit.models.metadata.create_all(engine)

    products = Product.__table__
    categories = Category.__table__

    console.print("Seeding initial data...")
    category_ids = {}
    for name in ("Electronics", "Appliances", "Furniture"):
        [key] = conduit.insert(Category, sa.insert(categories).values(name=name))
        category_ids[name] = key["id"]

    data = [
        ("Laptop", 1200.0, "Electronics", True),
        ("Smartphone", 800.0, "Electronics", True),
        ("Monitor", 300.0, "Electronics", False),
        ("Coffee Maker", 80.0, "Appliances", True),
        ("Desk Chair", 250.0, "Furniture", True),
    ]
    for name, price, category, stock in data:
        conduit.insert(
            Product,
            sa.insert(products).values(
                name=name, price=price, category_id=category_ids[category], in_stock=stock
            ),
        )

    console.print("\n[bold yellow]--- Queries ---[/bold yellow]")

    show_step(
        "Structured query",
        "conduit.query(Product, sa.select(products.c.name).where(products.c.price >= 500))",
    )
    expensive = conduit.query(
        Product, sa.select(products.c.name).where(products.c.price >= 500)
    )
    console.print(f"Expensive items (>= 500): [cyan]{[p['name'] for p in expensive]}[/cyan]")

    show_step(
        "Literal SQL",
        'conduit.query(("SELECT name FROM product WHERE in_stock = ?", False))',
    )
    missing = conduit.query(("SELECT name FROM product WHERE in_stock = ?", False))
    console.print(f"Out of stock: [cyan]{[p['name'] for p in missing]}[/cyan]")

    show_step(
        "Lazy query",
        "names = conduit.reducible_query(sa.select(products.c.name), row_fn=lambda r: r['name'])\n"
        "for name in names: ...  # runs here, and again on every iteration",
    )
    names = conduit.reducible_query(sa.select(products.c.name), row_fn=lambda r: r["name"])
    console.print(f"Streamed: [cyan]{list(names)}[/cyan]")

    console.print("\n[bold yellow]--- Transactions ---[/bold yellow]")

    show_step(
        "Atomic transaction",
        "with conduit.transaction():\n"
        '    [key] = conduit.insert(Category, sa.insert(categories).values(name="Gaming"))\n'
        "    conduit.insert(Product, ...)",
    )
    with conduit.transaction():
        [key] = conduit.insert(Category, sa.insert(categories).values(name="Gaming"))
        conduit.insert(
            Product,
            sa.insert(products).values(name="RTX 5090", price=1999.99, category_id=key["id"]),
        )
    console.print("Transaction committed")

    try:
        with conduit.transaction():
            conduit.update(
                Product, sa.update(products).values(price=0.0)
            )
            raise RuntimeError("Abort!")
    except RuntimeError:
        pass
    [laptop] = conduit.query(
        Product, sa.select(products.c.price).where(products.c.name == "Laptop")
    )
    console.print(f"Laptop price after rollback: [bold green]${laptop['price']}[/bold green]")

    console.print("\n[bold yellow]--- Instrumentation ---[/bold yellow]")

    show_step(
        "Tracing and call counting",
        "with conduit.debug_count_calls(), conduit.debug():\n"
        "    conduit.delete(Product, sa.delete(products).where(products.c.in_stock == False))",
    )
    with conduit.debug_count_calls(), conduit.debug():
        conduit.delete(Product, sa.delete(products).where(products.c.in_stock == False))  # noqa

    console.print("\n[bold green]Demo Complete![/bold green]")
    conduit.disconnect()


if __name__ == "__main__":
    run_demo()
