"""Command-line interface for marketcore."""

import argparse
import json
import sys
from pathlib import Path

from . import __version__
from .errors import InvalidInputError, MarketError
from .logging_setup import configure_logging
from .market import Market
from .models import ORDER_ACTIONS, ORDER_STATUSES, ROLE_ADMIN, ROLE_SELLER, ROLE_USER, ROLES, Caller, GuestBuyer, RegisteredBuyer
from .notifications import format_amount
from .settings import Settings


def get_market(args: argparse.Namespace) -> Market:
    """Build the services, honouring --data-dir."""
    settings = Settings.from_env()
    if args.data_dir:
        settings.data_dir = Path(args.data_dir)
    return Market(settings)


def parse_cart_args(values: list[str]) -> list[dict[str, int]]:
    """Parse 'PRODUCT_ID:QUANTITY' arguments into cart lines."""
    items = []
    for value in values:
        product_part, sep, quantity_part = value.partition(":")
        if not sep:
            raise InvalidInputError(f"Invalid cart line '{value}' (expected PRODUCT_ID:QUANTITY)")
        try:
            items.append({"product_id": int(product_part), "quantity": int(quantity_part)})
        except ValueError:
            raise InvalidInputError(f"Invalid cart line '{value}' (expected integers)")
    return items


def format_order(order) -> str:
    buyer = f"buyer {order.buyer_id}" if order.buyer_id is not None else "guest"
    lines = [
        f"Order #{order.id} [{order.status}/{order.payment_status}] {buyer} "
        f"total {format_amount(order.total_amount)}"
    ]
    for item in order.items:
        lines.append(
            f"  - product {item.product_id}: {item.quantity} x {format_amount(item.unit_price)}"
        )
    return "\n".join(lines)


def cmd_init(args: argparse.Namespace) -> int:
    """Create an empty market store."""
    try:
        market = get_market(args)
        market.store.init(force=args.force)
        print(f"Initialized market store at {market.store.store_path}")
        return 0

    except MarketError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_seed(args: argparse.Namespace) -> int:
    """Create a small demo dataset: an admin, two sellers, a buyer and products."""
    try:
        market = get_market(args)
        admin = market.users.add_user("Admin", role=ROLE_ADMIN)
        farmer = market.users.add_user("Kigali Farm", role=ROLE_SELLER)
        grocer = market.users.add_user("Musanze Produce", role=ROLE_SELLER)
        buyer = market.users.add_user("Aline", role=ROLE_USER)

        market.catalog.add_product(farmer.id, "Tomatoes", price=1500, stock=50, unit="kg")
        market.catalog.add_product(farmer.id, "Avocados", price=300, stock=200, unit="piece")
        market.catalog.add_product(grocer.id, "Irish Potatoes", price=600, stock=500, unit="kg")

        print(f"Seeded users: admin={admin.id} sellers={farmer.id},{grocer.id} buyer={buyer.id}")
        print(f"Seeded {len(market.catalog.list_products())} products")
        return 0

    except MarketError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_users_add(args: argparse.Namespace) -> int:
    try:
        market = get_market(args)
        user = market.users.add_user(args.name, role=args.role, phone=args.phone)
        print(f"Added user {user.id} ({user.role}): {user.name}")
        return 0

    except MarketError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_products(args: argparse.Namespace) -> int:
    """List products and their stock."""
    try:
        market = get_market(args)
        products = market.catalog.list_products(seller_id=args.seller)

        if args.json:
            print(json.dumps([p.to_dict() for p in products], indent=2))
            return 0

        if not products:
            print("No products.")
            return 0

        for p in products:
            print(
                f"{p.id:>4}  {p.name:<24} {format_amount(p.price):>10}/{p.unit:<5} "
                f"stock {p.stock:<6} seller {p.seller_id}"
            )
        return 0

    except MarketError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_products_add(args: argparse.Namespace) -> int:
    try:
        market = get_market(args)
        product = market.catalog.add_product(
            args.seller,
            args.name,
            price=args.price,
            stock=args.stock,
            unit=args.unit,
            description=args.desc,
        )
        print(f"Added product {product.id}: {product.name} (stock {product.stock})")
        return 0

    except MarketError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_place(args: argparse.Namespace) -> int:
    """Place an order from the command line."""
    try:
        market = get_market(args)
        items = parse_cart_args(args.items)
        if args.buyer is not None:
            buyer = RegisteredBuyer(buyer_id=args.buyer)
        else:
            contact = json.loads(args.contact) if args.contact else {}
            buyer = GuestBuyer(contact=contact)

        result = market.placement.place_order(buyer, items)
        if args.json:
            print(json.dumps(result.order.to_dict(), indent=2))
        else:
            print(format_order(result.order))
            if not result.fan_out.ok:
                print("Warning: seller notification failed (order kept)", file=sys.stderr)
        return 0

    except json.JSONDecodeError as e:
        print(f"Error: --contact is not valid JSON: {e}", file=sys.stderr)
        return 1
    except MarketError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders(args: argparse.Namespace) -> int:
    """List a buyer's orders, or a seller's incoming orders."""
    try:
        market = get_market(args)
        if args.seller is not None:
            orders = market.ledger.list_seller_orders(Caller(args.seller, ROLE_SELLER))
        else:
            orders = market.ledger.list_orders(args.buyer, page=args.page, limit=args.limit).items

        if args.json:
            print(json.dumps([o.to_dict() for o in orders], indent=2))
            return 0

        if not orders:
            print("No orders.")
            return 0

        for order in orders:
            print(format_order(order))
        return 0

    except MarketError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_transition(args: argparse.Namespace) -> int:
    """Apply an action or status to an order."""
    try:
        market = get_market(args)
        caller = Caller(user_id=args.as_user, role=args.role)
        result = market.transitions.transition(
            args.order_id, caller, action=args.action, status=args.status
        )
        print(result.message)
        print(format_order(result.order))
        return 0

    except MarketError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_messages(args: argparse.Namespace) -> int:
    """Show a user's inbox and outbox, newest first."""
    try:
        market = get_market(args)
        messages = market.channel.list_for(args.user)

        if args.json:
            print(json.dumps([m.to_dict() for m in messages], indent=2))
            return 0

        if not messages:
            print("No messages.")
            return 0

        for m in messages:
            flag = " " if m.is_read else "*"
            sender = m.sender_id if m.sender_id is not None else "guest"
            order = f" order #{m.order_id}" if m.order_id is not None else ""
            print(f"{flag} #{m.id} from {sender} to {m.receiver_id}{order} at {m.created_at}")
            for line in m.content.splitlines():
                print(f"    {line}")
        return 0

    except MarketError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        market = get_market(args)
        if not market.store.exists():
            print("Warning: market store not initialized. Run 'marketcore init' first.", file=sys.stderr)
            print("Starting server anyway...", file=sys.stderr)

        print("Starting marketcore API server...")
        print(f"Store: {market.store.store_path}")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        # uvicorn needs the app as an import string for reload or multiple workers
        app_target = "marketcore.api:app" if args.reload or args.workers > 1 else None
        if app_target is None:
            from .api import app
            app_target = app

        uvicorn.run(
            app_target,
            host=args.host,
            port=args.port,
            reload=args.reload,
            workers=args.workers,
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="marketcore",
        description="Marketplace order lifecycle and inventory core.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--data-dir", help="Store directory (default: $MARKETCORE_DATA_DIR or ./data)"
    )
    parser.add_argument(
        "--log-level", default=None, help="Logging level (default: $MARKETCORE_LOG_LEVEL or INFO)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # init
    init_parser = subparsers.add_parser("init", help="Create an empty market store")
    init_parser.add_argument(
        "--force", "-f", action="store_true", help="Overwrite existing store"
    )

    # seed
    subparsers.add_parser("seed", help="Load a small demo dataset")

    # users
    users_parser = subparsers.add_parser("users", help="Manage users")
    users_subparsers = users_parser.add_subparsers(dest="users_command")
    users_add_parser = users_subparsers.add_parser("add", help="Add a user")
    users_add_parser.add_argument("name", help="Display name")
    users_add_parser.add_argument("--role", choices=ROLES, default=ROLE_USER)
    users_add_parser.add_argument("--phone", help="Phone number")

    # products
    products_parser = subparsers.add_parser("products", help="List or add products")
    products_parser.add_argument("--seller", type=int, help="Only this seller's products")
    products_parser.add_argument("--json", action="store_true", help="Output as JSON")
    products_subparsers = products_parser.add_subparsers(dest="products_command")
    products_add_parser = products_subparsers.add_parser("add", help="Add a product")
    products_add_parser.add_argument("name", help="Product name")
    products_add_parser.add_argument("--seller", type=int, required=True, help="Owning seller ID")
    products_add_parser.add_argument("--price", type=float, required=True)
    products_add_parser.add_argument("--stock", type=int, default=0)
    products_add_parser.add_argument("--unit", default="kg")
    products_add_parser.add_argument("--desc", help="Description")

    # place
    place_parser = subparsers.add_parser("place", help="Place an order")
    place_parser.add_argument("items", nargs="+", help="Cart lines as PRODUCT_ID:QUANTITY")
    place_parser.add_argument("--buyer", type=int, help="Buyer user ID (omit for a guest order)")
    place_parser.add_argument("--contact", help="Guest contact details as JSON")
    place_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # orders
    orders_parser = subparsers.add_parser("orders", help="List orders")
    who = orders_parser.add_mutually_exclusive_group(required=True)
    who.add_argument("--buyer", type=int, help="Buyer user ID")
    who.add_argument("--seller", type=int, help="Seller user ID")
    orders_parser.add_argument("--page", type=int, default=1)
    orders_parser.add_argument("--limit", type=int, default=10)
    orders_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # transition
    transition_parser = subparsers.add_parser("transition", help="Change an order's status")
    transition_parser.add_argument("order_id", type=int, help="Order ID")
    transition_parser.add_argument("--as-user", type=int, required=True, help="Acting user ID")
    transition_parser.add_argument("--role", choices=ROLES, default=ROLE_ADMIN)
    action_group = transition_parser.add_mutually_exclusive_group(required=True)
    action_group.add_argument("--action", choices=sorted(ORDER_ACTIONS))
    action_group.add_argument("--status", choices=ORDER_STATUSES)

    # messages
    messages_parser = subparsers.add_parser("messages", help="Show a user's messages")
    messages_parser.add_argument("user", type=int, help="User ID")
    messages_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", "-p", type=int, default=8000, help="Port to bind to (default: 8000)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )
    serve_parser.add_argument(
        "--workers", type=int, default=1, help="Worker processes (the store lock is shared)"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_logging(args.log_level or Settings.from_env().log_level)

    if not args.command:
        parser.print_help()
        return 0

    if args.command == "users":
        if not getattr(args, "users_command", None):
            parser.parse_args(["users", "--help"])
            return 0
        return cmd_users_add(args)

    if args.command == "products" and getattr(args, "products_command", None) == "add":
        return cmd_products_add(args)

    commands = {
        "init": cmd_init,
        "seed": cmd_seed,
        "products": cmd_products,
        "place": cmd_place,
        "orders": cmd_orders,
        "transition": cmd_transition,
        "messages": cmd_messages,
        "serve": cmd_serve,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
