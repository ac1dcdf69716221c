"""
Storefront Checkout MCP Server.

Exposes the checkout workflow as tools over stdio: cart and coupons, contact and
shipping details, guest email verification, order placement with the hosted
payment checkout, and payment status confirmation.
"""
import asyncio
import json
import logging
import os
from datetime import datetime
from pathlib import Path

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from .cart import CartItem
from .checkout import CheckoutSession
from .config import CheckoutConfig
from .errors import CheckoutError, ValidationError
from .gst import gst_breakdown
from .output_sanitizer import sanitize_output

logger = logging.getLogger(__name__)

# Debug log — records every tool call and response for session review
_DEBUG_LOG_DIR = Path(os.environ.get(
    "CHECKOUT_DEBUG_DIR",
    os.path.expanduser("~/.config/checkout-tool/debug"),
))

# Tool arguments never written to the debug log
_SECRET_ARGS = {"access_token", "otp"}


def _debug_log(tool_name: str, args: dict, result: str) -> None:
    """Append a tool call entry to the debug log file."""
    try:
        safe_args = {k: "[REDACTED]" if k in _SECRET_ARGS else v for k, v in args.items()}
        _DEBUG_LOG_DIR.mkdir(parents=True, exist_ok=True)
        log_file = _DEBUG_LOG_DIR / f"session_{datetime.now().strftime('%Y-%m-%d')}.log"
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]

        entry = (
            f"\n{'='*80}\n"
            f"[{timestamp}] TOOL: {tool_name}\n"
            f"ARGS: {sanitize_output(json.dumps(safe_args, indent=2))}\n"
            f"RESPONSE:\n{result}\n"
        )

        with open(log_file, "a") as f:
            f.write(entry)
    except OSError as e:
        logger.debug("Debug log write failed: %s", e)


server = Server("storefront-checkout")

# Lazy-initialized singletons
_session: CheckoutSession | None = None
_session_started = False


def _get_session() -> CheckoutSession:
    global _session
    if _session is None:
        _session = CheckoutSession.from_config(CheckoutConfig.from_env())
    return _session


async def _ensure_started() -> CheckoutSession:
    """Return the session, loading the profile on first use."""
    global _session_started
    session = _get_session()
    if not _session_started:
        _session_started = True
        await session.start()
    return session


def _with_notices(session: CheckoutSession, result: dict) -> dict:
    notices = session.drain_notices()
    if notices:
        result["notices"] = [f"{n.level}: {n.message}" for n in notices]
    return result


def _form_summary(session: CheckoutSession) -> dict:
    form = session.form
    return {
        "name": form.full_name,
        "email": form.email,
        "phone": form.phone,
        "address_source": "saved" if form.use_existing_address else "new",
        "selected_address_id": form.selected_address_id,
        "city": form.city,
        "state": form.state,
        "payment_method": form.payment_method,
        "terms_accepted": form.terms_accepted,
        "email_verified": session.verifier.is_verified if session.is_guest else True,
    }


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

def _tool(name: str, description: str, properties: dict | None = None, required: list | None = None) -> Tool:
    return Tool(
        name=name,
        description=description,
        inputSchema={
            "type": "object",
            "properties": properties or {},
            "required": required or [],
        },
    )


@server.list_tools()
async def list_tools() -> list[Tool]:
    return [
        _tool("view_cart", "Show cart lines, subtotal, coupon discount, total and the GST breakdown."),
        _tool(
            "add_to_cart",
            "Add a product variant to the cart. Lines with the same SKU are merged.",
            {
                "product_id": {"type": "string", "description": "Product identifier"},
                "price": {"type": "number", "description": "Unit selling price (GST-inclusive)"},
                "quantity": {"type": "integer", "description": "Number of units", "default": 1},
                "variant_sku": {"type": "string", "description": "Variant SKU, if known"},
                "size": {"type": "string"},
                "color": {"type": "string"},
                "name": {"type": "string", "description": "Display name"},
                "mrp": {"type": "number", "description": "Maximum retail price"},
                "gst_rate": {"type": "number", "description": "GST rate in percent (0, 5, 12, 18, 28)"},
            },
            ["product_id", "price"],
        ),
        _tool(
            "remove_from_cart",
            "Remove a cart line by SKU.",
            {"sku": {"type": "string", "description": "SKU shown by view_cart"}},
            ["sku"],
        ),
        _tool(
            "apply_coupon",
            "Validate a coupon code and apply its discount to the cart.",
            {"code": {"type": "string", "description": "Coupon code"}},
            ["code"],
        ),
        _tool("remove_coupon", "Remove the applied coupon."),
        _tool(
            "set_contact",
            (
                "Set contact details. For guest checkout, changing the email resets "
                "verification; use send_otp and verify_otp afterwards."
            ),
            {
                "first_name": {"type": "string"},
                "last_name": {"type": "string"},
                "email": {"type": "string"},
                "phone": {"type": "string"},
            },
        ),
        _tool(
            "set_shipping_address",
            "Enter a new shipping address. Switches the checkout to the manually entered address.",
            {
                "address": {"type": "string", "description": "Street address"},
                "city": {"type": "string"},
                "state": {"type": "string"},
                "zip_code": {"type": "string", "description": "PIN code"},
                "country": {"type": "string", "default": "India"},
                "save_address": {
                    "type": "boolean",
                    "description": "Save this address to the account (signed-in users only)",
                    "default": False,
                },
            },
            ["address", "city", "state", "zip_code"],
        ),
        _tool("list_addresses", "List saved addresses (redacted) and which one is selected."),
        _tool(
            "use_saved_address",
            "Ship to a saved address. Without address_id the default address is used.",
            {"address_id": {"type": "string"}},
        ),
        _tool("use_new_address", "Ship to the manually entered address instead of a saved one."),
        _tool("send_otp", "Send a verification code to the guest email address."),
        _tool(
            "verify_otp",
            "Verify the guest email with the code the user received.",
            {"otp": {"type": "string", "description": "One-time code from the email"}},
            ["otp"],
        ),
        _tool(
            "set_payment_method",
            "Choose how to pay.",
            {"method": {"type": "string", "enum": ["cashfree", "cod"]}},
            ["method"],
        ),
        _tool(
            "accept_terms",
            "Record that the user accepted the terms and conditions. Only call when the user explicitly agrees.",
            {"accepted": {"type": "boolean", "default": True}},
        ),
        _tool(
            "place_order",
            (
                "Submit the order. Cash on delivery is confirmed immediately; online payment opens "
                "the hosted payment window and waits for the result."
            ),
        ),
        _tool(
            "check_payment_status",
            "Confirm the payment status of the pending order with the backend.",
            {
                "order_id": {"type": "string", "description": "Order id (defaults to the pending order)"},
                "callback_url": {"type": "string", "description": "Redirect URL returned by the gateway"},
            },
        ),
        _tool(
            "resume_order",
            "Load an existing order whose payment is still pending.",
            {"order_id": {"type": "string"}},
            ["order_id"],
        ),
        _tool(
            "set_auth_token",
            "Sign in with a backend access token, or sign out with an empty token.",
            {"access_token": {"type": "string"}},
            ["access_token"],
        ),
    ]


# ---------------------------------------------------------------------------
# Tool dispatch
# ---------------------------------------------------------------------------

@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    arguments = arguments or {}
    handler = _HANDLERS.get(name)
    if handler is None:
        return [TextContent(type="text", text=f"Unknown tool: {name}")]

    try:
        session = await _ensure_started()
        try:
            result = await handler(session, arguments)
        except ValidationError as e:
            result = {"status": "invalid", "message": e.message, "errors": e.errors}
        except CheckoutError as e:
            result = {"status": "error", "message": e.message}
        result = _with_notices(session, result)

        text = json.dumps(result, indent=2)
        sanitized = sanitize_output(text)

        _debug_log(name, arguments, sanitized)
        return [TextContent(type="text", text=sanitized)]

    except Exception as e:
        logger.exception("Tool %s failed", name)
        error_text = f"Error: {str(e)}"
        _debug_log(name, arguments, error_text)
        return [TextContent(type="text", text=error_text)]


# ---------------------------------------------------------------------------
# Tool implementations
# ---------------------------------------------------------------------------

async def _handle_view_cart(session: CheckoutSession, args: dict) -> dict:
    rate = session.config.default_gst_rate
    summary = session.cart.snapshot().summary(rate)
    summary["gst"]["label"] = gst_breakdown(rate).label
    return {"status": "ok", "cart": summary}


async def _handle_add_to_cart(session: CheckoutSession, args: dict) -> dict:
    fields = {k: v for k, v in args.items() if v is not None}
    try:
        item = CartItem.model_validate(fields)
    except ValueError as e:
        return {"status": "invalid", "message": str(e)}
    session.cart.add_item(item)
    return {"status": "added", "sku": item.resolved_sku(), "cart": session.cart.snapshot().summary()}


async def _handle_remove_from_cart(session: CheckoutSession, args: dict) -> dict:
    if not session.cart.remove_item(args["sku"]):
        return {"status": "not_found", "message": f"No cart line with SKU {args['sku']}"}
    return {"status": "removed", "cart": session.cart.snapshot().summary()}


async def _handle_apply_coupon(session: CheckoutSession, args: dict) -> dict:
    result = await session.apply_coupon(args.get("code", ""))
    if not result.success:
        return {"status": "rejected", "message": result.error}
    snapshot = session.cart.snapshot()
    return {"status": "applied", "code": result.code, "discount": result.discount, "total": snapshot.total}


async def _handle_remove_coupon(session: CheckoutSession, args: dict) -> dict:
    await session.remove_coupon()
    return {"status": "removed", "total": session.cart.snapshot().total}


async def _handle_set_contact(session: CheckoutSession, args: dict) -> dict:
    await session.set_contact(
        first_name=args.get("first_name"),
        last_name=args.get("last_name"),
        email=args.get("email"),
        phone=args.get("phone"),
    )
    return {"status": "updated", "checkout": _form_summary(session)}


async def _handle_set_shipping_address(session: CheckoutSession, args: dict) -> dict:
    fields = {k: v for k, v in args.items() if v is not None}
    session.set_shipping_fields(**fields)
    return {"status": "updated", "checkout": _form_summary(session)}


async def _handle_list_addresses(session: CheckoutSession, args: dict) -> dict:
    if session.is_guest:
        return {"status": "guest", "message": "Saved addresses are only available when signed in.", "addresses": []}
    summary = await session.profiles.get_redacted_summary()
    return {
        "status": "ok",
        "selected_address_id": session.form.selected_address_id,
        "addresses": summary["addresses"],
    }


async def _handle_use_saved_address(session: CheckoutSession, args: dict) -> dict:
    address = session.addresses.use_saved_address(args.get("address_id"))
    return {"status": "selected", "address_id": address.id, "city": address.city, "state": address.state}


async def _handle_use_new_address(session: CheckoutSession, args: dict) -> dict:
    session.addresses.use_new_address()
    return {"status": "updated", "checkout": _form_summary(session)}


async def _handle_send_otp(session: CheckoutSession, args: dict) -> dict:
    result = await session.send_otp()
    return {"status": "sent" if result.success else "error", "message": result.message}


async def _handle_verify_otp(session: CheckoutSession, args: dict) -> dict:
    result = await session.verify_otp(args.get("otp", ""))
    return {"status": "verified" if result.verified else "error", "message": result.message}


async def _handle_set_payment_method(session: CheckoutSession, args: dict) -> dict:
    session.set_payment_method(args["method"])
    return {"status": "updated", "payment_method": session.form.payment_method}


async def _handle_accept_terms(session: CheckoutSession, args: dict) -> dict:
    session.accept_terms(bool(args.get("accepted", True)))
    return {"status": "updated", "terms_accepted": session.form.terms_accepted}


async def _handle_place_order(session: CheckoutSession, args: dict) -> dict:
    outcome = await session.place_order()
    return outcome.to_dict()


async def _handle_check_payment_status(session: CheckoutSession, args: dict) -> dict:
    outcome = await session.confirm_payment(
        callback_url=args.get("callback_url"),
        order_id=args.get("order_id"),
    )
    return outcome.to_dict()


async def _handle_resume_order(session: CheckoutSession, args: dict) -> dict:
    outcome = await session.resume_order(args["order_id"])
    return outcome.to_dict()


async def _handle_set_auth_token(session: CheckoutSession, args: dict) -> dict:
    token = (args.get("access_token") or "").strip() or None
    await session.set_auth_token(token)
    return {"status": "signed_in" if token else "signed_out", "checkout": _form_summary(session)}


_HANDLERS = {
    "view_cart": _handle_view_cart,
    "add_to_cart": _handle_add_to_cart,
    "remove_from_cart": _handle_remove_from_cart,
    "apply_coupon": _handle_apply_coupon,
    "remove_coupon": _handle_remove_coupon,
    "set_contact": _handle_set_contact,
    "set_shipping_address": _handle_set_shipping_address,
    "list_addresses": _handle_list_addresses,
    "use_saved_address": _handle_use_saved_address,
    "use_new_address": _handle_use_new_address,
    "send_otp": _handle_send_otp,
    "verify_otp": _handle_verify_otp,
    "set_payment_method": _handle_set_payment_method,
    "accept_terms": _handle_accept_terms,
    "place_order": _handle_place_order,
    "check_payment_status": _handle_check_payment_status,
    "resume_order": _handle_resume_order,
    "set_auth_token": _handle_set_auth_token,
}


# ---------------------------------------------------------------------------
# Server entry point
# ---------------------------------------------------------------------------

async def main():
    """Run the MCP server over stdio."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    logger.info("Storefront checkout MCP server starting...")

    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        if _session:
            await _session.close()


def run():
    """Sync entry point for console_scripts."""
    asyncio.run(main())
