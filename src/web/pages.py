"""
Page rendering for the checkout flow.

Each function takes data and returns an HTML string.
"""

import json
from html import escape

from ..models.order import Order
from ..services.payment_service import to_paise
from ..utils.formatters import format_rupees

PAGE_STYLE = """
body { font-family: system-ui; background: #f7f5f2; color: #222; padding: 20px; }
.card { max-width: 420px; margin: 40px auto; background: #fff; border-radius: 12px; padding: 24px;
        box-shadow: 0 2px 12px rgba(0,0,0,.08); }
h1 { font-size: 22px; margin-top: 0; }
.item { display: flex; justify-content: space-between; padding: 6px 0; border-bottom: 1px solid #eee; }
.total { font-weight: 700; font-size: 18px; margin-top: 12px; display: flex; justify-content: space-between; }
button { width: 100%; padding: 14px; margin-top: 20px; border: 0; border-radius: 8px;
         background: #1f6f50; color: #fff; font-size: 16px; cursor: pointer; }
#status { margin-top: 16px; text-align: center; }
"""


def _shell(title: str, body: str, script: str = "") -> str:
    return f'''<!DOCTYPE html>
<html><head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{escape(title)}</title>
<style>{PAGE_STYLE}</style>
</head><body>
<div class="card">
{body}
</div>
{script}
</body></html>'''


def render_message_page(title: str, message: str) -> str:
    return _shell(title, f"<h1>{escape(title)}</h1><p>{escape(message)}</p>")


def render_checkout_page(order: Order, key_id: str, currency: str, shop_name: str = "ReTag") -> str:
    """Order summary plus the gateway's hosted checkout widget"""
    items = "".join(
        f'<div class="item"><span>{escape(item.name)}</span><span>{escape(item.price)}</span></div>'
        for item in order.cart
    )
    body = f'''
<h1>{escape(shop_name)} checkout</h1>
{items}
<div class="total"><span>Total</span><span>{escape(format_rupees(order.amount))}</span></div>
<p>Deliver to: {escape(order.address.name)}, {escape(order.address.house)}, {escape(order.address.area)} - {escape(order.address.pincode)}</p>
<button id="pay">Pay {escape(format_rupees(order.amount))}</button>
<div id="status"></div>'''

    options = {
        "key": key_id,
        "amount": to_paise(order.amount),
        "currency": currency,
        "name": shop_name,
        "order_id": order.razorpay_order_id,
        "prefill": {"name": order.address.name, "contact": order.address.phone},
    }
    # </ cannot appear inside the inline script
    options_json = json.dumps(options).replace("</", "<\\/")

    script = f'''
<script src="https://checkout.razorpay.com/v1/checkout.js"></script>
<script>
const statusEl = document.getElementById("status");
const options = {options_json};

async function post(path, body) {{
  const response = await fetch(path, {{
    method: "POST",
    headers: {{"Content-Type": "application/json"}},
    body: JSON.stringify(body)
  }});
  return response.json();
}}

options.handler = async function (response) {{
  statusEl.textContent = "Confirming payment...";
  const result = await post("/payments/verify", {{
    order_id: response.razorpay_order_id,
    payment_id: response.razorpay_payment_id,
    signature: response.razorpay_signature
  }});
  statusEl.textContent = result.success
    ? "Payment received. You can return to Telegram."
    : (result.message || "Payment could not be confirmed.");
  if (result.success) document.getElementById("pay").remove();
}};

const checkout = new Razorpay(options);
checkout.on("payment.failed", async function () {{
  statusEl.textContent = "Payment failed. You can try again.";
  await post("/payments/failed", {{order_id: options.order_id}});
}});
document.getElementById("pay").onclick = function (e) {{
  checkout.open();
  e.preventDefault();
}};
</script>'''

    return _shell(f"{shop_name} checkout", body, script)
