"""
Jinja2 templates for the decision notification, independent of the web app.
"""
from typing import NamedTuple

from jinja2 import Environment, PackageLoader, select_autoescape

from orderflow.core.domain.models import Order, OrderStatus


def _money(value) -> str:
    return f"₹{float(value):.2f}"


TEMPLATES = Environment(
    loader=PackageLoader("orderflow.adapters.mail", "templates"),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)
TEMPLATES.filters["money"] = _money


class RenderedEmail(NamedTuple):
    subject: str
    text: str
    html: str


def render_decision(order: Order) -> RenderedEmail:
    verified = order.status != OrderStatus.REJECTED
    if verified:
        subject = f"CB Food Portal - Ticket Confirmed (Order {order.id})"
        html_template = "decision_verified.html"
    else:
        subject = f"CB Food Portal - Payment Failed (Order {order.id})"
        html_template = "decision_rejected.html"

    context = {"order": order, "verified": verified}
    return RenderedEmail(
        subject=subject,
        text=TEMPLATES.get_template("decision.txt").render(**context),
        html=TEMPLATES.get_template(html_template).render(**context),
    )
