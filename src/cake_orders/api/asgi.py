"""ASGI entrypoint for the custom cake ordering API."""

from cake_orders.api.app import create_app
from cake_orders.containers import build_container

app = create_app(build_container())
