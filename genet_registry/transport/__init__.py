# Transport Layer
# HTTP surface for the registry editors, consumed by the browser UI

from genet_registry.transport.app import app

__all__ = ["app"]
