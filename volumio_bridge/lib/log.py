"""Logging setup with two independent debug toggles.

``debug`` controls everything under the ``volumio_bridge`` logger except
the API channel; ``api_debug`` controls only ``volumio_bridge.api``, which
carries raw REST responses and push bodies.
"""

import logging

API_LOGGER = "volumio_bridge.api"


def configure_logging(debug: bool = False, api_debug: bool = False):
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("volumio_bridge").setLevel(
        logging.DEBUG if debug else logging.INFO)
    # Explicit level so the API channel never inherits the general toggle
    logging.getLogger(API_LOGGER).setLevel(
        logging.DEBUG if api_debug else logging.INFO)
