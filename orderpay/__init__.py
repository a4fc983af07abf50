import logging

logger = logging.getLogger("orderpay.app")
