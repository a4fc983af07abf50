from orderpay.common.logging_setup import get_logger

logger = get_logger("orderpay.orders")
