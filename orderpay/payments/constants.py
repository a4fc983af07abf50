from orderpay.common.logging_setup import get_logger

logger = get_logger("orderpay.payments")

MPESA_SANDBOX_BASE_URL = "https://sandbox.safaricom.co.ke"
MPESA_PRODUCTION_BASE_URL = "https://api.safaricom.co.ke"
MPESA_TIMEZONE = "Africa/Nairobi"

STK_METHOD = "mpesa_stk"
STK_ACCEPTED_CODE = "0"     # ResponseCode of an accepted stk push request
CALLBACK_SUCCESS_CODE = 0   # ResultCode of a successful payment callback

# names inside CallbackMetadata.Item
META_AMOUNT = "Amount"
META_RECEIPT = "MpesaReceiptNumber"
META_TRANSACTION_DATE = "TransactionDate"
META_PHONE = "PhoneNumber"

CALLBACK_ACK_ACCEPTED = {"ResultCode": 0, "ResultDesc": "Accepted"}
CALLBACK_ACK_ERROR = {"ResultCode": 1, "ResultDesc": "Internal Server Error"}
