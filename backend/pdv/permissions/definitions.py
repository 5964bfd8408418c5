# Overview: Capability definitions.
# Each capability is defined as: (code, name, description)

VIEW = "view"
SELL = "sell"
EDIT = "edit"
DELETE = "delete"
CANCEL_SALE = "cancel_sale"
MANAGE_CASH = "manage_cash"
RECEIVE_STOCK = "receive_stock"
RECEIVE_PAYMENTS = "receive_payments"
MANAGE_CREDIT = "manage_credit"


CAPABILITY_DEFINITIONS = [
    (VIEW, "View", "Read sales, stock, credit and cash records"),
    (SELL, "Sell", "Quote carts and finalize sales"),
    (EDIT, "Edit", "Manual stock adjustments and stock limits"),
    (DELETE, "Delete", "Cancel stock receipts"),
    (CANCEL_SALE, "Cancel Sale", "Cancel a completed sale and reverse its effects"),
    (MANAGE_CASH, "Manage Cash", "Open and close the cash drawer, record sangria/suprimento"),
    (RECEIVE_STOCK, "Receive Stock", "Register goods received from suppliers"),
    (RECEIVE_PAYMENTS, "Receive Payments", "Record customer payments against receivables"),
    (MANAGE_CREDIT, "Manage Credit", "Change customer credit limits"),
]

ALL_CAPABILITIES = frozenset(code for code, _, _ in CAPABILITY_DEFINITIONS)
