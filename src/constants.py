# src/constants.py
"""Conversation states and limits shared by the Telegram handlers"""

# Sell conversation
(
    SELL_PHOTOS,
    SELL_ARTICLE,
    SELL_BRAND,
    SELL_CATEGORY,
    SELL_GENDER,
    SELL_SIZE,
    SELL_AGE,
    SELL_WEAR_COUNT,
    SELL_DAMAGE,
) = range(9)

# Offer acceptance / decline
(
    OFFER_PICKUP_ADDRESS,
    OFFER_PICKUP_PHONE,
    OFFER_PICKUP_DATE,
    OFFER_PICKUP_TIME,
    OFFER_PAYOUT,
    OFFER_UPI,
    OFFER_DECLINE_REASON,
) = range(9, 16)

# Delivery addresses
(
    ADDRESS_NAME,
    ADDRESS_PHONE,
    ADDRESS_PINCODE,
    ADDRESS_HOUSE,
    ADDRESS_AREA,
) = range(16, 21)

# Payout bank account
(
    PAYOUT_ACCOUNT_NUMBER,
    PAYOUT_IFSC,
    PAYOUT_HOLDER,
) = range(21, 24)

# Admin review and repricing
(
    REVIEW_PRICE,
    REVIEW_MRP,
    REVIEW_NOTES,
    REJECT_NOTES,
    EDIT_PRICE,
    EDIT_MRP,
) = range(24, 30)

MAX_PHOTOS = 5
LIST_PAGE_SIZE = 10
