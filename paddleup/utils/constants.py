"""
Constants shared across services.
"""

# Team invites
INVITE_CODE_LENGTH = 12
INVITE_EXPIRY_DAYS = 7

# Rating recorded for a player with no rating in the event's game format
DEFAULT_RATING = "3.00"

# Referral codes (0, O, 1 and I removed to avoid confusion)
REFERRAL_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
REFERRAL_CODE_LENGTH = 8
REFERRAL_CODE_MAX_ATTEMPTS = 10

# Referral milestones: (conversion count, reward, description), ascending by count
REFERRAL_MILESTONES = [
    (1, "CREDIT_5", "$5 account credit"),
    (5, "DISCOUNT_50_PERCENT", "50% off next entry"),
    (10, "FREE_ENTRY", "Free event entry"),
]

# Round robin
BYE_ID = "bye"
MIN_SINGLES_PLAYERS = 2
MIN_DOUBLES_PLAYERS = 4
MIN_TEAMS = 2
