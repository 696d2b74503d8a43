"""
Shared constants for the marketplace indexer.
"""

NULL_ADDRESS = "0x0000000000000000000000000000000000000000"

# Default NFT contracts known to the metadata API
HAMMER_NFT = "0xcA56AF4bde480B3c177E1A4115189F261C2af034"
SHARK_NFT = "0x13e14f6EC8fee53b69eBd4Bd69e35FFCFe8960DE"

MARKETPLACE_CONTRACT = "0x7579Cc6c2edC67Cf446bA11C4FfFae874A6808C0"

# Document store collections
COLLNAME_AUCTION = "auctiondata"
COLLNAME_USERBIDS = "userbids"
COLLNAME_CHECKPOINTS = "checkpoints"

CHECKPOINT_CRAWLER = "crawler"
CHECKPOINT_CRON = "cron"

# Marketplace event names emitted by the contract
EVENT_KINDS = ("List", "Bid", "Sold", "WithdrawAll", "CloseAuction", "EmergencyWithdrawal")

# getUserBids page size
USER_BIDS_BATCH_SIZE = 20

# A cron run older than this is reported as stuck (seconds)
CRON_STALE_AFTER = 60 * 60 * 2
