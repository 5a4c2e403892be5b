"""
Trust anchors and service endpoints.

The root-signing KID and the Stellar account are the only things this library
trusts a priori; everything else is checked against them.
"""

HORIZON_SERVER_URI = "https://horizon.stellar.org"
KEYBASE_API_SERVER_URI = "https://keybase.io/_/api/1.0/"

# Stellar account whose transaction memos carry the merkle root commitments
KEYBASE_STELLAR_ADDRESS = "GA72FQOMHYUCNEMZN7GY6OBWQTQEXYL43WPYCY2FE3T452USNQ7KSV6E"

# Key that signs every merkle root
KEYBASE_ROOT_KID = "01209ec31411b9b287f62630c2486005af27548ba62a59bbc802e656b888991a20230a"

# Accounts that reused an eldest key across a reset before that was prohibited.
# Maps uid -> seqno of the link that starts the new subchain.
HARDCODED_RESETS = {
    "2d5c41137d7d9108dbdaa2160ba7e200": 11,
    "f1c263462dd526695c458af924977719": 8,
    "8dbf0f1617e285befa93d3da54b68419": 8,
    "372c1cbd72e4f851a74d232478a72319": 2,
    "12e124d5d1ff6179f3aab88100b93d19": 5,
    "a07089770463db10994c8727177eef19": 12,
}

# Merkle node types
NODE_TYPE_INTERIOR = 1
NODE_TYPE_LEAF = 2
