"""Bug bounty reward payout and reconciliation service."""
