"""carve deploy - Orchestrator, receipts and ledger export."""
