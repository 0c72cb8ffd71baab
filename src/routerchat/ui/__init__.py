"""Terminal rendering for the routerchat CLI."""
