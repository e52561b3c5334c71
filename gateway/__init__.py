"""API gateway fronting the identity, clinical records and triage services."""
