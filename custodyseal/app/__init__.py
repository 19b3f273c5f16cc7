"""HTTP service for the CustodySeal pipeline."""
