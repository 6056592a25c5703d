"""Job board sync pipeline."""
