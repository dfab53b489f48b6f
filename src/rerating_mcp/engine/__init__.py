"""Re-rating signal engine: revisions, pillars, risk, detectors, cards and feed."""
