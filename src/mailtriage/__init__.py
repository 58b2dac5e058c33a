"""Rule-based mail triage for Fastmail (JMAP) with kept/excluded sender ledgers."""

__version__ = "0.1.0"
