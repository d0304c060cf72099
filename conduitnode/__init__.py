"""Command-line options, advertiser campaigns, device attestation, chunk and file helpers for a Conduit node."""

__version__ = "0.1.0"