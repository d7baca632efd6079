"""Voter registration: form validation, on-device backup ledger,
resilient submission, and background recovery."""
