"""Notekeeper — personal notes with email-verified accounts.

The identity and session layer: registration, email ownership proof,
password and Google sign-in, session tokens, and account lifecycle.
"""

__version__ = "0.1.0"
